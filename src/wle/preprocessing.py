from dataclasses import dataclass
from typing import Tuple

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from wle.constants import VARIANCE_TARGET


def n_components_for_variance(explained_variance_ratio: np.ndarray, variance_target: float) -> int:
    """Smallest k whose cumulative explained variance reaches `variance_target`."""
    cumulative = np.cumsum(explained_variance_ratio)
    k = int(np.searchsorted(cumulative, variance_target, side='left')) + 1
    return min(k, len(cumulative))


@dataclass(frozen=True)
class PCATransform:
    """
    Centering, scaling and PCA fitted once on the training subset.

    Holds the fitted column schema, the training medians used to fill gaps,
    the per-column means and standard deviations and the retained principal
    axes. Never refit; validation and test data only go through `apply`.
    """
    columns: Tuple[str, ...]
    medians: np.ndarray
    scaler: StandardScaler
    pca: PCA
    n_components: int
    variance_target: float
    impute: bool = True

    @property
    def means(self) -> np.ndarray:
        return self.scaler.mean_

    @property
    def stds(self) -> np.ndarray:
        return self.scaler.scale_

    @property
    def rotation(self) -> np.ndarray:
        """(n_components, n_columns) projection matrix."""
        return self.pca.components_[:self.n_components]

    @property
    def explained_variance_ratio(self) -> np.ndarray:
        return self.pca.explained_variance_ratio_[:self.n_components]

    @property
    def cumulative_variance(self) -> np.ndarray:
        return np.cumsum(self.pca.explained_variance_ratio_)

    @property
    def component_names(self):
        return [f"PC{i + 1}" for i in range(self.n_components)]

    def _prepare(self, X: pd.DataFrame) -> np.ndarray:
        _check_schema(X, self.columns)
        values = X.loc[:, list(self.columns)].to_numpy(dtype=float)
        missing = np.isnan(values)
        if missing.any():
            if not self.impute:
                raise ValueError(f"Found {int(missing.sum())} missing values and imputation is off")
            values = np.where(missing, self.medians, values)
        return values

    def standardize(self, X: pd.DataFrame) -> np.ndarray:
        return self.scaler.transform(self._prepare(X))

    def inverse_standardize(self, Z: np.ndarray) -> np.ndarray:
        """Undo the standardization step; the PCA projection itself is lossy."""
        return self.scaler.inverse_transform(Z)

    def apply(self, X: pd.DataFrame) -> pd.DataFrame:
        projected = self.pca.transform(self.standardize(X))[:, :self.n_components]
        return pd.DataFrame(projected, columns=self.component_names, index=X.index)


def _check_schema(X: pd.DataFrame, columns) -> None:
    expected = set(columns)
    actual = set(X.columns)
    if expected != actual:
        missing = sorted(expected - actual)
        extra = sorted(actual - expected)
        raise ValueError(f"Column schema mismatch: missing={missing}, unexpected={extra}")
    non_numeric = [c for c in columns if not pd.api.types.is_numeric_dtype(X[c])]
    if non_numeric:
        raise ValueError(f"Non-numeric predictor columns: {non_numeric}")


def fit_pca(X: pd.DataFrame, variance_target: float = VARIANCE_TARGET, impute: bool = True) -> PCATransform:
    """
    Fit the standardize + PCA transform on training predictors.

    Args:
        X: numeric training predictors
        variance_target: cumulative explained variance the retained components must reach
        impute: fill missing values with the training medians
    Returns:
        an immutable PCATransform
    """
    if not 0 < variance_target <= 1:
        raise ValueError("variance_target must be in (0, 1]")
    if len(X) < 2:
        raise ValueError("Need at least two rows to fit the transform")
    columns = tuple(X.columns)
    _check_schema(X, columns)

    values = X.to_numpy(dtype=float)
    missing = np.isnan(values)
    if missing.any() and not impute:
        raise ValueError("Training predictors contain missing values and imputation is off")
    if impute:
        # all-missing columns fall back to 0
        medians = np.zeros(len(columns))
        observed = ~missing.all(axis=0)
        medians[observed] = np.nanmedian(values[:, observed], axis=0)
        values = np.where(missing, medians, values)
    else:
        medians = np.zeros(len(columns))

    scaler = StandardScaler()
    scaled = scaler.fit_transform(values)

    pca = PCA(n_components=None, svd_solver='full')
    pca.fit(scaled)
    n_components = n_components_for_variance(pca.explained_variance_ratio_, variance_target)

    return PCATransform(
        columns=columns,
        medians=medians,
        scaler=scaler,
        pca=pca,
        n_components=n_components,
        variance_target=variance_target,
        impute=impute,
    )


def apply_pca(transform: PCATransform, X: pd.DataFrame) -> pd.DataFrame:
    return transform.apply(X)


def print_pca_summary(transform: PCATransform):
    print(f"\nNumber of components selected: {transform.n_components}")
    print(f"Total variance explained: {transform.explained_variance_ratio.sum():.3f}")
