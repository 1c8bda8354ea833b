"""
Informational diagnostics over the cleaned training table.

None of these functions alter the data they are given: redundant and
near-zero-variance predictors are reported, while dimensionality reduction is
left to the PCA step.
"""

from typing import List

import numpy as np
import pandas as pd

from wle.constants import CORR_CUTOFF, FREQ_CUT, UNIQUE_CUT


def numeric_columns(df: pd.DataFrame) -> pd.DataFrame:
    return df.select_dtypes(include=[np.number])


def correlation_matrix(df: pd.DataFrame, method: str = "spearman") -> pd.DataFrame:
    """
    Pairwise correlation among the numeric columns of `df`.

    Args:
        df: table to analyse; non-numeric columns are ignored
        method: "spearman" (rank based) or "pearson" (linear)
    Returns:
        square DataFrame indexed and labelled by column name
    """
    if method not in ("spearman", "pearson"):
        raise ValueError(f"Unknown correlation method '{method}'")
    return numeric_columns(df).corr(method=method)


def _abs_values(corr: pd.DataFrame) -> np.ndarray:
    values = np.abs(np.nan_to_num(corr.to_numpy(dtype=float), nan=0.0))
    np.fill_diagonal(values, 0.0)
    return values


def find_correlation(corr: pd.DataFrame, cutoff: float = CORR_CUTOFF) -> List[str]:
    """
    Greedy redundancy elimination.

    While any pair of remaining columns has an absolute correlation above
    `cutoff`, flag the column with the highest mean absolute correlation with
    the other remaining columns. Ties go to the earliest column.

    Returns:
        flagged column names in the order they were removed
    """
    if corr.shape[0] != corr.shape[1]:
        raise ValueError("corr must be a square matrix")
    values = _abs_values(corr)
    names = list(corr.columns)
    remaining = list(range(len(names)))
    flagged = []

    while len(remaining) > 1:
        sub = values[np.ix_(remaining, remaining)]
        if sub.max() <= cutoff:
            break
        mean_abs = sub.sum(axis=1) / (len(remaining) - 1)
        worst = int(np.argmax(mean_abs))
        flagged.append(names[remaining[worst]])
        del remaining[worst]

    return flagged


def highly_correlated_pairs(corr: pd.DataFrame, cutoff: float = CORR_CUTOFF) -> pd.DataFrame:
    """All column pairs with |r| > cutoff, strongest first."""
    values = corr.to_numpy(dtype=float)
    rows, cols = np.triu_indices_from(values, k=1)
    pairs = pd.DataFrame({
        'column_a': corr.index[rows],
        'column_b': corr.columns[cols],
        'correlation': values[rows, cols],
    })
    pairs = pairs[pairs['correlation'].abs() > cutoff]
    order = pairs['correlation'].abs().sort_values(ascending=False, kind='stable').index
    return pairs.loc[order].reset_index(drop=True)


def near_zero_variance(df: pd.DataFrame, freq_cut: float = FREQ_CUT,
                       unique_cut: float = UNIQUE_CUT) -> pd.DataFrame:
    """
    Near-zero-variance table, one row per column.

    freq_ratio is the count of the most common value over the count of the
    second most common; percent_unique is distinct values over rows. A column
    is flagged when it is constant, or when freq_ratio > freq_cut and
    percent_unique <= unique_cut. Missing values are ignored.
    """
    n_rows = len(df)
    records = {}
    for col in df.columns:
        counts = df[col].dropna().value_counts()
        n_unique = len(counts)
        if n_unique <= 1:
            freq_ratio = 0.0
        else:
            freq_ratio = counts.iloc[0] / counts.iloc[1]
        percent_unique = 100.0 * n_unique / n_rows if n_rows else 0.0
        zero_var = n_unique <= 1
        records[col] = {
            'freq_ratio': float(freq_ratio),
            'percent_unique': percent_unique,
            'zero_var': zero_var,
            'nzv': bool(zero_var or (freq_ratio > freq_cut and percent_unique <= unique_cut)),
        }
    return pd.DataFrame.from_dict(
        records, orient='index',
        columns=['freq_ratio', 'percent_unique', 'zero_var', 'nzv'])


def summarize_diagnostics(X: pd.DataFrame, method: str = "spearman", cutoff: float = CORR_CUTOFF,
                          freq_cut: float = FREQ_CUT, unique_cut: float = UNIQUE_CUT) -> dict:
    corr = correlation_matrix(X, method)
    nzv = near_zero_variance(X, freq_cut, unique_cut)
    return {
        'correlation': corr,
        'correlated_pairs': highly_correlated_pairs(corr, cutoff),
        'flagged_correlated': find_correlation(corr, cutoff),
        'near_zero_variance': nzv,
        'n_nzv': int(nzv['nzv'].sum()),
        'n_zero_var': int(nzv['zero_var'].sum()),
    }
