from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split

from wle.constants import NA_VALUES, MISSING_THRESHOLD, N_METADATA_COLS, LABEL_COL, ID_COL, CLASSES


def load_dataset(file_path, na_values: Sequence[str] = NA_VALUES) -> pd.DataFrame:
    """
    Load one of the WLE tables.

    Args:
        file_path: path to a comma-separated table with a header row
        na_values: tokens read as missing; the empty string and "NA" by default
    Returns:
        DataFrame with the missing tokens turned into NaN
    """
    return pd.read_csv(
        file_path,
        na_values=list(na_values),
        keep_default_na=False,
        low_memory=False,
    )


def missing_fractions(df: pd.DataFrame) -> pd.Series:
    """Fraction of missing values per column."""
    if len(df) == 0:
        return pd.Series(0.0, index=df.columns)
    return df.isna().sum() / len(df)


def filter_missing_columns(df: pd.DataFrame, threshold: float = MISSING_THRESHOLD) -> pd.DataFrame:
    """
    Drop every column whose missing fraction is not below `threshold`.

    The fraction uses this table's own row count, so the training and testing
    tables are filtered independently. Rows are never dropped.
    """
    if not 0 < threshold <= 1:
        raise ValueError("threshold must be in (0, 1]")
    fractions = missing_fractions(df)
    keep = fractions[fractions < threshold].index
    return df.loc[:, keep].copy()


def prune_columns(df: pd.DataFrame, n_metadata: int = N_METADATA_COLS,
                  label_col: str = LABEL_COL, classes: Sequence[str] = CLASSES) -> pd.DataFrame:
    """
    Drop the leading metadata columns (row id, user, timestamps, window flags)
    and cast the label column, when present, to a categorical.
    """
    if df.shape[1] <= n_metadata:
        raise ValueError(f"Expected more than {n_metadata} columns, got {df.shape[1]}")
    pruned = df.iloc[:, n_metadata:].copy()

    if label_col in pruned.columns:
        unknown = set(pruned[label_col].dropna().unique()) - set(classes)
        if unknown:
            raise ValueError(f"Unknown labels in '{label_col}': {sorted(unknown)}")
        pruned[label_col] = pd.Categorical(pruned[label_col], categories=list(classes))
    return pruned


def predictor_columns(df: pd.DataFrame, label_col: str = LABEL_COL, id_col: str = ID_COL) -> List[str]:
    return [c for c in df.columns if c not in (label_col, id_col)]


def split_features_labels(df: pd.DataFrame, label_col: str = LABEL_COL,
                          id_col: str = ID_COL) -> Tuple[pd.DataFrame, Optional[pd.Series]]:
    """Separate predictors from the label; the label is None for unlabeled tables."""
    X = df[predictor_columns(df, label_col, id_col)]
    y = df[label_col] if label_col in df.columns else None
    return X, y


def split_dataset(df: pd.DataFrame, label_col: str = LABEL_COL, val_size: float = 0.2,
                  random_seed: int = 42) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Stratified split of the cleaned training table into training/validation subsets."""
    idx_train, idx_val = train_test_split(
        np.arange(len(df)), test_size=val_size,
        random_state=random_seed, stratify=df[label_col])
    return df.iloc[np.sort(idx_train)], df.iloc[np.sort(idx_val)]


def class_proportions(y: pd.Series) -> pd.Series:
    return y.value_counts(normalize=True, sort=False).sort_index()


def load_test_labels(file_path, id_col: str = ID_COL, label_col: str = LABEL_COL) -> pd.Series:
    """Ground truth for the testing table, keyed by problem id."""
    labels = pd.read_csv(file_path)
    missing = {id_col, label_col} - set(labels.columns)
    if missing:
        raise ValueError(f"Test labels file is missing columns: {sorted(missing)}")
    return labels.set_index(id_col)[label_col]


def print_dataset_info(df: pd.DataFrame, name: str, label_col: str = LABEL_COL):
    """Print information about the dataset."""
    print(f"\n{name}: {df.shape[0]} rows x {df.shape[1]} columns")
    if label_col in df.columns:
        counts = df[label_col].value_counts(sort=False)
        percentages = df[label_col].value_counts(normalize=True, sort=False) * 100
        summary_df = pd.DataFrame({
            'Count': counts,
            'Percentage (%)': percentages.round(2),
        })
        print(summary_df.to_string())
