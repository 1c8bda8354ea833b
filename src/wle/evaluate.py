from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score, classification_report, confusion_matrix

from wle.model import TrainedModel


@dataclass
class EvaluationReport:
    accuracy: float
    confusion: pd.DataFrame
    class_stats: pd.DataFrame
    n_samples: int

    @property
    def out_of_sample_error(self) -> float:
        return 1.0 - self.accuracy


def _labels(y) -> np.ndarray:
    return pd.Series(y).astype(str).to_numpy()


def confusion_table(y_true, y_pred, classes: List[str]) -> pd.DataFrame:
    """Count matrix, rows are the reference labels and columns the predictions."""
    cm = confusion_matrix(_labels(y_true), _labels(y_pred), labels=list(classes))
    return pd.DataFrame(cm, index=pd.Index(classes, name='Reference'),
                        columns=pd.Index(classes, name='Prediction'))


def class_statistics(cm: pd.DataFrame) -> pd.DataFrame:
    """
    One-vs-rest statistics per class from a count confusion matrix.

    Classes without reference (or predicted) rows get NaN where the ratio
    is undefined.
    """
    counts = cm.to_numpy(dtype=float)
    total = counts.sum()
    tp = np.diag(counts)
    fn = counts.sum(axis=1) - tp
    fp = counts.sum(axis=0) - tp
    tn = total - tp - fn - fp

    with np.errstate(divide='ignore', invalid='ignore'):
        sensitivity = tp / (tp + fn)
        specificity = tn / (tn + fp)
        precision = tp / (tp + fp)

    return pd.DataFrame({
        'sensitivity': sensitivity,
        'specificity': specificity,
        'precision': precision,
        'balanced_accuracy': (sensitivity + specificity) / 2,
        'support': counts.sum(axis=1).astype(int),
    }, index=cm.index)


def evaluate(model: TrainedModel, X: pd.DataFrame, y, verbose: bool = False) -> EvaluationReport:
    """Predict on transformed data and compare against the true labels."""
    y_pred = model.predict(X)
    y_true = _labels(y)
    cm = confusion_table(y_true, y_pred, model.classes)

    if verbose:
        print(classification_report(y_true, _labels(y_pred), labels=model.classes, zero_division=0))

    return EvaluationReport(
        accuracy=float(accuracy_score(y_true, _labels(y_pred))),
        confusion=cm,
        class_stats=class_statistics(cm),
        n_samples=len(y_true),
    )


def accuracy_on_test(model: TrainedModel, X_test: pd.DataFrame, y_test) -> Optional[float]:
    """Fraction of matching labels; None when no ground truth is supplied."""
    if y_test is None:
        return None
    y_test = pd.Series(np.asarray(y_test, dtype=object), index=X_test.index)
    known = y_test.notna().to_numpy()
    if not known.any():
        return None
    y_pred = model.predict(X_test)
    return float(accuracy_score(_labels(y_test[known]), _labels(y_pred[known])))


def print_evaluation(report: EvaluationReport, title: str):
    print(f"\n{title}")
    print(f"Accuracy: {report.accuracy:.4f} "
          f"(out-of-sample error {100 * report.out_of_sample_error:.2f}%)")
    print(report.confusion.to_string())
    print(report.class_stats.round(4).to_string())
