import os
from dataclasses import dataclass
from typing import List, Optional

import joblib
import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.base import clone
from sklearn.ensemble import RandomForestClassifier
from sklearn.inspection import permutation_importance
from sklearn.metrics import confusion_matrix
from sklearn.model_selection import GridSearchCV, RepeatedStratifiedKFold
from tqdm import tqdm

from wle.config import RFConfig
from wle.constants import RANDOM_SEED, VAL_SIZE
from wle.preprocessing import PCATransform


@dataclass(frozen=True)
class TrainedModel:
    """
    Random forest bound to the mtry chosen by repeated cross-validation.

    `transform` is the PCATransform the forest was trained behind and
    `random_seed`/`val_size` describe the training/validation split, so a
    reloaded model is scored on the same rows through the same rotation.
    """
    estimator: RandomForestClassifier
    mtry: int
    cv_results: pd.DataFrame
    cv_confusion: Optional[pd.DataFrame]
    importance: pd.Series
    oob_score: float
    classes: List[str]
    n_splits: int
    n_repeats: int
    random_seed: int
    transform: Optional[PCATransform] = None
    val_size: float = VAL_SIZE
    heldout_importance: Optional[pd.Series] = None

    @property
    def cv_accuracy(self) -> float:
        row = self.cv_results.loc[self.cv_results['mtry'] == self.mtry]
        return float(row['accuracy'].iloc[0])

    def predict(self, X: pd.DataFrame) -> pd.Series:
        predictions = self.estimator.predict(X)
        return pd.Series(pd.Categorical(predictions, categories=self.classes),
                         index=X.index, name='prediction')

    def save(self, path: str) -> str:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        joblib.dump(self, path)
        return path

    @classmethod
    def load(cls, path: str) -> 'TrainedModel':
        if not os.path.exists(path):
            raise FileNotFoundError(f"Model file {path} does not exist.")
        model = joblib.load(path)
        if not isinstance(model, cls):
            raise TypeError(f"{path} does not hold a {cls.__name__}")
        return model


def _as_labels(y) -> np.ndarray:
    return pd.Series(y).astype(str).to_numpy()


def _class_order(y) -> List[str]:
    if isinstance(getattr(y, 'dtype', None), pd.CategoricalDtype):
        return [str(c) for c in y.cat.categories]
    return sorted(pd.unique(_as_labels(y)))


def cv_results_table(cv_results: dict) -> pd.DataFrame:
    """Per-candidate mean/std accuracy, in grid order."""
    return pd.DataFrame({
        'mtry': [params['max_features'] for params in cv_results['params']],
        'accuracy': cv_results['mean_test_score'],
        'accuracy_sd': cv_results['std_test_score'],
    })


def select_best_candidate(cv_table: pd.DataFrame) -> int:
    """Highest mean accuracy wins; ties go to the first candidate in grid order."""
    if cv_table.empty:
        raise ValueError("No cross-validation results to select from")
    best_idx = int(np.argmax(cv_table['accuracy'].to_numpy()))
    return int(cv_table['mtry'].iloc[best_idx])


def _fit_predict_fold(estimator, X, y, train_idx, test_idx, labels):
    estimator.fit(X[train_idx], y[train_idx])
    return confusion_matrix(y[test_idx], estimator.predict(X[test_idx]), labels=labels)


def cross_validation_confusion(estimator, X: pd.DataFrame, y, cv, classes: List[str],
                               n_jobs: int = 1) -> pd.DataFrame:
    """
    Held-out predictions of `estimator` across every fold of `cv`, as a
    confusion matrix of percentages of all held-out rows (rows: truth).
    """
    X_values = np.asarray(X, dtype=float)
    y_values = _as_labels(y)
    splits = list(cv.split(X_values, y_values))
    fold_cms = Parallel(n_jobs=n_jobs)(
        delayed(_fit_predict_fold)(clone(estimator), X_values, y_values, train_idx, test_idx, classes)
        for train_idx, test_idx in tqdm(splits, desc="CV predictions")
    )
    total = np.sum(fold_cms, axis=0)
    percent = 100.0 * total / total.sum()
    return pd.DataFrame(percent, index=pd.Index(classes, name='Reference'),
                        columns=pd.Index(classes, name='Prediction'))


def train_random_forest(X: pd.DataFrame, y, args: RFConfig = None,
                        random_seed: int = RANDOM_SEED) -> TrainedModel:
    """
    Tune mtry (max_features) with repeated stratified k-fold CV, then refit
    on all of X with the winning value.
    """
    args = args or RFConfig()
    grid = [m for m in args.mtry_grid if m <= X.shape[1]]
    if not grid:
        raise ValueError(f"No mtry candidate fits {X.shape[1]} predictors: {args.mtry_grid}")
    if len(grid) < len(args.mtry_grid):
        print(f"Dropping mtry candidates above {X.shape[1]} predictors")

    classes = _class_order(y)
    y_values = _as_labels(y)

    base_rf = RandomForestClassifier(
        n_estimators=args.n_estimators,
        random_state=random_seed,
        n_jobs=1,
    )
    cv = RepeatedStratifiedKFold(n_splits=args.n_splits, n_repeats=args.n_repeats,
                                 random_state=random_seed)

    grid_search = GridSearchCV(
        estimator=base_rf,
        param_grid={'max_features': grid},
        scoring=args.scoring,
        cv=cv,
        n_jobs=args.n_jobs,
        refit=False,
        error_score='raise',
    )

    print(f"Starting Grid Search over mtry={grid} "
          f"({args.n_splits}-fold CV, repeated {args.n_repeats} times)...")
    grid_search.fit(X, y_values)

    cv_table = cv_results_table(grid_search.cv_results_)
    mtry = select_best_candidate(cv_table)
    print("\nCross-validation accuracy per candidate:")
    print(cv_table.to_string(index=False))
    print(f"\nBest mtry: {mtry}")

    final_rf = clone(base_rf).set_params(max_features=mtry, oob_score=True, n_jobs=args.n_jobs)
    final_rf.fit(X, y_values)
    print(f"Out-of-bag accuracy: {final_rf.oob_score_:.4f}")

    cv_confusion = None
    if args.cv_confusion:
        cv_confusion = cross_validation_confusion(
            clone(base_rf).set_params(max_features=mtry), X, y_values, cv, classes, n_jobs=args.n_jobs)

    importance = pd.Series(final_rf.feature_importances_, index=list(X.columns),
                           name='importance').sort_values(ascending=False)

    return TrainedModel(
        estimator=final_rf,
        mtry=mtry,
        cv_results=cv_table,
        cv_confusion=cv_confusion,
        importance=importance,
        oob_score=float(final_rf.oob_score_),
        classes=classes,
        n_splits=args.n_splits,
        n_repeats=args.n_repeats,
        random_seed=random_seed,
    )


def heldout_importances(model: TrainedModel, X: pd.DataFrame, y, n_repeats: int = 5,
                        n_jobs: int = 1) -> pd.Series:
    """
    Permutation importance of each principal component on rows the forest
    never saw: the mean drop in accuracy when that component is shuffled.
    """
    result = permutation_importance(
        model.estimator, X, _as_labels(y),
        scoring='accuracy',
        n_repeats=n_repeats,
        random_state=model.random_seed,
        n_jobs=n_jobs,
    )
    return pd.Series(result.importances_mean, index=list(X.columns),
                     name='importance').sort_values(ascending=False)
