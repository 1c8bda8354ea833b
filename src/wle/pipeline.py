"""
End-to-end WLE pipeline: load, filter, prune, diagnose, split, transform,
train, evaluate and report. Runs once, top to bottom; any exception aborts
the run.
"""

import argparse
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

import pandas as pd

from wle.config import Config
from wle.data import (
    load_dataset, filter_missing_columns, prune_columns, split_dataset,
    split_features_labels, load_test_labels, print_dataset_info, class_proportions,
)
from wle.diagnostics import summarize_diagnostics
from wle.download import download_datasets
from wle.evaluate import EvaluationReport, evaluate, accuracy_on_test, print_evaluation
from wle.model import TrainedModel, train_random_forest, heldout_importances
from wle.plots import (
    plot_confusion_matrix, plot_correlation_matrix, plot_mtry_accuracy,
    plot_variable_importance, plot_pca_variance,
)
from wle.preprocessing import PCATransform, fit_pca, print_pca_summary
from wle.util import WandBLogger, set_all_seeds

ANSI_BLUE = "\033[94m"
ANSI_RESET = "\033[0m"


@dataclass
class PipelineResult:
    transform: PCATransform
    model: TrainedModel
    diagnostics: dict
    validation: EvaluationReport
    test_predictions: pd.DataFrame
    test_accuracy: Optional[float]
    model_path: str
    report_path: str


def banner(title: str):
    print(f"\n{ANSI_BLUE}===({title})==={ANSI_RESET}")


def load_tables(config: Config, download: bool = True) -> Tuple[pd.DataFrame, pd.DataFrame]:
    if download:
        download_datasets(config.data)
    train_df = load_dataset(config.data.train_path, config.data.na_values)
    test_df = load_dataset(config.data.test_path, config.data.na_values)
    return train_df, test_df


def clean_table(df: pd.DataFrame, config: Config) -> pd.DataFrame:
    """Missing-value filter followed by the column pruner."""
    filtered = filter_missing_columns(df, config.data.missing_threshold)
    print(f"Kept {filtered.shape[1]} of {df.shape[1]} columns "
          f"(missing fraction < {config.data.missing_threshold})")
    return prune_columns(filtered, config.data.n_metadata_cols,
                         config.data.label_col, config.data.classes)


def align_predictors(X: pd.DataFrame, columns) -> pd.DataFrame:
    """Drop predictors the transform was not fit on; missing ones are left for apply() to reject."""
    extra = [c for c in X.columns if c not in columns]
    if extra:
        print(f"Ignoring {len(extra)} columns not seen in training: {extra}")
    return X.drop(columns=extra)


def resolve_test_labels(test_df: pd.DataFrame, config: Config) -> Optional[pd.Series]:
    """Ground truth for the testing table, if any is available."""
    label_col, id_col = config.data.label_col, config.data.id_col
    if label_col in test_df.columns:
        return test_df[label_col]
    if config.data.test_labels_path and id_col in test_df.columns:
        labels = load_test_labels(config.data.test_labels_path, id_col, label_col)
        return test_df[id_col].map(labels)
    return None


def check_model_matches(model: TrainedModel, config: Config):
    """A reused model must carry its transform and have been trained on the split this config produces."""
    if model.transform is None:
        raise ValueError("Saved model holds no fitted transform; retrain it")
    if model.random_seed != config.random_seed or model.val_size != config.data.val_size:
        raise ValueError(
            f"Model was trained on the split random_seed={model.random_seed}, "
            f"val_size={model.val_size}; config asks for random_seed={config.random_seed}, "
            f"val_size={config.data.val_size}")
    expected = model.transform.component_names
    actual = list(getattr(model.estimator, 'feature_names_in_', []))
    if actual != expected:
        raise ValueError(f"Model was fit on {len(actual)} components, "
                         f"transform yields {len(expected)}")


def importance_for_report(model: TrainedModel) -> Tuple[str, pd.Series]:
    if model.heldout_importance is not None:
        return "permutation, validation rows", model.heldout_importance
    return "mean decrease in Gini", model.importance


def format_report(result: PipelineResult, config: Config) -> List[str]:
    diag = result.diagnostics
    model = result.model
    lines = [
        "Weight Lifting Exercise quality - report",
        "=" * 80,
        f"Random seed: {config.random_seed}",
        "",
        f"Correlation ({config.diagnostics.corr_method}) pairs above {config.diagnostics.corr_cutoff}: "
        f"{len(diag['correlated_pairs'])}",
        diag['correlated_pairs'].to_string(index=False),
        f"Flagged as redundant: {diag['flagged_correlated']}",
        f"Near-zero-variance columns: {diag['n_nzv']} (zero variance: {diag['n_zero_var']})",
        "",
        f"PCA components kept: {result.transform.n_components} "
        f"({result.transform.explained_variance_ratio.sum():.3f} of variance)",
        "",
        f"Random forest, {model.estimator.n_estimators} trees, "
        f"{model.n_splits}-fold CV repeated {model.n_repeats} times",
        model.cv_results.to_string(index=False),
        f"Best mtry: {model.mtry} (CV accuracy {model.cv_accuracy:.4f}, OOB accuracy {model.oob_score:.4f})",
        "",
    ]
    importance_kind, importance = importance_for_report(model)
    lines += [f"Variable importance ({importance_kind})", importance.round(4).to_string(), ""]
    if model.cv_confusion is not None:
        lines += ["Cross-validated confusion matrix (% of held-out predictions)",
                  model.cv_confusion.round(1).to_string(), ""]
    lines += [
        f"Validation accuracy: {result.validation.accuracy:.4f} "
        f"(out-of-sample error {100 * result.validation.out_of_sample_error:.2f}%)",
        result.validation.confusion.to_string(),
        result.validation.class_stats.round(4).to_string(),
        "",
        "Test predictions",
        result.test_predictions.to_string(index=False),
    ]
    if result.test_accuracy is None:
        lines.append("Test accuracy: unavailable (no ground truth supplied)")
    else:
        lines.append(f"Test accuracy: {result.test_accuracy:.4f}")
    return lines


def run_pipeline(config: Config, download: bool = True, model_path: Optional[str] = None,
                 make_plots: bool = True) -> PipelineResult:
    set_all_seeds(config.random_seed)
    job_type = 'evaluate' if model_path else 'train'
    with WandBLogger(config, job_type=job_type) as logger:
        result = _run_stages(config, logger, download, model_path, make_plots)
    config.output_paths.clean()
    return result


def _run_stages(config: Config, logger: WandBLogger, download: bool,
                model_path: Optional[str], make_plots: bool) -> PipelineResult:
    paths = config.output_paths
    label_col, id_col = config.data.label_col, config.data.id_col

    banner("Loading")
    train_raw, test_raw = load_tables(config, download)
    print_dataset_info(train_raw, "Training table", label_col)
    print_dataset_info(test_raw, "Testing table", label_col)

    banner("Cleaning")
    train_df = clean_table(train_raw, config)
    test_df = clean_table(test_raw, config)
    if label_col not in train_df.columns:
        raise ValueError(f"Training table has no '{label_col}' column")

    banner("Diagnostics")
    X_all, _ = split_features_labels(train_df, label_col, id_col)
    diagnostics = summarize_diagnostics(
        X_all, config.diagnostics.corr_method, config.diagnostics.corr_cutoff,
        config.diagnostics.freq_cut, config.diagnostics.unique_cut)
    print(f"{len(diagnostics['correlated_pairs'])} predictor pairs with "
          f"|r| > {config.diagnostics.corr_cutoff}")
    print(f"Flagged as redundant: {diagnostics['flagged_correlated']}")
    print(f"Near-zero-variance columns: {diagnostics['n_nzv']}")

    banner("Splitting")
    train_part, val_part = split_dataset(train_df, label_col, config.data.val_size, config.random_seed)
    X_train, y_train = split_features_labels(train_part, label_col, id_col)
    X_val, y_val = split_features_labels(val_part, label_col, id_col)
    print(f"{X_train.shape=}")
    print(f"{X_val.shape=}")
    print(pd.DataFrame({
        'full': class_proportions(train_df[label_col]),
        'train': class_proportions(y_train),
        'validation': class_proportions(y_val),
    }).round(3).to_string())

    if model_path:
        banner("Loading model")
        model = TrainedModel.load(model_path)
        check_model_matches(model, config)
        transform = model.transform
        print(f"Reusing the transform stored with {model_path}")
    else:
        banner("Preprocessing")
        transform = fit_pca(X_train, config.preprocess.variance_target, config.preprocess.impute)
    print_pca_summary(transform)
    Z_train = transform.apply(X_train)
    Z_val = transform.apply(X_val)
    X_test, _ = split_features_labels(test_df, label_col, id_col)
    Z_test = transform.apply(align_predictors(X_test, transform.columns))

    if model_path:
        saved_path = model_path
    else:
        banner("Training")
        model = train_random_forest(Z_train, y_train, config.random_forest, config.random_seed)
        model = replace(model, transform=transform, val_size=config.data.val_size)
        model = replace(model, heldout_importance=heldout_importances(
            model, Z_val, y_val, n_jobs=config.random_forest.n_jobs))
        saved_path = model.save(paths.get_model_path("random_forest"))
        print(f"Model saved to {saved_path}")

    banner("Evaluation")
    validation = evaluate(model, Z_val, y_val, verbose=True)
    print_evaluation(validation, "Validation set")

    test_predictions = pd.DataFrame({'prediction': model.predict(Z_test).astype(str)})
    if id_col in test_df.columns:
        test_predictions.insert(0, id_col, test_df[id_col].to_numpy())
    test_acc = accuracy_on_test(model, Z_test, resolve_test_labels(test_df, config))
    print(test_predictions.to_string(index=False))
    print("Test accuracy:", "unavailable" if test_acc is None else f"{test_acc:.4f}")

    result = PipelineResult(
        transform=transform,
        model=model,
        diagnostics=diagnostics,
        validation=validation,
        test_predictions=test_predictions,
        test_accuracy=test_acc,
        model_path=saved_path,
        report_path=paths.get_report_path(),
    )
    with open(result.report_path, 'w') as f:
        f.write("\n".join(format_report(result, config)) + "\n")
    print(f"Report written to {result.report_path}")

    plot_paths = {}
    if make_plots:
        plot_paths = {
            'correlation': plot_correlation_matrix(
                diagnostics['correlation'], paths.get_plot_path("correlation"),
                config.diagnostics.corr_method),
            'pca_variance': plot_pca_variance(
                transform.cumulative_variance, transform.n_components,
                transform.variance_target, paths.get_plot_path("pca_variance")),
            'mtry_accuracy': plot_mtry_accuracy(
                model.cv_results, model.mtry, paths.get_plot_path("mtry_accuracy")),
            'variable_importance': plot_variable_importance(
                importance_for_report(model)[1], paths.get_plot_path("variable_importance")),
            'validation_confusion_matrix': plot_confusion_matrix(
                validation.confusion, paths.get_plot_path("validation_confusion_matrix"),
                title="Validation"),
        }

    if logger.enabled:
        metrics = {
            'pca/n_components': transform.n_components,
            'rf/mtry': model.mtry,
            'rf/cv_accuracy': model.cv_accuracy,
            'rf/oob_accuracy': model.oob_score,
            'validation/accuracy': validation.accuracy,
        }
        if test_acc is not None:
            metrics['test/accuracy'] = test_acc
        logger.log_metrics(metrics)
        logger.log_table('rf/cv_results', model.cv_results)
        for name, plot_path in plot_paths.items():
            logger.log_plot(name, plot_path)
        if not model_path:
            logger.log_model_artifact("random_forest", saved_path)

    return result


def main(argv=None):
    parser = argparse.ArgumentParser(description='Classify weight lifting exercise quality from wearable sensors')
    parser.add_argument('--config', type=str, default='config.yml', help='Path to the YAML configuration')
    parser.add_argument('--skip-download', action='store_true', help='Use the tables already on disk')
    parser.add_argument('--model', type=str, default=None, help='Evaluate a saved model instead of training')
    parser.add_argument('--no-plots', action='store_true', help='Skip writing figures')
    args = parser.parse_args(argv)

    config = Config.from_yaml(args.config)
    run_pipeline(config, download=not args.skip_download, model_path=args.model,
                 make_plots=not args.no_plots)


if __name__ == "__main__":
    main()
