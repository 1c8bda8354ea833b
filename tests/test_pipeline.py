import os
import random

import numpy as np
import pandas as pd
import pytest
import yaml

from conftest import make_wle_frame
from wle.config import Config
from wle.pipeline import run_pipeline, main, clean_table, align_predictors
from wle.util import WandBLogger, set_all_seeds


@pytest.fixture(scope="module")
def pipeline_run(tmp_path_factory):
    """One full run on synthetic tables, shared by the checks below."""
    root = tmp_path_factory.mktemp("e2e")
    raw_dir = root / "raw_data"
    raw_dir.mkdir()
    make_wle_frame(n_rows=500, seed=0).to_csv(raw_dir / "pml-training.csv", index=False, na_rep="NA")
    make_wle_frame(n_rows=20, seed=1, labeled=False, sparse_fraction=1.0).to_csv(
        raw_dir / "pml-testing.csv", index=False, na_rep="NA")

    config = Config.from_dict({
        "base_output_dir": str(root / "runs"),
        "run_id": "e2e",
        "random_seed": 42,
        "data": {"raw_dir": str(raw_dir)},
        "random_forest": {"n_estimators": 25, "mtry_grid": [1, 2, 3],
                          "n_splits": 3, "n_repeats": 1, "n_jobs": 1},
    })
    return config, run_pipeline(config, download=False)


def test_validation_accuracy(pipeline_run):
    _, result = pipeline_run
    assert result.validation.accuracy >= 0.95
    assert result.validation.confusion.shape == (5, 5)
    assert result.validation.n_samples == 100


def test_transform_fit_on_training_predictors_only(pipeline_run):
    _, result = pipeline_run
    columns = result.transform.columns
    assert "gyros_belt_x" in columns
    assert "kurtosis_picth_belt" not in columns
    assert "classe" not in columns and "num_window" not in columns
    assert len(columns) == 52
    assert result.model.estimator.n_features_in_ == result.transform.n_components


def test_test_predictions_without_ground_truth(pipeline_run):
    _, result = pipeline_run
    assert result.test_accuracy is None
    assert list(result.test_predictions.columns) == ["problem_id", "prediction"]
    assert len(result.test_predictions) == 20
    assert set(result.test_predictions["prediction"]) <= {"A", "B", "C", "D", "E"}


def test_artifacts_written(pipeline_run):
    config, result = pipeline_run
    assert os.path.exists(result.model_path)
    assert os.path.exists(result.report_path)
    with open(result.report_path) as f:
        report = f.read()
    assert f"Best mtry: {result.model.mtry}" in report
    assert "Test accuracy: unavailable" in report
    assert "Variable importance (permutation, validation rows)" in report
    for name in ["correlation", "pca_variance", "mtry_accuracy",
                 "variable_importance", "validation_confusion_matrix"]:
        assert os.path.exists(config.output_paths.get_plot_path(name))


def test_reuse_saved_model(pipeline_run):
    config, result = pipeline_run
    again = run_pipeline(config, download=False, model_path=result.model_path, make_plots=False)
    assert again.model.mtry == result.model.mtry
    assert again.validation.accuracy == result.validation.accuracy
    pd.testing.assert_frame_equal(again.test_predictions, result.test_predictions)
    np.testing.assert_array_equal(again.transform.rotation, result.transform.rotation)
    assert again.transform.columns == result.transform.columns


def test_saved_model_carries_transform_and_split(pipeline_run):
    _, result = pipeline_run
    assert result.model.transform is not None
    assert result.model.transform.n_components == result.transform.n_components
    assert result.model.random_seed == 42
    assert result.model.val_size == 0.2
    assert set(result.model.heldout_importance.index) == set(result.transform.component_names)


def test_reuse_saved_model_under_other_seed_aborts(pipeline_run):
    config, result = pipeline_run
    config.random_seed = 7
    try:
        with pytest.raises(ValueError, match="random_seed=42"):
            run_pipeline(config, download=False, model_path=result.model_path, make_plots=False)
    finally:
        config.random_seed = 42


def test_test_accuracy_with_external_labels(pipeline_run, tmp_path):
    config, result = pipeline_run
    answers = result.test_predictions.copy()
    answers["classe"] = answers["prediction"]
    answers.loc[0, "classe"] = "E" if answers.loc[0, "prediction"] != "E" else "A"
    labels_path = tmp_path / "answers.csv"
    answers[["problem_id", "classe"]].to_csv(labels_path, index=False)

    config.data.test_labels_path = str(labels_path)
    try:
        labeled = run_pipeline(config, download=False, model_path=result.model_path, make_plots=False)
    finally:
        config.data.test_labels_path = None
    assert labeled.test_accuracy == pytest.approx(19 / 20)


def test_clean_table(wle_train, small_config):
    cleaned = clean_table(wle_train, small_config)
    assert "kurtosis_roll_belt" not in cleaned.columns
    assert cleaned.columns[0] == "roll_belt"
    assert isinstance(cleaned["classe"].dtype, pd.CategoricalDtype)


def test_align_predictors_drops_extra_columns():
    X = pd.DataFrame({"a": [1.0], "b": [2.0], "c": [3.0]})
    assert list(align_predictors(X, ("a", "b")).columns) == ["a", "b"]


def test_mismatched_test_schema_aborts(config_file, monkeypatch):
    finished = []
    original_finish = WandBLogger.finish

    def finish(self):
        finished.append(self.job_type)
        original_finish(self)

    monkeypatch.setattr(WandBLogger, "finish", finish)
    with open(config_file) as f:
        raw = yaml.safe_load(f)
    test_path = os.path.join(raw["data"]["raw_dir"], "pml-testing.csv")
    pd.read_csv(test_path).drop(columns=["gyros_belt_x"]).to_csv(test_path, index=False)

    with pytest.raises(ValueError, match="schema"):
        run_pipeline(Config.from_yaml(str(config_file)), download=False, make_plots=False)
    # tracking run is closed even though the run aborted
    assert finished == ["train"]


def test_cli_main(config_file):
    with open(config_file) as f:
        raw = yaml.safe_load(f)
    main(["--config", str(config_file), "--skip-download", "--no-plots"])
    runs = os.listdir(raw["base_output_dir"])
    assert len(runs) == 1
    assert os.path.exists(os.path.join(raw["base_output_dir"], runs[0], "models", "random_forest.joblib"))


def test_set_all_seeds():
    set_all_seeds(3)
    first = (np.random.rand(), random.random())
    set_all_seeds(3)
    assert (np.random.rand(), random.random()) == first


def test_wandb_logger_disabled(small_config):
    with WandBLogger(small_config, job_type="test") as logger:
        assert not logger.enabled
        logger.log_metrics({"validation/accuracy": 0.99})
        logger.log_model_artifact("random_forest", "unused.joblib")
