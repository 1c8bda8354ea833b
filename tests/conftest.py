import numpy as np
import pandas as pd
import pytest
import yaml

from wle.config import Config

CLASSES = ["A", "B", "C", "D", "E"]
SENSOR_LOCS = ["belt", "arm", "forearm", "dumbbell"]
SPARSE_COLS = ["kurtosis_roll_belt", "kurtosis_picth_belt", "skewness_roll_belt", "max_roll_belt"]


def sensor_columns():
    cols = []
    for loc in SENSOR_LOCS:
        cols += [f"roll_{loc}", f"pitch_{loc}", f"yaw_{loc}", f"total_accel_{loc}"]
        for kind in ["gyros", "accel", "magnet"]:
            cols += [f"{kind}_{loc}_{axis}" for axis in "xyz"]
    return cols


def make_wle_frame(n_rows=500, seed=0, labeled=True, sparse_fraction=0.98):
    """
    WLE-shaped table: seven metadata columns, 52 sensor columns whose means
    depend on the class, a few summary columns that are almost always
    missing, and the label (or problem_id for the testing table).
    """
    rng = np.random.RandomState(seed)
    centers = np.random.RandomState(1234).normal(0, 3, size=(len(CLASSES), len(sensor_columns())))
    labels = np.array(CLASSES)[np.arange(n_rows) % len(CLASSES)]
    rng.shuffle(labels)
    class_idx = np.array([CLASSES.index(lbl) for lbl in labels])

    df = pd.DataFrame({
        "X": np.arange(1, n_rows + 1),
        "user_name": rng.choice(["carlitos", "pedro", "adelmo", "charles", "eurico", "jeremy"], n_rows),
        "raw_timestamp_part_1": 1322489729 + np.arange(n_rows),
        "raw_timestamp_part_2": rng.randint(0, 999999, n_rows),
        "cvtd_timestamp": "28/11/2011 14:15",
        "new_window": np.where(rng.rand(n_rows) < 1 - sparse_fraction, "yes", "no"),
        "num_window": rng.randint(1, 864, n_rows),
    })
    sensors = centers[class_idx] + rng.normal(0, 1, size=(n_rows, len(sensor_columns())))
    for j, col in enumerate(sensor_columns()):
        df[col] = sensors[:, j]

    summary_rows = df["new_window"].to_numpy() == "yes"
    for col in SPARSE_COLS:
        df[col] = np.where(summary_rows, rng.normal(0, 1, n_rows), np.nan)

    if labeled:
        df["classe"] = labels
    else:
        df["problem_id"] = np.arange(1, n_rows + 1)
    return df


@pytest.fixture
def wle_train():
    return make_wle_frame(n_rows=500, seed=0)


@pytest.fixture
def wle_test():
    return make_wle_frame(n_rows=20, seed=1, labeled=False, sparse_fraction=1.0)


@pytest.fixture
def small_config_dict(tmp_path):
    return {
        "base_output_dir": str(tmp_path / "runs"),
        "random_seed": 42,
        "data": {
            "raw_dir": str(tmp_path / "raw_data"),
            "na_values": ["", "NA", "#DIV/0!"],
        },
        "random_forest": {
            "n_estimators": 25,
            "mtry_grid": [1, 2, 3],
            "n_splits": 3,
            "n_repeats": 1,
            "n_jobs": 1,
        },
        "wandb": {"mode": "disabled"},
    }


@pytest.fixture
def config_file(tmp_path, small_config_dict, wle_train, wle_test):
    """A YAML config whose raw_dir already holds both tables."""
    raw_dir = tmp_path / "raw_data"
    raw_dir.mkdir()
    wle_train.to_csv(raw_dir / "pml-training.csv", index=False, na_rep="NA")
    wle_test.to_csv(raw_dir / "pml-testing.csv", index=False, na_rep="NA")
    path = tmp_path / "config.yml"
    with open(path, "w") as f:
        yaml.safe_dump(small_config_dict, f)
    return path


@pytest.fixture
def small_config(config_file):
    return Config.from_yaml(str(config_file))
