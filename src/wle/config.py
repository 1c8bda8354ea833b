from dataclasses import dataclass, field
from typing import List, Dict, Optional, Literal, Any
import yaml
import os
from datetime import datetime

from wle.constants import (
    RANDOM_SEED, URL_BASE, TRAIN_FILE, TEST_FILE, NA_VALUES,
    LABEL_COL, ID_COL, N_METADATA_COLS, CLASSES, MISSING_THRESHOLD,
    CORR_METHOD, CORR_CUTOFF, FREQ_CUT, UNIQUE_CUT,
    VAL_SIZE, VARIANCE_TARGET, N_ESTIMATORS, MTRY_GRID,
    CV_SPLITS, CV_REPEATS, N_JOBS,
)


@dataclass
class DataConfig:
    url_base: str = URL_BASE
    raw_dir: str = "raw_data/"
    train_file: str = TRAIN_FILE
    test_file: str = TEST_FILE
    na_values: List[str] = field(default_factory=lambda: list(NA_VALUES))
    missing_threshold: float = MISSING_THRESHOLD
    n_metadata_cols: int = N_METADATA_COLS
    label_col: str = LABEL_COL
    id_col: str = ID_COL
    classes: List[str] = field(default_factory=lambda: list(CLASSES))
    val_size: float = VAL_SIZE
    test_labels_path: Optional[str] = None

    def __post_init__(self):
        """Validate configuration parameters"""
        if not 0 < self.missing_threshold <= 1:
            raise ValueError("missing_threshold must be in (0, 1]")
        if not 0 < self.val_size < 1:
            raise ValueError("val_size must be between 0 and 1")
        if self.n_metadata_cols < 0:
            raise ValueError("n_metadata_cols must be non-negative")
        if len(set(self.classes)) != len(self.classes) or len(self.classes) < 2:
            raise ValueError("classes must hold at least two unique labels")
        if self.test_labels_path and not os.path.exists(self.test_labels_path):
            raise FileNotFoundError(f"Test labels file {self.test_labels_path} does not exist.")

    @property
    def train_path(self) -> str:
        return os.path.join(self.raw_dir, self.train_file)

    @property
    def test_path(self) -> str:
        return os.path.join(self.raw_dir, self.test_file)

    @property
    def train_url(self) -> str:
        return self.url_base + self.train_file

    @property
    def test_url(self) -> str:
        return self.url_base + self.test_file


@dataclass
class DiagnosticsConfig:
    corr_method: Literal["spearman", "pearson"] = CORR_METHOD
    corr_cutoff: float = CORR_CUTOFF
    freq_cut: float = FREQ_CUT
    unique_cut: float = UNIQUE_CUT

    def __post_init__(self):
        if self.corr_method not in {"spearman", "pearson"}:
            raise ValueError("corr_method must be one of {'spearman', 'pearson'}")
        if not 0 < self.corr_cutoff < 1:
            raise ValueError("corr_cutoff must be between 0 and 1")


@dataclass
class PreprocessConfig:
    variance_target: float = VARIANCE_TARGET
    impute: bool = True

    def __post_init__(self):
        if not 0 < self.variance_target <= 1:
            raise ValueError("variance_target must be in (0, 1]")


@dataclass
class RFConfig:
    n_estimators: int = N_ESTIMATORS
    mtry_grid: List[int] = field(default_factory=lambda: list(MTRY_GRID))
    n_splits: int = CV_SPLITS
    n_repeats: int = CV_REPEATS
    n_jobs: int = N_JOBS
    scoring: str = "accuracy"
    cv_confusion: bool = True

    def __post_init__(self):
        if self.n_estimators <= 0:
            raise ValueError("n_estimators must be greater than 0")
        if not self.mtry_grid or any(m <= 0 for m in self.mtry_grid):
            raise ValueError("mtry_grid must hold positive integers")
        if self.n_splits < 2:
            raise ValueError("n_splits must be at least 2")
        if self.n_repeats < 1:
            raise ValueError("n_repeats must be at least 1")


@dataclass
class WandBConfig:
    mode: str = "disabled"
    entity: Optional[str] = None
    project: str = "wle-quality"
    model_versioning: bool = False


@dataclass
class OutputPathsConfig:
    base_path: str
    run_id: str = None

    def __post_init__(self):
        if not os.path.exists(self.base_path):
            os.makedirs(self.base_path)

        if not self.run_id:
            self.run_id = datetime.now().strftime("%Y%m%d_%H%M%S")

        # Create run directory structure
        self.run_dir = os.path.join(self.base_path, f"run_{self.run_id}")
        self.wandb_dir = os.path.join(self.run_dir, "wandb")
        self.plots_dir = os.path.join(self.run_dir, "plots")
        self.models_dir = os.path.join(self.run_dir, "models")
        self.metrics_dir = os.path.join(self.run_dir, "metrics")

        for dir_path in [self.run_dir, self.wandb_dir, self.plots_dir,
                         self.models_dir, self.metrics_dir]:
            os.makedirs(dir_path, exist_ok=True)

    def get_plot_path(self, plot_name: str) -> str:
        """Get path for a specific plot"""
        return os.path.join(self.plots_dir, f"{plot_name}.png")

    def get_model_path(self, model_name: str) -> str:
        """Get path for saving a fitted model"""
        return os.path.join(self.models_dir, f"{model_name}.joblib")

    def get_report_path(self) -> str:
        return os.path.join(self.metrics_dir, "report.txt")

    def clean(self):
        for root, dirs, _ in os.walk(self.run_dir, topdown=False):
            for dir_name in dirs:
                dir_path = os.path.join(root, dir_name)
                try:
                    # only empty directories go
                    if not os.listdir(dir_path):
                        os.rmdir(dir_path)
                except OSError:
                    continue


@dataclass
class Config:
    output_paths: OutputPathsConfig
    data: DataConfig = field(default_factory=DataConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)
    preprocess: PreprocessConfig = field(default_factory=PreprocessConfig)
    random_forest: RFConfig = field(default_factory=RFConfig)
    wandb: WandBConfig = field(default_factory=WandBConfig)
    random_seed: int = RANDOM_SEED
    file_path: Optional[str] = None

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any], file_path: Optional[str] = None) -> 'Config':
        output_paths = OutputPathsConfig(
            base_path=config_dict.get('base_output_dir', 'runs'),
            run_id=config_dict.get('run_id'),
        )
        return cls(
            output_paths=output_paths,
            data=DataConfig(**config_dict.get('data', {})),
            diagnostics=DiagnosticsConfig(**config_dict.get('diagnostics', {})),
            preprocess=PreprocessConfig(**config_dict.get('preprocess', {})),
            random_forest=RFConfig(**config_dict.get('random_forest', {})),
            wandb=WandBConfig(**config_dict.get('wandb', {})),
            random_seed=config_dict.get('random_seed', RANDOM_SEED),
            file_path=file_path,
        )

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'Config':
        with open(yaml_path, 'r') as f:
            config_dict = yaml.safe_load(f) or {}
        return cls.from_dict(config_dict, file_path=yaml_path)

    def to_dict(self) -> Dict[str, Any]:
        """Flat view of the run settings, used for experiment tracking."""
        return {
            'random_seed': self.random_seed,
            'data': self.data.__dict__,
            'diagnostics': self.diagnostics.__dict__,
            'preprocess': self.preprocess.__dict__,
            'random_forest': self.random_forest.__dict__,
        }
