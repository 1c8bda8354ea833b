import os
import random
from typing import Dict, Any, Optional

import numpy as np
import pandas as pd
import wandb

from wle.config import Config


def set_all_seeds(seed):
    """Set all seeds to make results reproducible"""
    np.random.seed(seed)
    random.seed(seed)
    os.environ['PYTHONHASHSEED'] = str(seed)


class WandBLogger:
    def __init__(self, config: Config, job_type: Optional[str] = None, run_name: str = None):
        self.config = config
        self.allow_artifacts = config.wandb.model_versioning
        self.job_type = job_type

        self.run = wandb.init(
            mode=config.wandb.mode,
            entity=config.wandb.entity,
            project=config.wandb.project,
            dir=config.output_paths.wandb_dir,
            config=config.to_dict(),
            job_type=self.job_type,
            name=run_name or f"run_{config.output_paths.run_id}",
        )

    @property
    def enabled(self) -> bool:
        return self.config.wandb.mode != 'disabled'

    def log_metrics(self, metrics: Dict[str, Any], step: int = None, commit: bool = True):
        """Log metrics to wandb"""
        wandb.log(metrics, step=step, commit=commit)

    def log_plot(self, plot_name: str, plot_path: str):
        """Log a saved figure to wandb"""
        wandb.log({plot_name: wandb.Image(plot_path)})

    def log_table(self, table_name: str, df: pd.DataFrame):
        wandb.log({table_name: wandb.Table(dataframe=df.reset_index())})

    def log_model_artifact(self, model_name: str, model_path: str):
        """
        Log a model file as a wandb artifact.

        Args:
            model_name: Name of the model (will be sanitized for wandb)
            model_path: Path to the saved model file
        """
        if not self.allow_artifacts:
            return
        artifact_name = f"{model_name.lower().replace(' ', '_')}_model"

        artifact = wandb.Artifact(
            name=artifact_name,
            type="model",
            description=f"Trained {model_name} model"
        )
        artifact.add_file(model_path)
        wandb.log_artifact(artifact)

    def finish(self):
        """Finish the wandb run"""
        wandb.finish()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.finish()
