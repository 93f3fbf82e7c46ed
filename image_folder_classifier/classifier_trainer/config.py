import json
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import pandas as pd
import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

from image_folder_classifier.dataset_builder.config import (
    DEFAULT_SHUFFLE_SEED,
    DatasetConfig,
)
from image_folder_classifier.lib import (
    DEFAULT_LABEL_KEY_COLUMN,
    DEFAULT_PREDICTED_LABEL_COLUMN,
    DEFAULT_SCORE_COLUMN,
    IMAGE_COLUMN,
    IMAGE_PATH_COLUMN,
    LABEL_COLUMN,
)

from .callbacks import MetricsCallback, log_metrics


def check_column_names(named: Sequence[Tuple[str, str]], reserved: Sequence[str]) -> None:
    """Raise ValueError when two roles share a column or a role takes a reserved column."""
    seen = {}
    for role, column in named:
        if column in reserved:
            raise ValueError(f"{role} column '{column}' is reserved for the dataset")
        if column in seen:
            raise ValueError(f"{role} and {seen[column]} columns are both named '{column}'")
        seen[column] = role


class Architecture(str, Enum):
    """Pre-trained networks available for transfer learning."""

    RESNET_V2_101 = "resnet_v2_101"
    RESNET_V2_50 = "resnet_v2_50"
    MOBILENET_V2 = "mobilenet_v2"
    EFFICIENTNET_B0 = "efficientnet_b0"
    DINOV2_BASE = "dinov2_base"


DEFAULT_ARCHITECTURE = Architecture.RESNET_V2_101
DEFAULT_LEARNING_RATE = 0.0001
DEFAULT_BATCH_SIZE = 16
DEFAULT_NUM_EPOCHS = 10


class Hyperparameters(BaseModel):
    """Hyperparameters for the training process."""

    architecture: Architecture = Field(
        DEFAULT_ARCHITECTURE, description="Pre-trained network to fine-tune"
    )
    learning_rate: float = Field(
        DEFAULT_LEARNING_RATE,
        description="Learning rate for the model",
        gt=0,
    )
    batch_size: int = Field(
        DEFAULT_BATCH_SIZE, description="Batch size for training", ge=1
    )
    epochs: int = Field(DEFAULT_NUM_EPOCHS, description="Number of epochs to train", ge=1)
    test_on_train_set: bool = Field(
        False, description="Score the training set again once training is done"
    )


class ColumnConfig(BaseModel):
    label_key: str = Field(DEFAULT_LABEL_KEY_COLUMN, description="Column holding label keys")
    predicted_label: str = Field(
        DEFAULT_PREDICTED_LABEL_COLUMN, description="Column receiving predictions"
    )
    score: str = Field(DEFAULT_SCORE_COLUMN, description="Column receiving class probabilities")

    @model_validator(mode="after")
    def check_names(self) -> "ColumnConfig":
        check_column_names(
            [
                ("label_key", self.label_key),
                ("predicted_label", self.predicted_label),
                ("score", self.score),
            ],
            reserved=[IMAGE_PATH_COLUMN, LABEL_COLUMN, IMAGE_COLUMN],
        )
        return self


class TrackingConfig(BaseModel):
    enabled: bool = Field(False, description="Track training metrics with Aim")
    experiment: str = Field("image-folder-classifier", description="Aim experiment name")


class RunConfig(BaseModel):
    """Configuration for one scan, train, evaluate and save run."""

    seed: int = Field(DEFAULT_SHUFFLE_SEED, description="Random seed for reproducibility")
    columns: ColumnConfig = Field(default_factory=ColumnConfig)
    dataset: DatasetConfig = Field(default_factory=DatasetConfig)
    training: Hyperparameters = Field(default_factory=Hyperparameters)
    tracking: TrackingConfig = Field(default_factory=TrackingConfig)


def load_run_config(path: Optional[Union[str, Path]]) -> RunConfig:
    """Load a RunConfig from a YAML or JSON file; defaults when no path is given."""
    if path is None:
        return RunConfig()

    config_path = Path(path)
    if config_path.suffix.lower() in [".yaml", ".yml"]:
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    elif config_path.suffix.lower() == ".json":
        with open(config_path, "r") as f:
            config_data = json.load(f)
    else:
        raise ValueError(f"Unsupported config file format: {config_path.suffix}")

    return RunConfig.model_validate(config_data)


class ImageClassificationOptions(BaseModel):
    """Everything the image classification trainer needs for one training run."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    feature_column: str = IMAGE_COLUMN
    label_column: str = DEFAULT_LABEL_KEY_COLUMN
    predicted_label_column: str = DEFAULT_PREDICTED_LABEL_COLUMN
    score_column: str = DEFAULT_SCORE_COLUMN
    label_vocabulary: Tuple[str, ...]
    validation_set: Optional[pd.DataFrame] = None
    architecture: Architecture = DEFAULT_ARCHITECTURE
    metrics_callback: Optional[MetricsCallback] = log_metrics
    test_on_train_set: bool = False
    epochs: int = Field(DEFAULT_NUM_EPOCHS, ge=1)
    batch_size: int = Field(DEFAULT_BATCH_SIZE, ge=1)
    learning_rate: float = Field(DEFAULT_LEARNING_RATE, gt=0)
    seed: int = DEFAULT_SHUFFLE_SEED

    @model_validator(mode="after")
    def check_columns(self) -> "ImageClassificationOptions":
        check_column_names(
            [
                ("feature", self.feature_column),
                ("label", self.label_column),
                ("predicted_label", self.predicted_label_column),
                ("score", self.score_column),
            ],
            reserved=[IMAGE_PATH_COLUMN, LABEL_COLUMN],
        )
        return self

    @property
    def num_classes(self) -> int:
        return len(self.label_vocabulary)
