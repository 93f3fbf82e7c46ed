from enum import Enum
from pathlib import Path
from typing import Dict, List, Tuple

import pandas as pd
from pydantic import BaseModel, ConfigDict

IMAGE_PATH_COLUMN = "image_path"
LABEL_COLUMN = "label"
IMAGE_COLUMN = "image"

DEFAULT_LABEL_KEY_COLUMN = "LabelAsKey"
DEFAULT_PREDICTED_LABEL_COLUMN = "PredictedLabel"
DEFAULT_SCORE_COLUMN = "Score"


class ImageSample(BaseModel):
    """Represents a single image file with the label taken from its folder."""

    model_config = ConfigDict(frozen=True)

    image_path: str
    label: str


class ImageFormat(str, Enum):
    PNG = ".png"
    JPG = ".jpg"
    JPEG = ".jpeg"
    GIF = ".gif"
    BMP = ".bmp"
    WEBP = ".webp"

    def matches(self, path: Path) -> bool:
        return path.suffix.lower() == self.value


class TrainTestData(BaseModel):
    """Two disjoint partitions of one dataset."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    train_set: pd.DataFrame
    test_set: pd.DataFrame

    def sizes(self) -> Tuple[int, int]:
        return len(self.train_set), len(self.test_set)


def class_distribution(frame: pd.DataFrame, column: str = LABEL_COLUMN) -> Dict[str, int]:
    """Count rows per class, in order of first appearance."""
    counts = frame[column].value_counts(sort=False)
    return {str(label): int(count) for label, count in counts.items()}


def missing_classes(frame: pd.DataFrame, labels: List[str], column: str = LABEL_COLUMN) -> List[str]:
    present = set(frame[column].astype(str))
    return [label for label in labels if label not in present]
