"""
Utility library for the image folder classifier.

This module provides common utilities used across the pipeline components.
"""

from .guards import assert_columns
from .logger import setup_logger, set_verbosity
from .pandas import pandas
from .models import (
    ImageSample,
    ImageFormat,
    TrainTestData,
    class_distribution,
    missing_classes,
    IMAGE_PATH_COLUMN,
    LABEL_COLUMN,
    IMAGE_COLUMN,
    DEFAULT_LABEL_KEY_COLUMN,
    DEFAULT_PREDICTED_LABEL_COLUMN,
    DEFAULT_SCORE_COLUMN,
)

__all__ = [
    "assert_columns",
    "pandas",
    "setup_logger",
    "set_verbosity",
    "ImageSample",
    "ImageFormat",
    "TrainTestData",
    "class_distribution",
    "missing_classes",
    "IMAGE_PATH_COLUMN",
    "LABEL_COLUMN",
    "IMAGE_COLUMN",
    "DEFAULT_LABEL_KEY_COLUMN",
    "DEFAULT_PREDICTED_LABEL_COLUMN",
    "DEFAULT_SCORE_COLUMN",
]
