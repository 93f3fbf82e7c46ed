"""
Dataset Construction Component for the image folder classifier.

This module provides functionality for:
- Scanning a folder tree where each subdirectory names a class
- Loading the samples into a frame and shuffling it with a seed
- Mapping labels to keys and loading raw image bytes (fit, then transform)
- Splitting the dataset into train and test sets
"""

from .builder import (
    DatasetBuilder,
    MaterializedDataset,
    load_samples,
    materializer,
    shuffle_rows,
    train_test_split,
)
from .config import DatasetConfig, SplitConfig
from .scanner import scan_image_folders
from .transforms import (
    EstimatorChain,
    KeyToValueMapping,
    KeyToValueTransformer,
    RawImageBytesLoader,
    RawImageBytesTransformer,
    TransformerChain,
    ValueToKeyMapping,
    ValueToKeyTransformer,
)

__all__ = [
    "DatasetBuilder",
    "MaterializedDataset",
    "load_samples",
    "materializer",
    "shuffle_rows",
    "train_test_split",
    "DatasetConfig",
    "SplitConfig",
    "scan_image_folders",
    "EstimatorChain",
    "KeyToValueMapping",
    "KeyToValueTransformer",
    "RawImageBytesLoader",
    "RawImageBytesTransformer",
    "TransformerChain",
    "ValueToKeyMapping",
    "ValueToKeyTransformer",
]
