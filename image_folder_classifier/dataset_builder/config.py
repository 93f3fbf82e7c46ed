from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from image_folder_classifier.lib import ImageFormat

DEFAULT_TEST_FRACTION = 0.2
DEFAULT_SPLIT_SEED = 1
DEFAULT_SHUFFLE_SEED = 0


class SplitConfig(BaseModel):
    """How the materialized dataset is partitioned into train and test sets."""

    model_config = ConfigDict(frozen=True)

    test_fraction: float = Field(
        DEFAULT_TEST_FRACTION,
        description="Fraction of the rows assigned to the test set",
        gt=0,
        lt=1,
    )
    seed: int = Field(DEFAULT_SPLIT_SEED, description="Seed of the random partition")
    stratify: bool = Field(
        False, description="Keep the class proportions of the full set in both subsets"
    )


class DatasetConfig(BaseModel):
    """Configuration for reading an image folder tree."""

    model_config = ConfigDict(frozen=True)

    image_formats: Optional[List[ImageFormat]] = Field(
        None, description="Restrict scanning to these formats; every file is used when unset"
    )
    split: SplitConfig = Field(default_factory=SplitConfig)
