from pathlib import Path
from typing import List, Optional, Sequence, Union

import pandas as pd
from sklearn.model_selection import train_test_split as sklearn_train_test_split

from image_folder_classifier.lib import (
    IMAGE_COLUMN,
    IMAGE_PATH_COLUMN,
    LABEL_COLUMN,
    DEFAULT_LABEL_KEY_COLUMN,
    ImageFormat,
    ImageSample,
    TrainTestData,
    assert_columns,
    class_distribution,
    missing_classes,
    pandas,
    setup_logger,
)

from .config import DEFAULT_SHUFFLE_SEED, DEFAULT_SPLIT_SEED, DEFAULT_TEST_FRACTION
from .scanner import scan_image_folders
from .transforms import (
    EstimatorChain,
    RawImageBytesLoader,
    TransformerChain,
    ValueToKeyMapping,
    ValueToKeyTransformer,
)

logger = setup_logger(__name__)


def load_samples(samples: Sequence[ImageSample]) -> pd.DataFrame:
    """Build a frame with one row per sample, in input order."""
    return pandas.from_models(samples, columns=[IMAGE_PATH_COLUMN, LABEL_COLUMN])


def shuffle_rows(frame: pd.DataFrame, seed: int = DEFAULT_SHUFFLE_SEED) -> pd.DataFrame:
    """Return the rows of ``frame`` in an order determined only by ``seed``."""
    return frame.sample(frac=1.0, random_state=seed).reset_index(drop=True)


def materializer(
    image_folder: Optional[Union[str, Path]] = None,
    label_key_column: str = DEFAULT_LABEL_KEY_COLUMN,
) -> EstimatorChain:
    """Label-to-key mapping followed by raw image byte loading."""
    return EstimatorChain(
        [
            ValueToKeyMapping(input_column=LABEL_COLUMN, output_column=label_key_column),
            RawImageBytesLoader(
                input_column=IMAGE_PATH_COLUMN,
                output_column=IMAGE_COLUMN,
                image_folder=str(image_folder) if image_folder is not None else None,
            ),
        ]
    )


def train_test_split(
    frame: pd.DataFrame,
    test_fraction: float = DEFAULT_TEST_FRACTION,
    seed: int = DEFAULT_SPLIT_SEED,
    stratify_column: Optional[str] = None,
) -> TrainTestData:
    """
    Partition the rows of a frame into a train set and a test set.

    Args:
        frame: Dataset to partition
        test_fraction: Share of the rows placed in the test set, in (0, 1)
        seed: Random seed for reproducibility
        stratify_column: Keep the proportions of this column's values in both sets

    Returns:
        TrainTestData with ceil(len(frame) * test_fraction) test rows
    """
    if not 0 < test_fraction < 1:
        raise ValueError(f"test_fraction must be between 0 and 1, got {test_fraction}")

    stratify = None
    if stratify_column is not None:
        assert_columns(frame, [stratify_column])
        stratify = frame[stratify_column]

    train_set, test_set = sklearn_train_test_split(
        frame,
        test_size=test_fraction,
        random_state=seed,
        stratify=stratify,
    )

    split = TrainTestData(
        train_set=train_set.reset_index(drop=True),
        test_set=test_set.reset_index(drop=True),
    )

    if LABEL_COLUMN in frame.columns:
        labels = list(class_distribution(frame))
        absent = missing_classes(split.test_set, labels)
        if absent:
            logger.warning(
                f"Test set has no samples of {len(absent)} class(es): {absent}. "
                "Their accuracy cannot be measured; consider stratifying the split."
            )

    logger.info(
        f"Split {len(frame)} rows into {len(split.train_set)} train and {len(split.test_set)} test rows"
    )
    return split


class DatasetBuilder:
    """Turns an image folder tree into a shuffled, ready-to-train frame."""

    def __init__(
        self,
        image_root: Union[str, Path],
        label_key_column: str = DEFAULT_LABEL_KEY_COLUMN,
        seed: int = DEFAULT_SHUFFLE_SEED,
        formats: Optional[List[ImageFormat]] = None,
    ):
        self.image_root = Path(image_root)
        self.label_key_column = label_key_column
        self.seed = seed
        self.formats = formats

    def scan(self) -> pd.DataFrame:
        """Scan the image root and return the shuffled (path, label) frame."""
        samples = scan_image_folders(self.image_root, formats=self.formats)
        if not samples:
            raise ValueError(f"No images found in {self.image_root}")
        return shuffle_rows(load_samples(samples), seed=self.seed)

    def build(self) -> "MaterializedDataset":
        """
        Scan, shuffle and materialize the whole dataset.

        The key mapping is fit on the full shuffled frame, before any split,
        so every subset shares the same key vocabulary.
        """
        logger.info(f"Building dataset from {self.image_root}")
        frame = self.scan()
        fitted = materializer(self.image_root, self.label_key_column).fit(frame)
        data = fitted.transform(frame)
        logger.info(f"Dataset built: {class_distribution(data)}")
        return MaterializedDataset(data=data, transforms=fitted)


class MaterializedDataset:
    """The materialized frame together with the fitted transforms that produced it."""

    def __init__(self, data: pd.DataFrame, transforms: TransformerChain):
        self.data = data
        self.transforms = transforms

    @property
    def label_keys(self) -> ValueToKeyTransformer:
        return self.transforms.find(ValueToKeyTransformer)

    @property
    def vocabulary(self) -> List[str]:
        return list(self.label_keys.vocabulary)

    def __len__(self) -> int:
        return len(self.data)
