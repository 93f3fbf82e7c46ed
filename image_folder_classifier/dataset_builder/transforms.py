"""
Two-phase (fit, then transform) column transforms over pandas frames.

An estimator is an immutable description of a transform. ``fit`` learns what
it needs from a frame and returns an immutable transformer; ``transform``
returns a new frame and never modifies its input.
"""

from pathlib import Path
from typing import ClassVar, Iterable, List, Optional, Protocol, Sequence, Tuple, Type, TypeVar

import pandas as pd
from pydantic import BaseModel, ConfigDict

from image_folder_classifier.lib import (
    IMAGE_COLUMN,
    IMAGE_PATH_COLUMN,
    LABEL_COLUMN,
    DEFAULT_LABEL_KEY_COLUMN,
    assert_columns,
    setup_logger,
)

logger = setup_logger(__name__)

T = TypeVar("T")


class Transformer(Protocol):
    def transform(self, frame: pd.DataFrame) -> pd.DataFrame: ...


class Estimator(Protocol):
    requires_fit_data: ClassVar[bool]

    def fit(self, frame: pd.DataFrame) -> Transformer: ...


class ValueToKeyTransformer(BaseModel):
    """Maps the values of a column to dense 0-based integer keys."""

    model_config = ConfigDict(frozen=True)

    input_column: str
    output_column: str
    vocabulary: Tuple[str, ...]

    def key_of(self, value: str) -> int:
        return self.vocabulary.index(value)

    def transform(self, frame: pd.DataFrame) -> pd.DataFrame:
        assert_columns(frame, [self.input_column])
        lookup = {value: key for key, value in enumerate(self.vocabulary)}

        values = frame[self.input_column].astype(str)
        unknown = sorted(set(values) - set(lookup))
        if unknown:
            raise KeyError(f"Values {unknown} are not in the key vocabulary")

        output = frame.copy()
        output[self.output_column] = values.map(lookup).astype("int64")
        return output


class ValueToKeyMapping(BaseModel):
    """Learns a key vocabulary from the distinct values of a column, in order of first occurrence."""

    model_config = ConfigDict(frozen=True)

    requires_fit_data: ClassVar[bool] = True

    input_column: str = LABEL_COLUMN
    output_column: str = DEFAULT_LABEL_KEY_COLUMN

    def fit(self, frame: pd.DataFrame) -> ValueToKeyTransformer:
        assert_columns(frame, [self.input_column])
        vocabulary = tuple(str(value) for value in pd.unique(frame[self.input_column].astype(str)))
        logger.info(
            f"Mapped {len(vocabulary)} distinct '{self.input_column}' values to keys: {list(vocabulary)}"
        )
        return ValueToKeyTransformer(
            input_column=self.input_column,
            output_column=self.output_column,
            vocabulary=vocabulary,
        )


class KeyToValueTransformer(BaseModel):
    """Replaces integer keys with the labels they stand for."""

    model_config = ConfigDict(frozen=True)

    input_column: str
    output_column: str
    vocabulary: Tuple[str, ...]

    def transform(self, frame: pd.DataFrame) -> pd.DataFrame:
        assert_columns(frame, [self.input_column])
        keys = [int(key) for key in frame[self.input_column]]
        invalid = sorted({key for key in keys if not 0 <= key < len(self.vocabulary)})
        if invalid:
            raise KeyError(
                f"Keys {invalid} are outside a vocabulary of {len(self.vocabulary)} values"
            )

        output = frame.copy()
        output[self.output_column] = [self.vocabulary[key] for key in keys]
        return output


class KeyToValueMapping(BaseModel):
    """
    Inverse of ValueToKeyMapping for a known vocabulary.

    The output column defaults to the input column, so keys are replaced in place.
    """

    model_config = ConfigDict(frozen=True)

    requires_fit_data: ClassVar[bool] = False

    input_column: str
    vocabulary: Tuple[str, ...]
    output_column: Optional[str] = None

    def fit(self, frame: pd.DataFrame) -> KeyToValueTransformer:
        return KeyToValueTransformer(
            input_column=self.input_column,
            output_column=self.output_column or self.input_column,
            vocabulary=self.vocabulary,
        )


class RawImageBytesTransformer(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_column: str
    output_column: str
    image_folder: Optional[str] = None

    def resolve(self, image_path: str) -> Path:
        path = Path(image_path)
        if self.image_folder is None or path.is_absolute():
            return path
        return Path(self.image_folder) / path

    def transform(self, frame: pd.DataFrame) -> pd.DataFrame:
        assert_columns(frame, [self.input_column])
        output = frame.copy()
        output[self.output_column] = [
            self.resolve(str(image_path)).read_bytes()
            for image_path in frame[self.input_column]
        ]
        logger.debug(f"Loaded raw bytes for {len(output)} images")
        return output


class RawImageBytesLoader(BaseModel):
    """Loads the bytes of the file each row points at, relative to ``image_folder``."""

    model_config = ConfigDict(frozen=True)

    requires_fit_data: ClassVar[bool] = False

    input_column: str = IMAGE_PATH_COLUMN
    output_column: str = IMAGE_COLUMN
    image_folder: Optional[str] = None

    def fit(self, frame: pd.DataFrame) -> RawImageBytesTransformer:
        return RawImageBytesTransformer(
            input_column=self.input_column,
            output_column=self.output_column,
            image_folder=self.image_folder,
        )


class TransformerChain:
    """Fitted transformers applied one after another."""

    def __init__(self, transformers: Iterable[Transformer]):
        self._transformers: Tuple[Transformer, ...] = tuple(transformers)

    @property
    def transformers(self) -> Tuple[Transformer, ...]:
        return self._transformers

    def find(self, kind: Type[T]) -> T:
        """Return the first transformer of the given type."""
        for transformer in self._transformers:
            if isinstance(transformer, kind):
                return transformer
        raise LookupError(f"No {kind.__name__} in chain")

    def transform(self, frame: pd.DataFrame) -> pd.DataFrame:
        for transformer in self._transformers:
            frame = transformer.transform(frame)
        return frame

    def __len__(self) -> int:
        return len(self._transformers)

    def __getitem__(self, index: int) -> Transformer:
        return self._transformers[index]


class EstimatorChain:
    """
    Estimators fitted in sequence, each on the output of the previous fitted stage.

    A fitted stage is only applied to the data when a later estimator learns
    from it (``requires_fit_data``).
    """

    def __init__(self, estimators: Sequence[Estimator] = ()):
        self._estimators: Tuple[Estimator, ...] = tuple(estimators)

    @property
    def estimators(self) -> Tuple[Estimator, ...]:
        return self._estimators

    def append(self, estimator: Estimator) -> "EstimatorChain":
        return EstimatorChain(self._estimators + (estimator,))

    def fit(self, frame: pd.DataFrame) -> TransformerChain:
        transformers: List[Transformer] = []
        for index, estimator in enumerate(self._estimators):
            transformer = estimator.fit(frame)
            transformers.append(transformer)
            later = self._estimators[index + 1 :]
            if any(getattr(later_stage, "requires_fit_data", True) for later_stage in later):
                frame = transformer.transform(frame)
        return TransformerChain(transformers)

