from typing import Optional

from image_folder_classifier.dataset_builder.transforms import (
    EstimatorChain,
    KeyToValueMapping,
)

from .backend import ModelBackend
from .config import ImageClassificationOptions
from .trainer import ImageClassificationTrainer


def build_pipeline(
    options: ImageClassificationOptions,
    backend: Optional[ModelBackend] = None,
) -> EstimatorChain:
    """
    Image classification trainer followed by the mapping of predicted keys back to labels.

    Fitting the returned chain trains the network; the fitted chain predicts labels.
    """
    return EstimatorChain(
        [
            ImageClassificationTrainer(options, backend=backend),
            KeyToValueMapping(
                input_column=options.predicted_label_column,
                vocabulary=options.label_vocabulary,
            ),
        ]
    )
