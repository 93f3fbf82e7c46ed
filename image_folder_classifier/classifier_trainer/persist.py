from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import pandas as pd
import torch

from image_folder_classifier.dataset_builder.transforms import (
    KeyToValueTransformer,
    TransformerChain,
)
from image_folder_classifier.lib import pandas, setup_logger

from .backend import HuggingFaceBackend, ModelBackend
from .config import Architecture
from .trainer import ImageClassificationModel

logger = setup_logger(__name__)

FORMAT_VERSION = 1


def save_model(
    model: TransformerChain,
    input_schema: Union[pd.DataFrame, Dict[str, str]],
    path: Union[str, Path],
) -> Path:
    """
    Write a fitted pipeline and the schema of its input to a single file.

    Args:
        model: Fitted chain whose first stage is an ImageClassificationModel
        input_schema: Frame the model was trained on, or its column to dtype mapping
        path: Artifact file to write; missing parent directories are created

    Returns:
        The path written
    """
    path = Path(path)
    classifier = model.find(ImageClassificationModel)
    if isinstance(input_schema, pd.DataFrame):
        input_schema = pandas.schema(input_schema)

    path.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"Saving the model to {path}...")

    payload: Dict[str, Any] = {
        "format_version": FORMAT_VERSION,
        "architecture": classifier.architecture.value,
        "label_vocabulary": list(classifier.label_vocabulary),
        "feature_column": classifier.feature_column,
        "label_column": classifier.label_column,
        "predicted_label_column": classifier.predicted_label_column,
        "score_column": classifier.score_column,
        "input_schema": dict(input_schema),
        "state_dict": {
            name: tensor.detach().cpu() for name, tensor in classifier.network.state_dict().items()
        },
    }
    torch.save(payload, path)

    logger.info("Model saved successfully!")
    return path


def load_model(
    path: Union[str, Path],
    backend: Optional[ModelBackend] = None,
) -> Tuple[TransformerChain, Dict[str, str]]:
    """Rebuild a pipeline written by ``save_model``; returns it with its input schema."""
    path = Path(path)
    payload = torch.load(path, map_location="cpu", weights_only=True)
    if payload.get("format_version") != FORMAT_VERSION:
        raise ValueError(
            f"Unsupported model format {payload.get('format_version')!r} in {path}"
        )

    backend = backend or HuggingFaceBackend()
    architecture = Architecture(payload["architecture"])
    vocabulary = tuple(payload["label_vocabulary"])

    network, preprocess = backend.create(architecture, len(vocabulary))
    network.load_state_dict(payload["state_dict"])
    logger.info(f"Loaded {architecture.value} model with classes {list(vocabulary)} from {path}")

    classifier = ImageClassificationModel(
        network=network,
        preprocess=preprocess,
        architecture=architecture,
        label_vocabulary=vocabulary,
        feature_column=payload["feature_column"],
        label_column=payload["label_column"],
        predicted_label_column=payload["predicted_label_column"],
        score_column=payload["score_column"],
    )
    chain = TransformerChain(
        [
            classifier,
            KeyToValueTransformer(
                input_column=classifier.predicted_label_column,
                output_column=classifier.predicted_label_column,
                vocabulary=vocabulary,
            ),
        ]
    )
    return chain, dict(payload["input_schema"])
