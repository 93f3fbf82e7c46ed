from typing import Callable, Dict, List, Protocol, Tuple

import torch
from PIL import Image
from transformers import AutoImageProcessor, AutoModelForImageClassification

from image_folder_classifier.lib import setup_logger

from .config import Architecture

logger = setup_logger(__name__)

Preprocess = Callable[[List[Image.Image]], torch.Tensor]

CHECKPOINTS: Dict[Architecture, str] = {
    Architecture.RESNET_V2_101: "microsoft/resnet-101",
    Architecture.RESNET_V2_50: "microsoft/resnet-50",
    Architecture.MOBILENET_V2: "google/mobilenet_v2_1.0_224",
    Architecture.EFFICIENTNET_B0: "google/efficientnet-b0",
    Architecture.DINOV2_BASE: "facebook/dinov2-base",
}


class ModelBackend(Protocol):
    """Source of pre-trained networks and their matching image preprocessing."""

    def create(
        self, architecture: Architecture, num_classes: int
    ) -> Tuple[torch.nn.Module, Preprocess]: ...


def logits_of(outputs) -> torch.Tensor:
    """Backends may return raw logits or a model output object carrying them."""
    logits = getattr(outputs, "logits", outputs)
    assert isinstance(logits, torch.Tensor)
    return logits


class HuggingFaceBackend:
    """Loads pre-trained image classifiers from the Hugging Face hub with a fresh head."""

    def __init__(self, checkpoints: Dict[Architecture, str] = CHECKPOINTS):
        self.checkpoints = dict(checkpoints)

    def create(
        self, architecture: Architecture, num_classes: int
    ) -> Tuple[torch.nn.Module, Preprocess]:
        if num_classes < 2:
            raise ValueError(f"At least 2 classes are needed, got {num_classes}")
        model_name = self.checkpoints[architecture]
        logger.info(f"Loading pre-trained {architecture.value} from {model_name}")

        processor = AutoImageProcessor.from_pretrained(model_name)
        model = AutoModelForImageClassification.from_pretrained(
            model_name,
            num_labels=num_classes,
            ignore_mismatched_sizes=True,
        )

        def preprocess(images: List[Image.Image]) -> torch.Tensor:
            """The processor resizes and normalises as the checkpoint expects."""
            inputs = processor(images=images, return_tensors="pt")
            return inputs["pixel_values"]

        return model, preprocess
