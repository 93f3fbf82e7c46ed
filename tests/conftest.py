"""Shared fixtures: a small cat/dog image tree and an offline backend."""

from pathlib import Path
from typing import List, Tuple

import numpy as np
import pytest
import torch
from PIL import Image

from image_folder_classifier.classifier_trainer.config import Architecture

IMAGES_PER_CLASS = 10
COLORS = {"cat": (220, 40, 40), "dog": (40, 40, 220)}


def write_image(path: Path, color: Tuple[int, int, int], seed: int) -> None:
    rng = np.random.default_rng(seed)
    noise = rng.integers(-20, 20, size=(16, 16, 3))
    pixels = np.clip(np.array(color) + noise, 0, 255).astype(np.uint8)
    Image.fromarray(pixels).save(path, format="JPEG")


@pytest.fixture
def image_root(tmp_path: Path) -> Path:
    """Data/cat/*.jpg and Data/dog/*.jpg, ten images each."""
    root = tmp_path / "Data"
    for label, color in COLORS.items():
        (root / label).mkdir(parents=True)
        for i in range(IMAGES_PER_CLASS):
            write_image(root / label / f"{label}_{i:02d}.jpg", color, seed=i)
    return root


class TinyBackend:
    """A few-parameter conv net standing in for a pre-trained network."""

    def __init__(self):
        self.created: List[Tuple[Architecture, int]] = []

    def create(self, architecture: Architecture, num_classes: int):
        self.created.append((architecture, num_classes))
        network = torch.nn.Sequential(
            torch.nn.Conv2d(3, 4, kernel_size=3, padding=1),
            torch.nn.ReLU(),
            torch.nn.AdaptiveAvgPool2d(1),
            torch.nn.Flatten(),
            torch.nn.Linear(4, num_classes),
        )

        def preprocess(images: List[Image.Image]) -> torch.Tensor:
            arrays = [
                np.asarray(image.resize((8, 8)), dtype=np.float32) / 255.0
                for image in images
            ]
            return torch.from_numpy(np.stack(arrays)).permute(0, 3, 1, 2)

        return network, preprocess


@pytest.fixture
def tiny_backend() -> TinyBackend:
    return TinyBackend()
