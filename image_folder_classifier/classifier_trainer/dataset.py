import io
from typing import List, Sequence, Tuple

import pandas as pd
import torch
from PIL import Image
from torch.utils.data import Dataset as TorchDataset

from image_folder_classifier.lib import assert_columns


def decode_image(data: bytes) -> Image.Image:
    """Decode raw image bytes into an RGB Pillow image."""
    with Image.open(io.BytesIO(data)) as image:
        return image.convert("RGB")


class ImageBytesDataset(TorchDataset[Tuple[Image.Image, int]]):
    """PyTorch Dataset over a frame of raw image bytes and label keys."""

    def __init__(self, frame: pd.DataFrame, feature_column: str, label_column: str):
        assert_columns(frame, [feature_column, label_column])
        self.images: List[bytes] = list(frame[feature_column])
        self.labels: List[int] = [int(key) for key in frame[label_column]]

    def __len__(self) -> int:
        return len(self.images)

    def __getitem__(self, idx: int) -> Tuple[Image.Image, int]:
        return decode_image(self.images[idx]), self.labels[idx]


def collate_images(
    batch: Sequence[Tuple[Image.Image, int]],
) -> Tuple[List[Image.Image], torch.Tensor]:
    """Keep images as a list; the backend preprocessing turns them into a tensor."""
    images = [image for image, _ in batch]
    labels = torch.tensor([label for _, label in batch], dtype=torch.long)
    return images, labels
