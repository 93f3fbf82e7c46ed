from typing import ClassVar, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import torch
from PIL import Image
from torch.utils.data import DataLoader
from tqdm import tqdm

from image_folder_classifier.lib import assert_columns, setup_logger

from .backend import HuggingFaceBackend, ModelBackend, Preprocess, logits_of
from .callbacks import EpochMetrics
from .config import Architecture, ImageClassificationOptions
from .dataset import ImageBytesDataset, collate_images, decode_image

logger = setup_logger(__name__)


def select_device() -> torch.device:
    return torch.device("cuda" if torch.cuda.is_available() else "cpu")


class ImageClassificationModel:
    """
    A fine-tuned network that scores images held as raw bytes in a frame.

    ``transform`` adds the predicted class key and the per-class probabilities;
    converting keys back to labels is left to the next stage of the chain.
    """

    def __init__(
        self,
        network: torch.nn.Module,
        preprocess: Preprocess,
        architecture: Architecture,
        label_vocabulary: Sequence[str],
        feature_column: str,
        label_column: str,
        predicted_label_column: str,
        score_column: str,
        batch_size: int = 16,
        device: Optional[torch.device] = None,
    ):
        self.network = network
        self.preprocess = preprocess
        self.architecture = architecture
        self.label_vocabulary: Tuple[str, ...] = tuple(label_vocabulary)
        self.feature_column = feature_column
        self.label_column = label_column
        self.predicted_label_column = predicted_label_column
        self.score_column = score_column
        self.batch_size = batch_size
        self.device = device or select_device()
        self.network.to(self.device)

    @torch.no_grad()
    def score_images(self, images: List[Image.Image]) -> torch.Tensor:
        """Class probabilities for a batch of images, shape (len(images), num_classes)."""
        self.network.eval()
        pixel_values = self.preprocess(images).to(self.device)
        logits = logits_of(self.network(pixel_values))
        return torch.softmax(logits, dim=1).cpu()

    def transform(self, frame: pd.DataFrame) -> pd.DataFrame:
        assert_columns(frame, [self.feature_column])
        keys: List[int] = []
        scores: List[List[float]] = []

        images = list(frame[self.feature_column])
        for start in range(0, len(images), self.batch_size):
            batch = [decode_image(data) for data in images[start : start + self.batch_size]]
            probabilities = self.score_images(batch)
            keys.extend(int(key) for key in torch.argmax(probabilities, dim=1))
            scores.extend(row.tolist() for row in probabilities)

        output = frame.copy()
        output[self.predicted_label_column] = pd.Series(keys, index=frame.index, dtype="int64")
        output[self.score_column] = pd.Series(scores, index=frame.index, dtype="object")
        return output

    def predict_image(self, data: bytes) -> Tuple[str, Dict[str, float]]:
        """Classify one image; returns the predicted label and every class probability."""
        probabilities = self.score_images([decode_image(data)])[0]
        key = int(torch.argmax(probabilities))
        scores = {
            label: float(probabilities[index])
            for index, label in enumerate(self.label_vocabulary)
        }
        return self.label_vocabulary[key], scores


class ImageClassificationTrainer:
    """
    Fine-tunes a pre-trained network on a frame of image bytes and label keys.

    The network and its preprocessing come from the backend; this class only
    runs the optimisation loop and reports progress through the options' callback.
    """

    requires_fit_data: ClassVar[bool] = True

    def __init__(
        self,
        options: ImageClassificationOptions,
        backend: Optional[ModelBackend] = None,
    ):
        self.options = options
        self.backend = backend or HuggingFaceBackend()
        self.device = select_device()
        self.criterion = torch.nn.CrossEntropyLoss()

    def _loader(self, frame: pd.DataFrame, shuffle: bool) -> DataLoader:
        dataset = ImageBytesDataset(
            frame,
            feature_column=self.options.feature_column,
            label_column=self.options.label_column,
        )
        return DataLoader(
            dataset,
            batch_size=self.options.batch_size,
            shuffle=shuffle,
            collate_fn=collate_images,
            generator=torch.Generator().manual_seed(self.options.seed) if shuffle else None,
        )

    def _check_keys(self, frame: pd.DataFrame, name: str) -> None:
        assert_columns(frame, [self.options.feature_column, self.options.label_column])
        keys = frame[self.options.label_column]
        if len(keys) and (keys.min() < 0 or keys.max() >= self.options.num_classes):
            raise ValueError(
                f"{name} has label keys outside [0, {self.options.num_classes})"
            )

    def _run_epoch(
        self,
        network: torch.nn.Module,
        preprocess: Preprocess,
        loader: DataLoader,
        optimizer: Optional[torch.optim.Optimizer] = None,
        desc: str = "Train",
    ) -> Tuple[float, float, int]:
        """Runs a single epoch; trains when an optimizer is given, otherwise only scores."""
        is_training = optimizer is not None
        if is_training:
            network.train()
            context = torch.enable_grad()
        else:
            network.eval()
            context = torch.no_grad()

        total_loss = 0.0
        total_correct = 0
        total_samples = 0

        pbar = tqdm(loader, desc=desc, leave=False)
        with context:
            for images, labels in pbar:
                pixel_values = preprocess(images).to(self.device)
                labels = labels.to(self.device)

                if is_training:
                    optimizer.zero_grad()

                logits = logits_of(network(pixel_values))
                loss = self.criterion(logits, labels)

                if is_training:
                    loss.backward()
                    optimizer.step()

                batch_size = labels.size(0)
                total_loss += loss.item() * batch_size
                total_correct += int((torch.argmax(logits, dim=1) == labels).sum().item())
                total_samples += batch_size

                pbar.set_postfix({"loss": f"{loss.item():.4f}"})

        return total_loss / total_samples, total_correct / total_samples, total_samples

    def _report(self, epoch: int, phase: str, result: Tuple[float, float, int]) -> None:
        loss, accuracy, num_samples = result
        metrics = EpochMetrics(
            epoch=epoch, phase=phase, loss=loss, accuracy=accuracy, num_samples=num_samples
        )
        logger.debug(str(metrics))
        if self.options.metrics_callback is not None:
            self.options.metrics_callback(metrics)

    def fit(self, frame: pd.DataFrame) -> ImageClassificationModel:
        options = self.options
        if len(frame) == 0:
            raise ValueError("Cannot train on an empty training set")
        self._check_keys(frame, "Training set")

        validation_set = options.validation_set
        if validation_set is not None and len(validation_set) > 0:
            self._check_keys(validation_set, "Validation set")
        else:
            validation_set = None

        torch.manual_seed(options.seed)
        np.random.seed(options.seed)
        if torch.cuda.is_available():
            torch.cuda.manual_seed_all(options.seed)

        network, preprocess = self.backend.create(options.architecture, options.num_classes)
        network.to(self.device)
        logger.info(
            f"Fine-tuning {options.architecture.value} on {len(frame)} images, "
            f"{options.num_classes} classes, device {self.device}"
        )

        train_loader = self._loader(frame, shuffle=True)
        val_loader = self._loader(validation_set, shuffle=False) if validation_set is not None else None
        optimizer = torch.optim.AdamW(network.parameters(), lr=options.learning_rate)

        for epoch in range(1, options.epochs + 1):
            logger.debug(f"--- Epoch {epoch}/{options.epochs} ---")
            result = self._run_epoch(network, preprocess, train_loader, optimizer, desc="Train")
            self._report(epoch, "train", result)

            if val_loader is not None:
                result = self._run_epoch(network, preprocess, val_loader, desc="Validation")
                self._report(epoch, "validation", result)

        if options.test_on_train_set:
            result = self._run_epoch(
                network, preprocess, self._loader(frame, shuffle=False), desc="Train eval"
            )
            self._report(options.epochs, "train_eval", result)

        return ImageClassificationModel(
            network=network,
            preprocess=preprocess,
            architecture=options.architecture,
            label_vocabulary=options.label_vocabulary,
            feature_column=options.feature_column,
            label_column=options.label_column,
            predicted_label_column=options.predicted_label_column,
            score_column=options.score_column,
            batch_size=options.batch_size,
            device=self.device,
        )
