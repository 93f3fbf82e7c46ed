from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd

from image_folder_classifier.classifier_trainer.backend import ModelBackend
from image_folder_classifier.classifier_trainer.callbacks import MetricsCallback, log_metrics
from image_folder_classifier.classifier_trainer.config import (
    Hyperparameters,
    ImageClassificationOptions,
)
from image_folder_classifier.classifier_trainer.evaluate import (
    MulticlassClassificationMetrics,
    evaluate,
)
from image_folder_classifier.classifier_trainer.persist import save_model
from image_folder_classifier.classifier_trainer.pipeline import build_pipeline
from image_folder_classifier.dataset_builder import (
    DatasetBuilder,
    TransformerChain,
    train_test_split,
)
from image_folder_classifier.dataset_builder.config import (
    DEFAULT_SHUFFLE_SEED,
    DEFAULT_SPLIT_SEED,
    DEFAULT_TEST_FRACTION,
)
from image_folder_classifier.lib import (
    DEFAULT_LABEL_KEY_COLUMN,
    DEFAULT_PREDICTED_LABEL_COLUMN,
    DEFAULT_SCORE_COLUMN,
    IMAGE_COLUMN,
    ImageFormat,
    TrainTestData,
    setup_logger,
)

logger = setup_logger(__name__)


class ImageFolderClassifier:
    """
    Trains an image classifier on a folder tree with one subdirectory per class.

    Creating the classifier scans, shuffles and materializes the whole dataset;
    the remaining steps (split, train, evaluate, save) are explicit calls.
    """

    def __init__(
        self,
        image_dir: Union[str, Path],
        label_column: str = DEFAULT_LABEL_KEY_COLUMN,
        predicted_label_column: str = DEFAULT_PREDICTED_LABEL_COLUMN,
        seed: int = DEFAULT_SHUFFLE_SEED,
        score_column: str = DEFAULT_SCORE_COLUMN,
        backend: Optional[ModelBackend] = None,
        formats: Optional[List[ImageFormat]] = None,
    ):
        self.label_column = label_column
        self.predicted_label_column = predicted_label_column
        self.score_column = score_column
        self.seed = seed
        self.backend = backend

        self.dataset = DatasetBuilder(
            image_dir, label_key_column=label_column, seed=seed, formats=formats
        ).build()

    @property
    def images(self) -> pd.DataFrame:
        return self.dataset.data

    @property
    def vocabulary(self) -> List[str]:
        return self.dataset.vocabulary

    def train_test_split(
        self,
        test_fraction: float = DEFAULT_TEST_FRACTION,
        seed: int = DEFAULT_SPLIT_SEED,
        stratify: bool = False,
    ) -> TrainTestData:
        return train_test_split(
            self.images,
            test_fraction=test_fraction,
            seed=seed,
            stratify_column=self.label_column if stratify else None,
        )

    def pipeline_options(
        self,
        validation_set: Optional[pd.DataFrame],
        hyperparameters: Optional[Hyperparameters] = None,
        metrics_callback: Optional[MetricsCallback] = log_metrics,
    ) -> ImageClassificationOptions:
        hyperparameters = hyperparameters or Hyperparameters()
        return ImageClassificationOptions(
            feature_column=IMAGE_COLUMN,
            label_column=self.label_column,
            predicted_label_column=self.predicted_label_column,
            score_column=self.score_column,
            label_vocabulary=tuple(self.vocabulary),
            validation_set=validation_set,
            architecture=hyperparameters.architecture,
            metrics_callback=metrics_callback,
            test_on_train_set=hyperparameters.test_on_train_set,
            epochs=hyperparameters.epochs,
            batch_size=hyperparameters.batch_size,
            learning_rate=hyperparameters.learning_rate,
            seed=self.seed,
        )

    def train(
        self,
        train_set: pd.DataFrame,
        test_set: Optional[pd.DataFrame] = None,
        hyperparameters: Optional[Hyperparameters] = None,
        metrics_callback: Optional[MetricsCallback] = log_metrics,
    ) -> TransformerChain:
        """Fit the classification pipeline on ``train_set``, validating on ``test_set``."""
        options = self.pipeline_options(test_set, hyperparameters, metrics_callback)
        pipeline = build_pipeline(options, backend=self.backend)

        logger.info("Training the model...")
        model = pipeline.fit(train_set)
        logger.info("Model training finished!")

        return model

    def predict(self, model: TransformerChain, test_set: pd.DataFrame) -> pd.DataFrame:
        return model.transform(test_set)

    def evaluate(
        self, model: TransformerChain, test_set: pd.DataFrame
    ) -> MulticlassClassificationMetrics:
        predictions = self.predict(model, test_set)
        return evaluate(
            predictions,
            vocabulary=self.vocabulary,
            label_column=self.label_column,
            predicted_label_column=self.predicted_label_column,
            score_column=self.score_column,
        )

    def save_model(
        self,
        model: TransformerChain,
        schema: Union[pd.DataFrame, Dict[str, str]],
        path: Union[str, Path],
    ) -> Path:
        return save_model(model, schema, path)
