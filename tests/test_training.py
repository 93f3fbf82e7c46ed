"""End-to-end tests: split, train, evaluate, save and load with an offline backend."""

from typing import List

import pandas as pd
import pytest

from image_folder_classifier.classifier import ImageFolderClassifier
from image_folder_classifier.classifier_trainer.callbacks import AimMetricsCallback, EpochMetrics
from image_folder_classifier.classifier_trainer.config import (
    Architecture,
    Hyperparameters,
    ImageClassificationOptions,
)
from image_folder_classifier.classifier_trainer.dataset import ImageBytesDataset, collate_images
from image_folder_classifier.classifier_trainer.persist import load_model, save_model
from image_folder_classifier.classifier_trainer.pipeline import build_pipeline
from image_folder_classifier.classifier_trainer.trainer import (
    ImageClassificationModel,
    ImageClassificationTrainer,
)

HYPERPARAMETERS = Hyperparameters(
    architecture=Architecture.MOBILENET_V2, epochs=2, batch_size=4, learning_rate=0.01
)


@pytest.fixture
def classifier(image_root, tiny_backend) -> ImageFolderClassifier:
    return ImageFolderClassifier(image_root, seed=0, backend=tiny_backend)


@pytest.fixture
def trained(classifier):
    split = classifier.train_test_split(test_fraction=0.2, seed=1)
    model = classifier.train(
        split.train_set, split.test_set, hyperparameters=HYPERPARAMETERS, metrics_callback=None
    )
    return classifier, split, model


class TestImageFolderClassifier:
    """Tests for the orchestration of a whole run."""

    def test_dataset(self, classifier):
        assert len(classifier.images) == 20
        assert set(classifier.vocabulary) == {"cat", "dog"}

    def test_split_counts(self, classifier):
        split = classifier.train_test_split()

        assert split.sizes() == (16, 4)

    def test_stratified_split(self, classifier):
        split = classifier.train_test_split(test_fraction=0.2, seed=1, stratify=True)

        assert split.test_set["label"].value_counts().to_dict() == {"cat": 2, "dog": 2}

    def test_train_reports_progress(self, classifier, tiny_backend):
        split = classifier.train_test_split()
        reported: List[EpochMetrics] = []

        classifier.train(
            split.train_set,
            split.test_set,
            hyperparameters=HYPERPARAMETERS.model_copy(update={"test_on_train_set": True}),
            metrics_callback=reported.append,
        )

        assert [(m.epoch, m.phase) for m in reported] == [
            (1, "train"),
            (1, "validation"),
            (2, "train"),
            (2, "validation"),
            (2, "train_eval"),
        ]
        assert [m.num_samples for m in reported] == [16, 4, 16, 4, 16]
        assert all(0.0 <= m.accuracy <= 1.0 for m in reported)
        assert tiny_backend.created == [(Architecture.MOBILENET_V2, 2)]

    def test_predict(self, trained):
        classifier, split, model = trained
        before = split.test_set.copy()

        predictions = classifier.predict(model, split.test_set)

        assert len(predictions) == 4
        assert set(predictions["PredictedLabel"]) <= {"cat", "dog"}
        assert all(len(scores) == 2 for scores in predictions["Score"])
        assert all(sum(scores) == pytest.approx(1.0) for scores in predictions["Score"])
        pd.testing.assert_frame_equal(split.test_set, before)

    def test_evaluate(self, trained):
        classifier, split, model = trained

        metrics = classifier.evaluate(model, split.test_set)

        assert 0.0 <= metrics.micro_accuracy <= 1.0
        assert 0.0 <= metrics.macro_accuracy <= 1.0
        assert metrics.log_loss is not None
        assert sum(map(sum, metrics.confusion_matrix.counts)) == 4
        assert metrics.confusion_matrix.labels == classifier.vocabulary

    def test_evaluate_is_deterministic(self, trained):
        classifier, split, model = trained

        assert classifier.evaluate(model, split.test_set) == classifier.evaluate(
            model, split.test_set
        )


class TestImageBytesDataset:
    """Tests for the torch dataset over image bytes and label keys."""

    def test_items_and_batches(self, image_root):
        data = (image_root / "cat" / "cat_00.jpg").read_bytes()
        frame = pd.DataFrame({"image": [data, data], "LabelAsKey": [1, 0]})

        dataset = ImageBytesDataset(frame, feature_column="image", label_column="LabelAsKey")
        images, labels = collate_images([dataset[0], dataset[1]])

        assert len(dataset) == 2
        assert images[0].mode == "RGB"
        assert labels.tolist() == [1, 0]

    def test_label_column_is_required(self, image_root):
        data = (image_root / "cat" / "cat_00.jpg").read_bytes()
        frame = pd.DataFrame({"image": [data]})

        with pytest.raises(KeyError):
            ImageBytesDataset(frame, feature_column="image", label_column="LabelAsKey")


class TestTrainer:
    """Tests for the trainer and the pipeline builder."""

    def test_pipeline_shape(self, tiny_backend):
        options = ImageClassificationOptions(label_vocabulary=("cat", "dog"))

        pipeline = build_pipeline(options, backend=tiny_backend)

        assert len(pipeline.estimators) == 2
        assert isinstance(pipeline.estimators[0], ImageClassificationTrainer)

    def test_empty_training_set(self, tiny_backend):
        options = ImageClassificationOptions(label_vocabulary=("cat", "dog"))
        frame = pd.DataFrame({"image": [], "LabelAsKey": []})

        with pytest.raises(ValueError):
            ImageClassificationTrainer(options, backend=tiny_backend).fit(frame)

    def test_keys_outside_vocabulary(self, classifier, tiny_backend):
        options = ImageClassificationOptions(label_vocabulary=("cat",), epochs=1)

        with pytest.raises(ValueError):
            ImageClassificationTrainer(options, backend=tiny_backend).fit(classifier.images)

    def test_predict_image(self, trained, image_root):
        _, _, model = trained
        network = model.find(ImageClassificationModel)

        label, scores = network.predict_image((image_root / "cat" / "cat_00.jpg").read_bytes())

        assert label in {"cat", "dog"}
        assert set(scores) == {"cat", "dog"}
        assert scores[label] == max(scores.values())


class TestPersistence:
    """Tests for saving and loading models."""

    def test_round_trip(self, trained, tmp_path, tiny_backend):
        classifier, split, model = trained
        path = tmp_path / "Model" / "nested" / "animals.zip"

        written = classifier.save_model(model, split.train_set, path)
        loaded, schema = load_model(path, backend=tiny_backend)

        assert written == path
        assert path.is_file()
        assert list(schema) == list(split.train_set.columns)
        assert schema["LabelAsKey"] == "int64"

        expected = classifier.predict(model, split.test_set)
        actual = classifier.predict(loaded, split.test_set)
        assert list(actual["PredictedLabel"]) == list(expected["PredictedLabel"])
        for a, b in zip(actual["Score"], expected["Score"]):
            assert a == pytest.approx(b, abs=1e-6)

    def test_loaded_model_keeps_columns(self, trained, tmp_path, tiny_backend):
        _, split, model = trained
        save_model(model, {"image": "object"}, tmp_path / "model.zip")

        loaded, schema = load_model(tmp_path / "model.zip", backend=tiny_backend)
        network = loaded.find(ImageClassificationModel)

        assert schema == {"image": "object"}
        assert network.architecture == Architecture.MOBILENET_V2
        assert network.predicted_label_column == "PredictedLabel"
        assert network.label_vocabulary == model.find(ImageClassificationModel).label_vocabulary

    def test_unwritable_path(self, trained, tmp_path):
        _, split, model = trained
        blocker = tmp_path / "file"
        blocker.write_text("")

        with pytest.raises(OSError):
            save_model(model, split.train_set, blocker / "model.zip")


class FakeRun:
    def __init__(self):
        self.values = {}
        self.tracked = []
        self.closed = False

    def __setitem__(self, key, value):
        self.values[key] = value

    def track(self, value, name, epoch=None, context=None):
        self.tracked.append((name, value, epoch, context))

    def close(self):
        self.closed = True


class TestAimMetricsCallback:
    """Tests for experiment tracking."""

    def test_tracks_each_metric(self):
        run = FakeRun()
        callback = AimMetricsCallback("exp", hparams={"seed": 0}, run=run)

        callback(EpochMetrics(epoch=1, phase="train", loss=0.5, accuracy=0.75, num_samples=8))
        callback.track_final({"test_micro_accuracy": 1.0})
        callback.close()

        assert run.values == {"hparams": {"seed": 0}}
        assert run.tracked == [
            ("epoch_loss", 0.5, 1, {"subset": "train"}),
            ("epoch_accuracy", 0.75, 1, {"subset": "train"}),
            ("test_micro_accuracy", 1.0, None, {"subset": "test"}),
        ]
        assert run.closed
