from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError

from image_folder_classifier.classifier import ImageFolderClassifier
from image_folder_classifier.lib import setup_logger, set_verbosity

from .callbacks import AimMetricsCallback, log_metrics
from .config import load_run_config
from .evaluate import format_metrics, plot_confusion_matrix
from .persist import load_model
from .trainer import ImageClassificationModel

app = typer.Typer(help="Image Classifier Training Component")

logger = setup_logger(__name__)


@app.command()
def train(
    data_dir: str = typer.Argument(
        ..., help="Path to the image root; each subdirectory is one class"
    ),
    config_file: Optional[str] = typer.Option(
        None, "--config", help="Path to the run configuration file (YAML/JSON)"
    ),
    model_path: str = typer.Option(
        "./Model/model.zip", help="Path of the model file to write"
    ),
    plot: Optional[str] = typer.Option(
        None, help="Also save the confusion matrix heatmap to this image path"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    Train an image classifier on a folder tree, evaluate it on a held-out split and save it.
    """
    set_verbosity(verbose)
    try:
        try:
            config = load_run_config(config_file)
        except ValidationError as e:
            logger.critical(e, exc_info=True)
            raise typer.Exit(code=1)

        classifier = ImageFolderClassifier(
            data_dir,
            label_column=config.columns.label_key,
            predicted_label_column=config.columns.predicted_label,
            score_column=config.columns.score,
            seed=config.seed,
            formats=config.dataset.image_formats,
        )

        split = classifier.train_test_split(
            test_fraction=config.dataset.split.test_fraction,
            seed=config.dataset.split.seed,
            stratify=config.dataset.split.stratify,
        )

        tracker = None
        callback = log_metrics
        if config.tracking.enabled:
            tracker = AimMetricsCallback(
                experiment=config.tracking.experiment,
                hparams=config.model_dump(mode="json"),
            )
            callback = tracker

        try:
            model = classifier.train(
                split.train_set,
                split.test_set,
                hyperparameters=config.training,
                metrics_callback=callback,
            )
            metrics = classifier.evaluate(model, split.test_set)
            if tracker is not None:
                tracker.track_final(
                    {
                        "test_macro_accuracy": metrics.macro_accuracy,
                        "test_micro_accuracy": metrics.micro_accuracy,
                    }
                )
        finally:
            if tracker is not None:
                tracker.close()

        classifier.save_model(model, split.train_set, model_path)

        typer.echo(format_metrics(metrics))
        if plot:
            plot_confusion_matrix(metrics, plot)
    except typer.Exit:
        raise
    except Exception as e:
        logger.critical(e, exc_info=True)
        raise typer.Exit(code=1)


@app.command()
def predict(
    model_path: str = typer.Argument(..., help="Path of a model file written by 'train'"),
    images: List[str] = typer.Argument(..., help="Image files to classify"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    Classify image files with a saved model; prints path, label and probability per image.
    """
    set_verbosity(verbose)
    try:
        model, _ = load_model(model_path)
        classifier = model.find(ImageClassificationModel)
        for image in images:
            label, scores = classifier.predict_image(Path(image).read_bytes())
            typer.echo(f"{image}\t{label}\t{scores[label]:.4f}")
    except Exception as e:
        logger.critical(e, exc_info=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
