import typer

from image_folder_classifier.lib import (
    LABEL_COLUMN,
    class_distribution,
    setup_logger,
    set_verbosity,
)

from .builder import DatasetBuilder, train_test_split
from .config import DEFAULT_SHUFFLE_SEED, DEFAULT_SPLIT_SEED, DEFAULT_TEST_FRACTION

app = typer.Typer(help="Dataset Construction Component")

logger = setup_logger(__name__)


@app.command()
def summary(
    image_dir: str = typer.Argument(..., help="Path to the root image directory"),
    test_fraction: float = typer.Option(DEFAULT_TEST_FRACTION, help="Fraction of test data"),
    seed: int = typer.Option(DEFAULT_SHUFFLE_SEED, help="Shuffle seed"),
    split_seed: int = typer.Option(DEFAULT_SPLIT_SEED, help="Split seed"),
    stratify: bool = typer.Option(False, help="Stratify the split by label"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    Scan an image folder tree and report the images per class and the train/test split sizes.
    """
    set_verbosity(verbose)
    try:
        frame = DatasetBuilder(image_dir, seed=seed).scan()
        split = train_test_split(
            frame,
            test_fraction=test_fraction,
            seed=split_seed,
            stratify_column=LABEL_COLUMN if stratify else None,
        )
    except Exception as e:
        logger.critical(e, exc_info=True)
        raise typer.Exit(code=1)

    distribution = class_distribution(frame)
    typer.echo(f"Dataset: {len(frame)} images in {len(distribution)} classes")
    for label, count in sorted(distribution.items()):
        typer.echo(f"  - {label}: {count} images")
    typer.echo(f"  - Train set: {len(split.train_set)} images")
    typer.echo(f"  - Test set: {len(split.test_set)} images")


if __name__ == "__main__":
    app()
