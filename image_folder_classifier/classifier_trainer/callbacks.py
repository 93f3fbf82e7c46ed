from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict

from image_folder_classifier.lib import setup_logger

logger = setup_logger(__name__)


class EpochMetrics(BaseModel):
    """Progress metrics reported once per epoch and phase."""

    model_config = ConfigDict(frozen=True)

    epoch: int
    phase: str  # "train", "validation" or "train_eval"
    loss: float
    accuracy: float
    num_samples: int

    def __str__(self) -> str:
        return (
            f"Epoch {self.epoch} | {self.phase:<10} | "
            f"Loss: {self.loss:.4f}, Acc: {self.accuracy:.4f} ({self.num_samples} samples)"
        )


MetricsCallback = Callable[[EpochMetrics], None]


def log_metrics(metrics: EpochMetrics) -> None:
    logger.info(str(metrics))


class AimMetricsCallback:
    """
    Tracks epoch metrics in an Aim run.

    Each phase is tracked under its own context so train and validation curves
    can be compared in the Aim UI.
    """

    def __init__(
        self,
        experiment: str,
        hparams: Optional[Dict[str, Any]] = None,
        run: Any = None,
    ):
        if run is None:
            import aim

            run = aim.Run(experiment=experiment)
        self.run = run
        if hparams is not None:
            self.run["hparams"] = hparams
        logger.info(f"Aim run initialized for experiment '{experiment}'")

    def __call__(self, metrics: EpochMetrics) -> None:
        log_metrics(metrics)
        context = {"subset": metrics.phase}
        self.run.track(metrics.loss, name="epoch_loss", epoch=metrics.epoch, context=context)
        self.run.track(
            metrics.accuracy, name="epoch_accuracy", epoch=metrics.epoch, context=context
        )

    def track_final(self, values: Dict[str, float]) -> None:
        for name, value in values.items():
            self.run.track(value, name=name, context={"subset": "test"})

    def close(self) -> None:
        self.run.close()
