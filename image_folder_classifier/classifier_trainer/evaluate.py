from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.figure import Figure
from pydantic import BaseModel, ConfigDict
from sklearn.metrics import accuracy_score, confusion_matrix

from image_folder_classifier.lib import assert_columns, setup_logger

logger = setup_logger(__name__)

PROBABILITY_EPSILON = 1e-15


class ConfusionMatrix(BaseModel):
    """Counts of true (rows) against predicted (columns) labels."""

    model_config = ConfigDict(frozen=True)

    labels: List[str]
    counts: List[List[int]]

    @property
    def per_class_recall(self) -> List[float]:
        counts = np.array(self.counts)
        totals = counts.sum(axis=1)
        return [float(counts[i, i] / totals[i]) if totals[i] else 0.0 for i in range(len(self.labels))]

    @property
    def per_class_precision(self) -> List[float]:
        counts = np.array(self.counts)
        totals = counts.sum(axis=0)
        return [float(counts[i, i] / totals[i]) if totals[i] else 0.0 for i in range(len(self.labels))]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.counts, index=self.labels, columns=self.labels)

    def format_table(self) -> str:
        """Plain-text confusion table with recall per row and precision per column."""
        # built in one go: class labels may themselves be "Recall" or "Precision"
        rows = [
            [str(count) for count in counts] + [f"{recall:.4f}"]
            for counts, recall in zip(self.counts, self.per_class_recall)
        ]
        rows.append([f"{value:.4f}" for value in self.per_class_precision] + [""])
        table = pd.DataFrame(
            rows,
            index=self.labels + ["Precision"],
            columns=self.labels + ["Recall"],
        )
        table.index.name = "TRUTH \\ PREDICTED"
        return "Confusion table\n" + table.to_string()


class MulticlassClassificationMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    macro_accuracy: float
    micro_accuracy: float
    log_loss: Optional[float] = None
    log_loss_reduction: Optional[float] = None
    confusion_matrix: ConfusionMatrix


def _as_labels(values: pd.Series, vocabulary: Sequence[str]) -> List[str]:
    """Label strings from a column of labels or of integer keys."""
    if pd.api.types.is_integer_dtype(values):
        return [vocabulary[int(key)] for key in values]
    return [str(value) for value in values]


def _log_loss(
    scores: pd.Series, true_keys: np.ndarray, num_classes: int
) -> Optional[float]:
    probabilities = np.array([list(row) for row in scores], dtype=float)
    if probabilities.ndim != 2 or probabilities.shape[1] != num_classes:
        logger.warning("Score column does not hold one probability per class; skipping log-loss")
        return None
    true_probabilities = probabilities[np.arange(len(true_keys)), true_keys]
    return float(-np.mean(np.log(np.clip(true_probabilities, PROBABILITY_EPSILON, 1.0))))


def _prior_log_loss(true_keys: np.ndarray, num_classes: int) -> float:
    """Log-loss of always predicting the class frequencies of the truth."""
    priors = np.bincount(true_keys, minlength=num_classes) / len(true_keys)
    return float(-np.mean(np.log(np.clip(priors[true_keys], PROBABILITY_EPSILON, 1.0))))


def evaluate(
    predictions: pd.DataFrame,
    vocabulary: Sequence[str],
    label_column: str,
    predicted_label_column: str,
    score_column: Optional[str] = None,
) -> MulticlassClassificationMetrics:
    """
    Compute multiclass metrics for a frame of true and predicted labels.

    The label columns may hold label strings or integer keys into ``vocabulary``.
    Micro accuracy is the fraction of correct rows; macro accuracy averages the
    per-class accuracy (recall) over the classes present in the truth.
    """
    if len(predictions) == 0:
        raise ValueError("Cannot evaluate an empty set of predictions")
    assert_columns(predictions, [label_column, predicted_label_column])

    labels = list(vocabulary)
    y_true = _as_labels(predictions[label_column], labels)
    y_pred = _as_labels(predictions[predicted_label_column], labels)

    matrix = ConfusionMatrix(
        labels=labels,
        counts=confusion_matrix(y_true, y_pred, labels=labels).tolist(),
    )

    present = [i for i, total in enumerate(np.array(matrix.counts).sum(axis=1)) if total]
    recall = matrix.per_class_recall
    macro_accuracy = float(np.mean([recall[i] for i in present])) if present else 0.0
    micro_accuracy = float(accuracy_score(y_true, y_pred))

    log_loss = None
    log_loss_reduction = None
    if score_column is not None and score_column in predictions.columns:
        true_keys = np.array([labels.index(label) for label in y_true])
        log_loss = _log_loss(predictions[score_column], true_keys, len(labels))
        if log_loss is not None:
            prior = _prior_log_loss(true_keys, len(labels))
            log_loss_reduction = (prior - log_loss) / prior if prior > 0 else 0.0

    return MulticlassClassificationMetrics(
        macro_accuracy=macro_accuracy,
        micro_accuracy=micro_accuracy,
        log_loss=log_loss,
        log_loss_reduction=log_loss_reduction,
        confusion_matrix=matrix,
    )


def format_metrics(metrics: MulticlassClassificationMetrics) -> str:
    lines = [
        f"Macro accuracy = {metrics.macro_accuracy:.2%}",
        f"Micro accuracy = {metrics.micro_accuracy:.2%}",
    ]
    if metrics.log_loss is not None:
        lines.append(f"Log-loss = {metrics.log_loss:.4f}")
    if metrics.log_loss_reduction is not None:
        lines.append(f"Log-loss reduction = {metrics.log_loss_reduction:.4f}")
    lines.append(metrics.confusion_matrix.format_table())
    return "\n".join(lines)


def plot_confusion_matrix(
    metrics: MulticlassClassificationMetrics, path: Union[str, Path]
) -> Path:
    """Save the confusion matrix as a heatmap image."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    size = max(6, len(metrics.confusion_matrix.labels))
    figure = Figure(figsize=(size + 2, size))
    ax = figure.subplots()
    sns.heatmap(metrics.confusion_matrix.to_frame(), annot=True, fmt="d", cmap="Blues", ax=ax)
    ax.set_title("Confusion Matrix")
    ax.set_ylabel("Actual")
    ax.set_xlabel("Predicted")
    figure.savefig(path)

    logger.info(f"Confusion matrix saved to {path}")
    return path
