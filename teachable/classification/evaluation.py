"""
Evaluation metrics for multi-class classifiers.

Builds a confusion matrix from probability vectors and derives per-class
precision, recall, F1 and support plus overall accuracy.

Example:
    >>> matrix = generate_confusion_matrix(probabilities, labels, ['cat', 'dog'])
    >>> metrics = calculate_metrics(matrix)
    >>> metrics.accuracy
    0.9
    >>> metrics.to_dataframe(['cat', 'dog'])
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from teachable.errors import ValidationError
from teachable.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Metrics:
    """Per-class metrics (indexed by class id) and overall accuracy."""
    precision: List[float] = field(default_factory=list)
    recall: List[float] = field(default_factory=list)
    f1_score: List[float] = field(default_factory=list)
    support: List[int] = field(default_factory=list)
    accuracy: float = 0.0

    @property
    def num_classes(self) -> int:
        return len(self.precision)

    @property
    def macro_f1(self) -> float:
        return float(np.mean(self.f1_score)) if self.f1_score else 0.0

    def to_dataframe(self, class_names: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """One row per class with precision, recall, f1 and support."""
        names = [
            class_names[i] if class_names is not None and i < len(class_names) else f'Class {i}'
            for i in range(self.num_classes)
        ]
        return pd.DataFrame({
            'class': names,
            'precision': self.precision,
            'recall': self.recall,
            'f1': self.f1_score,
            'support': self.support
        })


def generate_confusion_matrix(
    predicted_vectors: Sequence[Sequence[float]],
    actual_labels: Sequence[int],
    class_names: Sequence[str]
) -> np.ndarray:
    """
    Count actual-vs-predicted classes.

    The predicted class of a sample is the argmax of its vector. Samples whose
    actual or predicted class is outside [0, len(class_names)), samples with
    an empty vector, and predictions beyond the end of `actual_labels` are
    skipped.

    Args:
        predicted_vectors: One probability vector per sample
        actual_labels: True class per sample
        class_names: Class names; their count fixes the matrix size

    Returns:
        Integer matrix, rows = actual class, columns = predicted class

    Raises:
        ValidationError: If any argument is missing
    """
    if predicted_vectors is None or actual_labels is None or class_names is None:
        raise ValidationError("Invalid input for confusion matrix")

    num_classes = len(class_names)
    matrix = np.zeros((num_classes, num_classes), dtype=np.int64)
    skipped = 0

    for index, vector in enumerate(predicted_vectors):
        if index >= len(actual_labels):
            break

        vector = np.asarray(vector, dtype=np.float64)
        if vector.size == 0:
            skipped += 1
            continue

        predicted = int(np.argmax(vector))
        actual = int(actual_labels[index])

        if 0 <= actual < num_classes and 0 <= predicted < num_classes:
            matrix[actual, predicted] += 1
        else:
            skipped += 1

    if skipped:
        logger.warning(f"Skipped {skipped} samples with out-of-range classes")

    return matrix


def calculate_metrics(confusion_matrix) -> Metrics:
    """
    Per-class precision, recall, F1 and support from a confusion matrix.

    For class i: TP = m[i][i], FP = column sum - TP, FN = row sum - TP.
    Any ratio with a zero denominator is 0. Accuracy is the share of all
    counted samples on the diagonal.

    Raises:
        ValidationError: If the matrix is missing or not square
    """
    if confusion_matrix is None:
        raise ValidationError("Invalid confusion matrix")

    try:
        matrix = np.asarray(confusion_matrix, dtype=np.int64)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid confusion matrix: {e}")

    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValidationError(f"Confusion matrix must be square, got shape {matrix.shape}")
    if np.any(matrix < 0):
        raise ValidationError("Confusion matrix counts must be non-negative")

    metrics = Metrics()

    for i in range(matrix.shape[0]):
        tp = int(matrix[i, i])
        fp = int(matrix[:, i].sum()) - tp
        fn = int(matrix[i, :].sum()) - tp

        precision = tp / (tp + fp) if tp + fp > 0 else 0.0
        recall = tp / (tp + fn) if tp + fn > 0 else 0.0
        f1 = (
            2 * precision * recall / (precision + recall)
            if precision + recall > 0 else 0.0
        )

        metrics.precision.append(precision)
        metrics.recall.append(recall)
        metrics.f1_score.append(f1)
        metrics.support.append(tp + fn)

    total = int(matrix.sum())
    metrics.accuracy = int(np.trace(matrix)) / total if total > 0 else 0.0

    return metrics
