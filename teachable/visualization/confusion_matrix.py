"""
Confusion matrix visualization for classification results.

Plots a confusion matrix produced by the evaluation engine as an annotated
heatmap, showing which classes are commonly confused.
"""

from pathlib import Path
from typing import Optional, Sequence, Tuple

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.figure import Figure

from teachable.utils.logging_config import get_logger

logger = get_logger(__name__)


class ConfusionMatrixVisualizer:
    """
    Create confusion matrix plots.

    Example:
        >>> visualizer = ConfusionMatrixVisualizer()
        >>> visualizer.plot_confusion_matrix(
        ...     matrix,
        ...     class_names=['cat', 'dog'],
        ...     output_path=Path('./confusion.png')
        ... )
    """

    def __init__(self, figsize: Tuple[int, int] = (8, 7)):
        """
        Initialize confusion matrix visualizer.

        Args:
            figsize: Default figure size (width, height)
        """
        self.figsize = figsize

    @staticmethod
    def normalize(confusion_matrix: np.ndarray) -> np.ndarray:
        """Divide each row (actual class) by its total; empty rows stay 0."""
        matrix = np.asarray(confusion_matrix, dtype=float)
        row_sums = matrix.sum(axis=1, keepdims=True)
        row_sums[row_sums == 0] = 1
        return matrix / row_sums

    def plot_confusion_matrix(
        self,
        confusion_matrix: np.ndarray,
        class_names: Sequence[str],
        output_path: Optional[Path] = None,
        normalize: bool = False,
        show_values: bool = True,
        cmap: str = 'Blues',
        title: Optional[str] = None
    ) -> Optional[Figure]:
        """
        Plot confusion matrix.

        Args:
            confusion_matrix: Counts, rows = actual, columns = predicted
            class_names: Tick labels by class id
            output_path: Path to save figure (or None to only return it)
            normalize: Show row proportions instead of counts
            show_values: Show numbers in cells
            cmap: Matplotlib colormap
            title: Custom title (or None for default)

        Returns:
            Matplotlib Figure, or None for an empty matrix
        """
        matrix = np.asarray(confusion_matrix)

        if matrix.size == 0:
            logger.warning("No data to plot")
            return None

        if normalize:
            matrix = self.normalize(matrix)

        labels = list(class_names)
        fig, ax = plt.subplots(figsize=self.figsize)

        im = ax.imshow(matrix, cmap=cmap, aspect='auto')

        ax.set_xticks(np.arange(len(labels)))
        ax.set_yticks(np.arange(len(labels)))
        ax.set_xticklabels(labels, rotation=45, ha='right')
        ax.set_yticklabels(labels)

        cbar = plt.colorbar(im, ax=ax)
        cbar.set_label('Proportion' if normalize else 'Count', rotation=270, labelpad=20)

        if show_values:
            threshold = matrix.max() / 2
            for i in range(matrix.shape[0]):
                for j in range(matrix.shape[1]):
                    value = matrix[i, j]
                    text = f'{value:.2f}' if normalize else f'{int(value)}'

                    ax.text(
                        j, i, text,
                        ha='center', va='center',
                        color='white' if value > threshold else 'black',
                        fontsize=8
                    )

        ax.set_xlabel('Predicted Class', fontsize=12)
        ax.set_ylabel('Actual Class', fontsize=12)
        ax.set_title(title or 'Confusion Matrix', fontsize=14, fontweight='bold')

        plt.tight_layout()

        if output_path:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            fig.savefig(output_path, dpi=150, bbox_inches='tight')
            logger.info(f"Saved confusion matrix to {output_path}")

        return fig
