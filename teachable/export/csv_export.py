"""
CSV export functionality for predictions and evaluation results.

This module writes aggregated predictions, per-class metrics and confusion
matrices to analysis-ready CSV files.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from teachable.classification.evaluation import Metrics
from teachable.utils.logging_config import get_logger

logger = get_logger(__name__)


def predictions_to_dataframe(
    batch_predictions: Sequence[Dict[str, Any]],
    image_ids: Optional[Sequence[Any]] = None
) -> pd.DataFrame:
    """
    Flatten aggregator output into one row per (image, backend, rank).

    Args:
        batch_predictions: predict_image results (or predict_batch output)
        image_ids: Identifier per image (default: position in the batch)

    Returns:
        DataFrame with columns image_id, model, rank, class_name,
        probability, inference_time_ms, error
    """
    rows: List[Dict[str, Any]] = []

    for position, result in enumerate(batch_predictions):
        image_id = image_ids[position] if image_ids is not None else position

        # Failed batch items are {'error': message}; kind values never equal 'error'
        if 'error' in result:
            rows.append({
                'image_id': image_id, 'model': None, 'rank': None,
                'class_name': None, 'probability': None,
                'inference_time_ms': None, 'error': result['error']
            })
            continue

        for model_kind, record in result.items():
            for rank, (class_name, probability) in enumerate(record.get('predictions', []), start=1):
                rows.append({
                    'image_id': image_id,
                    'model': model_kind,
                    'rank': rank,
                    'class_name': class_name,
                    'probability': probability,
                    'inference_time_ms': record.get('inference_time', 0.0),
                    'error': record.get('error')
                })

    return pd.DataFrame(rows, columns=[
        'image_id', 'model', 'rank', 'class_name',
        'probability', 'inference_time_ms', 'error'
    ])


def confusion_matrix_to_dataframe(
    confusion_matrix: np.ndarray,
    class_names: Sequence[str]
) -> pd.DataFrame:
    """Confusion matrix with actual classes as index and predicted as columns."""
    return pd.DataFrame(
        np.asarray(confusion_matrix),
        index=pd.Index(list(class_names), name='actual'),
        columns=pd.Index(list(class_names), name='predicted')
    )


class CSVExporter:
    """
    Export predictions and evaluation results to CSV files.

    Example:
        >>> exporter = CSVExporter()
        >>> exporter.export_metrics(metrics, ['cat', 'dog'], Path('./metrics.csv'))
    """

    def __init__(self, delimiter: str = ','):
        self.delimiter = delimiter

    def export_predictions(
        self,
        batch_predictions: Sequence[Dict[str, Any]],
        output_path: Path,
        image_ids: Optional[Sequence[Any]] = None
    ) -> Path:
        """
        Export aggregated predictions to CSV.

        Example:
            >>> exporter.export_predictions(aggregator.predict_batch(images), Path('./predictions.csv'))
        """
        df = predictions_to_dataframe(batch_predictions, image_ids)
        logger.info(f"Exporting {len(df)} prediction rows to {output_path}")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(output_path, sep=self.delimiter, index=False, encoding='utf-8')

        logger.info(f"Exported to {output_path}")
        return output_path

    def export_metrics(
        self,
        metrics: Metrics,
        class_names: Sequence[str],
        output_path: Path
    ) -> Path:
        """Export per-class metrics plus an overall accuracy row."""
        logger.info(f"Exporting metrics to {output_path}")

        df = metrics.to_dataframe(class_names)
        overall = pd.DataFrame([{
            'class': 'overall',
            'precision': np.nan,
            'recall': np.nan,
            'f1': metrics.macro_f1,
            'support': int(sum(metrics.support)),
            'accuracy': metrics.accuracy
        }])
        df = pd.concat([df, overall], ignore_index=True)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(output_path, sep=self.delimiter, index=False, encoding='utf-8')

        logger.info(f"Exported metrics to {output_path}")
        return output_path

    def export_confusion_matrix(
        self,
        confusion_matrix: np.ndarray,
        class_names: Sequence[str],
        output_path: Path
    ) -> Path:
        """Export a confusion matrix with class names as row and column labels."""
        logger.info(f"Exporting confusion matrix to {output_path}")

        df = confusion_matrix_to_dataframe(confusion_matrix, class_names)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(output_path, sep=self.delimiter, encoding='utf-8')

        logger.info(f"Exported confusion matrix to {output_path}")
        return output_path
