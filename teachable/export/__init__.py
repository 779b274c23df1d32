"""
Export module for predictions and evaluation results.

Modules:
    csv_export: CSV export of predictions, metrics and confusion matrices
    excel_export: Multi-sheet Excel evaluation report

Example:
    >>> from teachable.export import CSVExporter, ExcelExporter
    >>>
    >>> CSVExporter().export_predictions(batch_predictions, Path('./predictions.csv'))
    >>> ExcelExporter().export_evaluation_report(
    ...     metrics, matrix, class_names, Path('./report.xlsx')
    ... )
"""

from teachable.export.csv_export import (
    CSVExporter,
    confusion_matrix_to_dataframe,
    predictions_to_dataframe
)
from teachable.export.excel_export import ExcelExporter

__all__ = [
    'CSVExporter',
    'ExcelExporter',
    'confusion_matrix_to_dataframe',
    'predictions_to_dataframe',
]
