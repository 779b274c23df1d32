"""
Excel export functionality for evaluation reports.

This module writes a multi-sheet workbook with per-class metrics, the
confusion matrix, backend evaluation results and the saved-model ledger.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from openpyxl.styles import Alignment, Font, PatternFill

from teachable.classification.evaluation import Metrics
from teachable.export.csv_export import confusion_matrix_to_dataframe
from teachable.utils.logging_config import get_logger

logger = get_logger(__name__)


class ExcelExporter:
    """
    Export an evaluation report to Excel.

    Creates workbooks with:
    - Summary (accuracy, macro F1, sample count)
    - Per-class metrics
    - Confusion matrix
    - Backend evaluations (optional)
    - Saved models (optional)

    Example:
        >>> exporter = ExcelExporter()
        >>> exporter.export_evaluation_report(
        ...     metrics=metrics,
        ...     confusion_matrix=matrix,
        ...     class_names=['cat', 'dog'],
        ...     output_path=Path('./report.xlsx')
        ... )
    """

    def apply_header_formatting(self, worksheet, num_columns: int):
        """
        Apply formatting to header row.

        Args:
            worksheet: openpyxl worksheet
            num_columns: Number of columns to format
        """
        header_fill = PatternFill(
            start_color='366092',
            end_color='366092',
            fill_type='solid'
        )
        header_font = Font(
            name='Arial',
            size=11,
            bold=True,
            color='FFFFFF'
        )

        for col in range(1, num_columns + 1):
            cell = worksheet.cell(row=1, column=col)
            cell.fill = header_fill
            cell.font = header_font
            cell.alignment = Alignment(horizontal='center', vertical='center')

        worksheet.freeze_panes = 'A2'

    def auto_adjust_column_widths(self, worksheet):
        """Size each column to its longest value (max 50 characters)."""
        for column in worksheet.columns:
            column_letter = column[0].column_letter
            max_length = max(
                (len(str(cell.value)) for cell in column if cell.value is not None),
                default=0
            )
            worksheet.column_dimensions[column_letter].width = min(max_length + 2, 50)

    def _write_sheet(self, writer, df: pd.DataFrame, sheet_name: str, index: bool = False):
        df.to_excel(writer, sheet_name=sheet_name, index=index)

        worksheet = writer.sheets[sheet_name]
        self.apply_header_formatting(worksheet, len(df.columns) + (1 if index else 0))
        self.auto_adjust_column_widths(worksheet)

    def build_summary(self, metrics: Metrics) -> pd.DataFrame:
        return pd.DataFrame([
            {'Metric': 'Samples', 'Value': int(sum(metrics.support))},
            {'Metric': 'Classes', 'Value': metrics.num_classes},
            {'Metric': 'Accuracy', 'Value': f'{metrics.accuracy:.3f}'},
            {'Metric': 'Macro F1', 'Value': f'{metrics.macro_f1:.3f}'},
        ])

    def export_evaluation_report(
        self,
        metrics: Metrics,
        confusion_matrix: np.ndarray,
        class_names: Sequence[str],
        output_path: Path,
        evaluations: Optional[Dict[str, Dict[str, Any]]] = None,
        saved_models: Optional[List[Dict[str, Any]]] = None
    ) -> Path:
        """
        Export an evaluation report.

        Args:
            metrics: Output of calculate_metrics
            confusion_matrix: Matrix the metrics were computed from
            class_names: Class names by class id
            output_path: Path to save the .xlsx file
            evaluations: Per-backend results of evaluate_all_models
            saved_models: Saved-model ledger from the registry

        Returns:
            The written path
        """
        logger.info(f"Exporting evaluation report to {output_path}")

        output_path.parent.mkdir(parents=True, exist_ok=True)

        with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
            self._write_sheet(writer, self.build_summary(metrics), 'Summary')
            self._write_sheet(writer, metrics.to_dataframe(class_names), 'Per-Class Metrics')
            self._write_sheet(
                writer,
                confusion_matrix_to_dataframe(confusion_matrix, class_names),
                'Confusion Matrix',
                index=True
            )

            if evaluations:
                evaluations_df = pd.DataFrame([
                    {'model': kind, **result} for kind, result in evaluations.items()
                ])
                self._write_sheet(writer, evaluations_df, 'Backend Evaluations')

            if saved_models:
                self._write_sheet(writer, pd.DataFrame(saved_models), 'Saved Models')

        logger.info(f"Exported evaluation report to {output_path}")
        return output_path
