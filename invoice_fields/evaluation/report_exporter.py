"""
Evaluation Report Exporter Module.

Writes evaluation snapshots, keyed by model version, to an Excel workbook.
Uses openpyxl for modern Excel format support.

Sheets:
    - Summary: one row per model version
    - Per-Class: precision/recall/F1/support per version and class
    - Confusion: one matrix block per version
    - Misclassifications: the recorded errors per version

Author: ML Engineering Team
"""

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from config import get_config
from invoice_fields.evaluation.evaluator import ModelEvaluation
from invoice_fields.utils.exceptions import ReportExportError
from invoice_fields.utils.helpers import ensure_directory, generate_timestamp
from invoice_fields.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


HEADER_FONT = Font(bold=True, color="FFFFFF")
THIN_BORDER = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin')
)


def _fill(color: str) -> PatternFill:
    return PatternFill(start_color=color, end_color=color, fill_type="solid")


class EvaluationReportExporter:
    """
    Exports model evaluations to Excel.

    Attributes:
        output_dir: Directory for files given without a directory
        include_misclassifications: Whether to write the errors sheet
        max_misclassifications: Row cap per model version on that sheet

    Example:
        >>> exporter = EvaluationReportExporter()
        >>> path = exporter.export({"v1.0": old_eval, "v1.1": new_eval}, "compare.xlsx")
    """

    SUMMARY_COLUMNS = [
        'Model Version', 'Dataset', 'Timestamp', 'Samples', 'Accuracy',
        'Micro F1', 'Macro F1', 'Weighted F1', 'Log-Loss', 'Misclassified',
    ]

    PER_CLASS_COLUMNS = [
        'Model Version', 'Class', 'Precision', 'Recall', 'F1', 'Support', 'Predicted', 'Log-Loss',
    ]

    ERROR_COLUMNS = [
        'Model Version', 'Document', 'Line', 'Actual', 'Predicted', 'Confidence', 'Text',
    ]

    def __init__(
        self,
        output_dir: Optional[str] = None,
        include_misclassifications: Optional[bool] = None,
        max_misclassifications: Optional[int] = None
    ) -> None:
        self.output_dir = Path(output_dir or get_config("paths.output_dir", "outputs"))
        self.include_misclassifications = (
            include_misclassifications if include_misclassifications is not None
            else get_config("evaluation.report.include_misclassifications", True)
        )
        self.max_misclassifications = int(
            max_misclassifications if max_misclassifications is not None
            else get_config("evaluation.report.max_misclassifications", 500)
        )

    def export(
        self,
        evaluations: Union[ModelEvaluation, Iterable[ModelEvaluation], Dict[str, ModelEvaluation]],
        filename: Optional[str] = None
    ) -> str:
        """
        Write evaluations to an Excel workbook.

        Args:
            evaluations: One evaluation, a list, or a mapping of model
                version to evaluation. Lists are keyed by each snapshot's
                model version; a later duplicate version replaces an earlier one.
            filename: Output path. Bare names go to ``output_dir``; None
                generates a timestamped name.

        Returns:
            Path to the created file.

        Raises:
            ReportExportError: If there is nothing to export or writing fails.
        """
        keyed = self._key_by_version(evaluations)
        if not keyed:
            raise ReportExportError(str(filename), "No evaluations to export")

        filepath = self._resolve_path(filename)

        try:
            ensure_directory(filepath.parent)
            workbook = Workbook()
            self._create_summary_sheet(workbook, keyed)
            self._create_per_class_sheet(workbook, keyed)
            self._create_confusion_sheet(workbook, keyed)
            if self.include_misclassifications:
                self._create_error_sheet(workbook, keyed)
            workbook.save(filepath)
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Report export failed: {e}")
            raise ReportExportError(str(filepath), str(e)) from e

        logger.info(f"Evaluation report saved: {filepath} ({len(keyed)} model versions)")
        return str(filepath)

    @staticmethod
    def _key_by_version(evaluations) -> Dict[str, ModelEvaluation]:
        if isinstance(evaluations, ModelEvaluation):
            evaluations = [evaluations]
        if isinstance(evaluations, dict):
            return {str(k): v for k, v in evaluations.items()}
        keyed: Dict[str, ModelEvaluation] = {}
        for evaluation in evaluations:
            keyed[evaluation.model_version or "unversioned"] = evaluation
        return keyed

    def _resolve_path(self, filename: Optional[str]) -> Path:
        if filename is None:
            return self.output_dir / f"evaluation_report_{generate_timestamp()}.xlsx"
        path = Path(filename)
        if path.parent == Path('.'):
            return self.output_dir / path
        return path

    # -------------------------------------------------------------------------
    # Sheets
    # -------------------------------------------------------------------------

    def _write_header(self, sheet, columns: List[str], color: str, row: int = 1) -> None:
        for col, header in enumerate(columns, 1):
            cell = sheet.cell(row=row, column=col, value=header)
            cell.font = HEADER_FONT
            cell.fill = _fill(color)
            cell.alignment = Alignment(horizontal="center", vertical="center")
            cell.border = THIN_BORDER

    @staticmethod
    def _autosize(sheet, max_width: int = 50) -> None:
        for column_cells in sheet.columns:
            length = max((len(str(c.value)) for c in column_cells if c.value is not None), default=8)
            letter = get_column_letter(column_cells[0].column)
            sheet.column_dimensions[letter].width = min(length + 2, max_width)

    def _create_summary_sheet(self, workbook, keyed: Dict[str, ModelEvaluation]) -> None:
        sheet = workbook.active
        sheet.title = "Summary"
        self._write_header(sheet, self.SUMMARY_COLUMNS, "4472C4")

        for row, (version, evaluation) in enumerate(keyed.items(), 2):
            m = evaluation.metrics
            values = [
                version, evaluation.dataset, m.timestamp, m.total_samples,
                round(m.accuracy, 4), round(m.micro_f1, 4), round(m.macro_f1, 4),
                round(m.weighted_f1, 4),
                round(m.log_loss, 4) if m.log_loss is not None else None,
                len(evaluation.misclassifications),
            ]
            for col, value in enumerate(values, 1):
                sheet.cell(row=row, column=col, value=value).border = THIN_BORDER

        self._autosize(sheet)
        sheet.freeze_panes = 'A2'

    def _create_per_class_sheet(self, workbook, keyed: Dict[str, ModelEvaluation]) -> None:
        sheet = workbook.create_sheet(title="Per-Class")
        self._write_header(sheet, self.PER_CLASS_COLUMNS, "548235")

        row = 2
        for version, evaluation in keyed.items():
            for label, c in evaluation.metrics.per_class.items():
                values = [
                    version, label.value, round(c.precision, 4), round(c.recall, 4),
                    round(c.f1, 4), c.support, c.predicted_count,
                    round(c.log_loss, 4) if c.log_loss is not None else None,
                ]
                for col, value in enumerate(values, 1):
                    sheet.cell(row=row, column=col, value=value)
                row += 1

        self._autosize(sheet)
        sheet.freeze_panes = 'A2'

    def _create_confusion_sheet(self, workbook, keyed: Dict[str, ModelEvaluation]) -> None:
        sheet = workbook.create_sheet(title="Confusion")
        row = 1
        for version, evaluation in keyed.items():
            matrix = evaluation.metrics.confusion_matrix
            classes = matrix.classes
            sheet.cell(row=row, column=1, value=f"Model {version} (rows: actual, columns: predicted)").font = Font(bold=True)
            row += 1
            self._write_header(sheet, ["Actual \\ Predicted"] + [c.value for c in classes], "C65911", row)
            row += 1
            for actual in classes:
                sheet.cell(row=row, column=1, value=actual.value).font = Font(bold=True)
                for col, predicted in enumerate(classes, 2):
                    cell = sheet.cell(row=row, column=col, value=matrix.count(actual, predicted))
                    cell.border = THIN_BORDER
                    if actual == predicted:
                        cell.fill = _fill("E2EFDA")
                row += 1
            row += 1

        self._autosize(sheet, max_width=24)

    def _create_error_sheet(self, workbook, keyed: Dict[str, ModelEvaluation]) -> None:
        sheet = workbook.create_sheet(title="Misclassifications")
        self._write_header(sheet, self.ERROR_COLUMNS, "C00000")

        row = 2
        for version, evaluation in keyed.items():
            for m in evaluation.misclassifications[:self.max_misclassifications]:
                values = [
                    version, m.document_id, m.line_index, m.actual.value,
                    m.predicted.value, round(m.confidence, 4), m.text,
                ]
                for col, value in enumerate(values, 1):
                    sheet.cell(row=row, column=col, value=value)
                row += 1

        self._autosize(sheet, max_width=80)
        sheet.freeze_panes = 'A2'
