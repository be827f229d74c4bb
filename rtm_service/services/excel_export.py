"""
Spreadsheet export of a traceability matrix: an "RTM" sheet with the rows and
a "KPI" sheet with the coverage statistics.
"""
import io
import logging
import re
from datetime import date
from typing import Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from rtm_service.models.matrix import CoverageStatistics, MatrixRow

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="E0E0E0", end_color="E0E0E0", fill_type="solid")
SECTION_FILL = PatternFill(start_color="90EE90", end_color="90EE90", fill_type="solid")
HEADER_FONT = Font(bold=True)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

RTM_COLUMNS = [
    ("User Story ID", 15),
    ("Feature", 20),
    ("Scenario Type", 15),
    ("Description", 50),
    ("Test Case ID", 15),
    ("Status", 12),
    ("Priority", 12),
    ("Execution", 12),
]

MODULE_COLUMNS = [
    ("Feature", 20),
    ("Total Use Cases", 15),
    ("Positive Covered", 15),
    ("Negative Covered", 15),
    ("Edge Cases Covered", 18),
    ("Integration Cases Covered", 20),
    ("Total Covered", 15),
    ("Coverage %age", 15),
    ("Pass", 10),
    ("Fail", 10),
]


def _apply_header_style(ws, row: int, col_count: int) -> None:
    """Apply grey-header styling to an Excel row (1-indexed)."""
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _apply_section_style(ws, row: int, col_count: int, size: int) -> None:
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = SECTION_FILL
        cell.font = Font(bold=True, size=size)
        cell.border = THIN_BORDER


def _set_widths(ws, columns) -> None:
    for col, (_, width) in enumerate(columns, 1):
        ws.column_dimensions[get_column_letter(col)].width = width


def _write_rtm_sheet(ws, rows: Sequence[MatrixRow]) -> None:
    ws.title = "RTM"
    for col, (header, _) in enumerate(RTM_COLUMNS, 1):
        ws.cell(row=1, column=col, value=header)
    _apply_header_style(ws, 1, len(RTM_COLUMNS))

    for i, row in enumerate(rows, 2):
        values = [
            row.user_story_id,
            row.feature,
            row.scenario_type,
            row.description,
            row.test_case_id if row.test_case_id is not None else "",
            row.status,
            row.priority,
            row.execution,
        ]
        for col, value in enumerate(values, 1):
            ws.cell(row=i, column=col, value=value).border = THIN_BORDER
    _set_widths(ws, RTM_COLUMNS)


def _write_kpi_sheet(ws, stats: CoverageStatistics) -> None:
    overall = stats.overall_coverage
    by_type = overall.test_cases_by_type

    ws.cell(row=1, column=1, value="Overall Coverage")
    _apply_section_style(ws, 1, 2, size=14)

    kpis = [
        ("Total Modules", overall.total_modules),
        ("Total Uses Cases", overall.total_use_cases),
        ("Positive", by_type.positive),
        ("Negative", by_type.negative),
        ("Edge Cases", by_type.edge_cases),
        ("Integration", by_type.integration),
        ("Total Covered", overall.coverage.total_covered),
        ("Coverage %age", overall.coverage.coverage_percentage),
        ("Pass", overall.execution.passed),
        ("Fail", overall.execution.failed),
    ]
    row = 1
    for label, value in kpis:
        row += 1
        ws.cell(row=row, column=1, value=label).border = THIN_BORDER
        ws.cell(row=row, column=2, value=value).border = THIN_BORDER

    # Two blank rows between the sections
    row += 3
    ws.cell(row=row, column=1, value="Module Wise Coverage")
    _apply_section_style(ws, row, len(MODULE_COLUMNS), size=12)

    row += 1
    for col, (header, _) in enumerate(MODULE_COLUMNS, 1):
        ws.cell(row=row, column=col, value=header)
    _apply_header_style(ws, row, len(MODULE_COLUMNS))

    for module in stats.module_wise_coverage:
        row += 1
        values = [
            module.feature,
            module.total_use_cases,
            module.positive_covered,
            module.negative_covered,
            module.edge_cases_covered,
            module.integration_covered,
            module.total_covered,
            module.coverage_percentage,
            module.passed,
            module.failed,
        ]
        for col, value in enumerate(values, 1):
            ws.cell(row=row, column=col, value=value).border = THIN_BORDER
    _set_widths(ws, MODULE_COLUMNS)


def export_rtm_xlsx(rows: Sequence[MatrixRow], stats: CoverageStatistics) -> io.BytesIO:
    """
    Generate the RTM workbook.
    Returns a BytesIO buffer positioned at the start, ready to stream.
    """
    wb = Workbook()
    _write_rtm_sheet(wb.active, rows)
    _write_kpi_sheet(wb.create_sheet("KPI"), stats)

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    logger.info(f"Exported RTM workbook with {len(rows)} rows")
    return output


def sanitize_identifier(value: str) -> str:
    """Replace every non-alphanumeric character with an underscore."""
    return re.sub(r"[^a-zA-Z0-9]", "_", value)


def story_ids_identifier(user_story_ids: Sequence[int]) -> str:
    return "Stories_" + "_".join(str(story_id) for story_id in user_story_ids)


def build_export_filename(identifier: str, custom: Optional[str] = None, today: Optional[date] = None) -> str:
    """
    File name for a downloaded workbook.

    Args:
        identifier: Report identifier (sanitized sprint name or Stories_<ids>)
        custom: Caller-chosen base name; replaces the RTM_Report_<identifier> prefix
        today: Date stamped into the name (default: today)
    """
    stamp = (today or date.today()).isoformat()
    if custom:
        base = custom[:-len(".xlsx")] if custom.lower().endswith(".xlsx") else custom
        return f"{base}_{stamp}.xlsx"
    return f"RTM_Report_{identifier}_{stamp}.xlsx"
