"""
Tests for the RTM workbook export and download file names.
"""
from datetime import date

from openpyxl import load_workbook

from rtm_service.models.matrix import MatrixRow
from rtm_service.services.coverage_stats import calculate_coverage_statistics
from rtm_service.services.excel_export import (
    build_export_filename,
    export_rtm_xlsx,
    sanitize_identifier,
    story_ids_identifier,
)


def _matrix():
    return [
        MatrixRow(
            user_story_id=100, feature="Auth", scenario_type="Positive", description="Valid login",
            test_case_id=501, status="Covered", priority="High", execution="Pass",
        ),
        MatrixRow(
            user_story_id=100, feature="Auth", scenario_type="Functional", description="can log out",
            status="Missing", priority="Medium",
        ),
    ]


def _workbook(rows):
    output = export_rtm_xlsx(rows, calculate_coverage_statistics(rows))
    return load_workbook(output)


def test_workbook_has_rtm_and_kpi_sheets():
    assert _workbook(_matrix()).sheetnames == ["RTM", "KPI"]


def test_rtm_sheet_rows():
    ws = _workbook(_matrix())["RTM"]
    
    header = [cell.value for cell in ws[1]]
    assert header == [
        "User Story ID", "Feature", "Scenario Type", "Description",
        "Test Case ID", "Status", "Priority", "Execution",
    ]
    assert [cell.value for cell in ws[2]] == [100, "Auth", "Positive", "Valid login", 501, "Covered", "High", "Pass"]
    missing = [cell.value for cell in ws[3]]
    assert missing[:4] == [100, "Auth", "Functional", "can log out"]
    assert missing[4] in ("", None)
    assert missing[5:7] == ["Missing", "Medium"]
    assert ws.max_row == 3


def test_kpi_sheet_matches_statistics():
    ws = _workbook(_matrix())["KPI"]
    
    assert ws["A1"].value == "Overall Coverage"
    kpis = {ws.cell(row=row, column=1).value: ws.cell(row=row, column=2).value for row in range(2, 12)}
    assert kpis == {
        "Total Modules": 1,
        "Total Uses Cases": 2,
        "Positive": 1,
        "Negative": 0,
        "Edge Cases": 0,
        "Integration": 0,
        "Total Covered": 1,
        "Coverage %age": 50,
        "Pass": 1,
        "Fail": 0,
    }
    assert ws["A14"].value == "Module Wise Coverage"
    assert ws["A15"].value == "Feature"
    assert ws["F15"].value == "Integration Cases Covered"
    assert [cell.value for cell in ws[16]] == ["Auth", 2, 1, 0, 0, 0, 1, 50, 1, 0]


def test_empty_matrix_exports_headers_only():
    wb = _workbook([])
    
    assert wb["RTM"].max_row == 1
    assert wb["KPI"]["B3"].value == 0


def test_export_filename_defaults():
    assert build_export_filename("Sprint_40", today=date(2024, 3, 5)) == "RTM_Report_Sprint_40_2024-03-05.xlsx"


def test_export_filename_custom():
    assert build_export_filename("Sprint_40", "release", today=date(2024, 3, 5)) == "release_2024-03-05.xlsx"
    assert build_export_filename("Sprint_40", "release.xlsx", today=date(2024, 3, 5)) == "release_2024-03-05.xlsx"


def test_identifiers():
    assert sanitize_identifier("Sprint 40/Team-A") == "Sprint_40_Team_A"
    assert story_ids_identifier([12, 7]) == "Stories_12_7"
