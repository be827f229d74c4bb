"""
Coverage statistics derived from a completed traceability matrix.

Every output surface (JSON report, KPI endpoint, spreadsheet KPI sheet) goes
through these functions so the numbers always agree for the same matrix.
"""
import math
from typing import Dict, List, Sequence

from rtm_service.models.enums import CoverageStatus, ExecutionStatus
from rtm_service.models.matrix import (
    CoverageStatistics,
    CoverageSummary,
    ExecutionSummary,
    MatrixRow,
    ModuleCoverage,
    OverallCoverage,
    RankedModule,
    RiskArea,
    StatisticsSummary,
    TestCasesByType,
)

# Scenario labels only upstream test cases can carry; the classifier never emits them
POSITIVE = "Positive"
NEGATIVE = "Negative"
EDGE_CASE = "Edge Case"
INTEGRATION = "Integration"

DEFAULT_RISK_THRESHOLD = 80
RANKING_SIZE = 5


def percentage(part: int, whole: int) -> int:
    """Whole-number percentage rounded half up; 0 when whole is 0."""
    if whole <= 0:
        return 0
    return int(math.floor(part * 100 / whole + 0.5))


def _count_type(rows: Sequence[MatrixRow], scenario_type: str, covered_only: bool = False) -> int:
    return sum(
        1 for row in rows
        if row.scenario_type == scenario_type and (not covered_only or row.is_covered)
    )


def _execution_counts(rows: Sequence[MatrixRow]):
    passed = sum(1 for row in rows if row.execution == ExecutionStatus.PASS.value)
    failed = sum(1 for row in rows if row.execution == ExecutionStatus.FAIL.value)
    return passed, failed


def features_in_order(rows: Sequence[MatrixRow]) -> List[str]:
    """Distinct non-empty feature labels in first-seen order."""
    seen: Dict[str, None] = {}
    for row in rows:
        if row.feature and row.feature not in seen:
            seen[row.feature] = None
    return list(seen)


def covered_user_story_ids(rows: Sequence[MatrixRow]) -> set:
    return {row.user_story_id for row in rows if row.is_covered}


def module_coverage(feature: str, rows: Sequence[MatrixRow]) -> ModuleCoverage:
    """Coverage counts for one feature's rows."""
    feature_rows = [row for row in rows if row.feature == feature]
    total = len(feature_rows)
    covered = sum(1 for row in feature_rows if row.is_covered)
    passed, failed = _execution_counts(feature_rows)
    return ModuleCoverage(
        feature=feature,
        total_use_cases=total,
        positive_covered=_count_type(feature_rows, POSITIVE, covered_only=True),
        negative_covered=_count_type(feature_rows, NEGATIVE, covered_only=True),
        edge_cases_covered=_count_type(feature_rows, EDGE_CASE, covered_only=True),
        integration_covered=_count_type(feature_rows, INTEGRATION, covered_only=True),
        total_covered=covered,
        coverage_percentage=percentage(covered, total),
        passed=passed,
        failed=failed,
    )


def _ranked(module: ModuleCoverage) -> RankedModule:
    return RankedModule(
        feature=module.feature,
        coverage_percentage=module.coverage_percentage,
        total_use_cases=module.total_use_cases,
    )


def summarize_modules(
    modules: Sequence[ModuleCoverage],
    risk_threshold: int = DEFAULT_RISK_THRESHOLD
) -> StatisticsSummary:
    """
    Top/bottom five features by coverage plus every feature under the risk threshold.
    
    Ties keep feature discovery order (sorted() is stable, also with reverse=True).
    """
    ranked = [module for module in modules if module.total_use_cases > 0]
    top = sorted(ranked, key=lambda module: module.coverage_percentage, reverse=True)
    bottom = sorted(ranked, key=lambda module: module.coverage_percentage)
    risks = [
        RiskArea(
            feature=module.feature,
            coverage_percentage=module.coverage_percentage,
            total_use_cases=module.total_use_cases,
            gap=module.total_use_cases - module.total_covered,
        )
        for module in ranked
        if module.coverage_percentage < risk_threshold
    ]
    return StatisticsSummary(
        top_performing_modules=[_ranked(module) for module in top[:RANKING_SIZE]],
        low_performing_modules=[_ranked(module) for module in bottom[:RANKING_SIZE]],
        risk_areas=risks,
    )


def calculate_coverage_statistics(
    rows: Sequence[MatrixRow],
    risk_threshold: int = DEFAULT_RISK_THRESHOLD
) -> CoverageStatistics:
    """
    Derive overall and per-feature coverage KPIs from a matrix.
    
    Total over any input: an empty matrix gives all-zero statistics.
    
    Args:
        rows: Completed matrix
        risk_threshold: Features below this coverage percentage are risk areas
        
    Returns:
        CoverageStatistics (serialize with to_api_dict() for the KPI shape)
    """
    total_rows = len(rows)
    story_ids = {row.user_story_id for row in rows}
    features = features_in_order(rows)
    total_covered = sum(1 for row in rows if row.is_covered)
    passed, failed = _execution_counts(rows)
    executed = passed + failed
    
    overall = OverallCoverage(
        total_user_stories=len(story_ids),
        total_modules=len(features),
        total_use_cases=total_rows,
        test_cases_by_type=TestCasesByType(
            positive=_count_type(rows, POSITIVE),
            negative=_count_type(rows, NEGATIVE),
            edge_cases=_count_type(rows, EDGE_CASE),
            integration=_count_type(rows, INTEGRATION),
        ),
        coverage=CoverageSummary(
            total_covered=total_covered,
            coverage_percentage=percentage(total_covered, total_rows),
            uncovered_user_stories=len(story_ids) - len(covered_user_story_ids(rows)),
        ),
        execution=ExecutionSummary(
            total=executed,
            passed=passed,
            failed=failed,
            pass_percentage=percentage(passed, executed),
            fail_percentage=percentage(failed, executed),
        ),
    )
    
    modules = [module_coverage(feature, rows) for feature in features]
    return CoverageStatistics(
        overall_coverage=overall,
        module_wise_coverage=modules,
        summary=summarize_modules(modules, risk_threshold),
    )


def summarize_report(rows: Sequence[MatrixRow]) -> Dict[str, object]:
    """
    Story-level summary shown alongside the JSON matrix report.
    
    Coverage here is over user stories (a story counts once it has any
    covered row), unlike the row-level coverage in the KPI statistics.
    """
    story_ids = {row.user_story_id for row in rows}
    covered_stories = covered_user_story_ids(rows)
    story_coverage = (len(covered_stories) / len(story_ids) * 100) if story_ids else 0.0
    return {
        "totalUserStories": len(story_ids),
        "totalTestCases": sum(1 for row in rows if row.test_case_id is not None),
        "coveredUserStories": len(covered_stories),
        "missingTestCases": sum(1 for row in rows if row.status == CoverageStatus.MISSING.value),
        "coveragePercentage": f"{story_coverage:.1f}%",
    }
