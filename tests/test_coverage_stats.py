"""
Tests for coverage statistics derived from a matrix.
"""
import itertools

from rtm_service.models.matrix import MatrixRow
from rtm_service.services.coverage_stats import (
    calculate_coverage_statistics,
    percentage,
    summarize_report,
)

_test_case_ids = itertools.count(1000)


def _row(story_id, feature, scenario_type, covered, execution=""):
    return MatrixRow(
        user_story_id=story_id,
        feature=feature,
        scenario_type=scenario_type,
        description="row",
        test_case_id=next(_test_case_ids) if covered else None,
        status="Covered" if covered else "Missing",
        priority="Medium",
        execution=execution,
    )


def _sample_matrix():
    """Ten rows, seven covered: Auth fully covered, Cart half covered."""
    return [
        _row(1, "Auth", "Positive", True, "Pass"),
        _row(1, "Auth", "Positive", True, "Pass"),
        _row(1, "Auth", "Negative", True, "Fail"),
        _row(1, "Auth", "Edge Case", True, "Pass"),
        _row(2, "Cart", "Integration", True, "Pass"),
        _row(2, "Cart", "Functional", True, "Fail"),
        _row(2, "Cart", "Positive", True, "Fail"),
        _row(2, "Cart", "Functional", False),
        _row(3, "Cart", "Functional", False),
        _row(3, "Cart", "Functional", False),
    ]


def test_overall_coverage():
    stats = calculate_coverage_statistics(_sample_matrix())
    overall = stats.overall_coverage
    
    assert overall.total_user_stories == 3
    assert overall.total_modules == 2
    assert overall.total_use_cases == 10
    assert overall.coverage.total_covered == 7
    assert overall.coverage.coverage_percentage == 70
    assert overall.coverage.uncovered_user_stories == 1
    assert overall.test_cases_by_type.positive == 3
    assert overall.test_cases_by_type.negative == 1
    assert overall.test_cases_by_type.edge_cases == 1
    assert overall.test_cases_by_type.integration == 1


def test_execution_summary():
    execution = calculate_coverage_statistics(_sample_matrix()).overall_coverage.execution
    
    assert execution.total == 7
    assert execution.passed == 4
    assert execution.failed == 3
    assert execution.pass_percentage == 57
    assert execution.fail_percentage == 43


def test_module_wise_coverage_in_first_seen_order():
    modules = calculate_coverage_statistics(_sample_matrix()).module_wise_coverage
    
    assert [module.feature for module in modules] == ["Auth", "Cart"]
    auth, cart = modules
    assert auth.total_use_cases == 4
    assert auth.positive_covered == 2
    assert auth.negative_covered == 1
    assert auth.edge_cases_covered == 1
    assert auth.coverage_percentage == 100
    assert (auth.passed, auth.failed) == (3, 1)
    assert cart.total_use_cases == 6
    assert cart.total_covered == 3
    assert cart.integration_covered == 1
    assert cart.positive_covered == 1
    assert cart.coverage_percentage == 50
    assert (cart.passed, cart.failed) == (1, 2)


def test_rankings_and_risk_areas():
    summary = calculate_coverage_statistics(_sample_matrix()).summary
    
    assert [module.feature for module in summary.top_performing_modules] == ["Auth", "Cart"]
    assert [module.feature for module in summary.low_performing_modules] == ["Cart", "Auth"]
    assert len(summary.risk_areas) == 1
    assert summary.risk_areas[0].feature == "Cart"
    assert summary.risk_areas[0].gap == 3


def test_risk_threshold_is_configurable():
    summary = calculate_coverage_statistics(_sample_matrix(), risk_threshold=50).summary
    
    assert summary.risk_areas == []


def test_rankings_are_capped_at_five():
    rows = [_row(i, f"Feature {i}", "Functional", i % 2 == 0, "Pass" if i % 2 == 0 else "") for i in range(8)]
    
    summary = calculate_coverage_statistics(rows).summary
    
    assert len(summary.top_performing_modules) == 5
    assert len(summary.low_performing_modules) == 5
    # Ties keep first-seen order
    assert summary.top_performing_modules[0].feature == "Feature 0"
    assert summary.low_performing_modules[0].feature == "Feature 1"


def test_rows_without_feature_count_towards_totals_only():
    rows = [_row(1, "", "Functional", True, "Pass"), _row(2, "Auth", "Functional", False)]
    
    stats = calculate_coverage_statistics(rows)
    
    assert stats.overall_coverage.total_modules == 1
    assert stats.overall_coverage.total_use_cases == 2
    assert [module.feature for module in stats.module_wise_coverage] == ["Auth"]


def test_empty_matrix_gives_zero_statistics():
    stats = calculate_coverage_statistics([])
    
    assert stats.overall_coverage.total_use_cases == 0
    assert stats.overall_coverage.coverage.coverage_percentage == 0
    assert stats.overall_coverage.execution.pass_percentage == 0
    assert stats.module_wise_coverage == []
    assert stats.summary.risk_areas == []


def test_api_dict_uses_camel_case_keys():
    data = calculate_coverage_statistics(_sample_matrix()).to_api_dict()
    
    assert data["overallCoverage"]["testCasesByType"]["edgeCases"] == 1
    assert data["overallCoverage"]["execution"]["pass"] == 4
    assert data["overallCoverage"]["coverage"]["coveragePercentage"] == 70
    assert data["moduleWiseCoverage"][0]["positiveCovered"] == 2
    assert data["summary"]["riskAreas"][0]["gap"] == 3


def test_percentage_rounds_half_up():
    assert percentage(1, 8) == 13
    assert percentage(2, 3) == 67
    assert percentage(1, 3) == 33
    assert percentage(5, 0) == 0


def test_report_summary_is_story_level():
    summary = summarize_report(_sample_matrix())
    
    assert summary == {
        "totalUserStories": 3,
        "totalTestCases": 7,
        "coveredUserStories": 2,
        "missingTestCases": 3,
        "coveragePercentage": "66.7%",
    }


def test_report_summary_of_empty_matrix():
    assert summarize_report([])["coveragePercentage"] == "0.0%"


def test_covered_flag_follows_row_status():
    covered = _row(1, "Auth", "Functional", True, "Pass")
    missing = _row(1, "Auth", "Functional", False)
    
    assert covered.is_covered
    assert not missing.is_covered
    stats = calculate_coverage_statistics([covered, missing])
    assert stats.overall_coverage.coverage.total_covered == 1
