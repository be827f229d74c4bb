"""
Tests for reconciling a user story's acceptance criteria with its test cases.
"""
import pytest
from pydantic import ValidationError

from rtm_service.config import RTMOptions
from rtm_service.models.enums import EmptyCriteriaPolicy, UnlinkedTestCasePolicy
from rtm_service.models.matrix import MatrixRow
from rtm_service.models.work_items import Requirement, TestCase
from rtm_service.services.reconciliation import group_by_criterion, reconcile


def _login_story(**overrides):
    values = dict(
        id=100,
        title="Login",
        feature="Auth",
        acceptance_criteria={1: "can log in", 2: "can log out"},
    )
    values.update(overrides)
    return Requirement(**values)


def test_covered_and_missing_criteria():
    """One covered criterion and one criterion nobody tests."""
    test_case = TestCase(
        id=501, title="Log in with a valid password", acceptance_criterion_number=1,
        priority="High", state="Done"
    )
    
    rows = reconcile(_login_story(), [test_case])
    
    assert len(rows) == 2
    covered, missing = rows
    assert covered.user_story_id == 100
    assert covered.test_case_id == 501
    assert covered.status == "Covered"
    assert covered.priority == "High"
    assert covered.execution == "Pass"
    assert covered.scenario_type == "Functional"
    assert covered.description == "Log in with a valid password"
    assert covered.feature == "Auth"
    
    assert missing.description == "can log out"
    assert missing.test_case_id is None
    assert missing.status == "Missing"
    assert missing.priority == "Medium"
    assert missing.execution == ""
    assert missing.scenario_type == "Functional"
    assert missing.model_dump(by_alias=True)["TestCaseId"] == ""


def test_story_without_test_cases_gets_one_classified_missing_row():
    requirement = Requirement(id=200, title="Export report", tags="performance")
    
    rows = reconcile(requirement, [])
    
    assert len(rows) == 1
    row = rows[0]
    assert row.status == "Missing"
    assert row.scenario_type == "Performance"
    assert row.priority == "Medium"
    assert row.description == "Export report"
    assert row.test_case_id is None
    assert row.execution == ""


def test_story_priority_is_mapped_for_missing_story_row():
    rows = reconcile(Requirement(id=7, title="Edit profile", priority=1), [])
    
    assert rows[0].priority == "High"


def test_criteria_are_emitted_in_ascending_number_order():
    requirement = _login_story(acceptance_criteria={3: "third", 1: "first"})
    
    rows = reconcile(requirement, [TestCase(id=9, title="covers third", acceptance_criterion_number=3)])
    
    assert [row.description for row in rows] == ["first", "covers third"]
    assert rows[0].status == "Missing"
    assert rows[1].test_case_id == 9


def test_several_test_cases_for_one_criterion_keep_fetch_order():
    test_cases = [
        TestCase(id=12, title="second link", acceptance_criterion_number=1),
        TestCase(id=11, title="first link", acceptance_criterion_number=1),
    ]
    
    rows = reconcile(_login_story(), test_cases)
    
    assert [row.test_case_id for row in rows] == [12, 11, None]


def test_test_case_description_wins_over_title():
    test_case = TestCase(id=1, title="Title", description="Detailed steps", acceptance_criterion_number=1)
    
    rows = reconcile(_login_story(), [test_case])
    
    assert rows[0].description == "Detailed steps"


def test_explicit_scenario_type_is_kept():
    test_case = TestCase(id=1, acceptance_criterion_number=2, scenario_type="Negative")
    
    rows = reconcile(_login_story(), [test_case])
    
    assert rows[1].scenario_type == "Negative"


def test_not_done_test_case_fails():
    test_case = TestCase(id=1, acceptance_criterion_number=1, state="Design")
    
    rows = reconcile(_login_story(), [test_case])
    
    assert rows[0].execution == "Fail"


def test_done_states_are_configurable():
    options = RTMOptions(done_states=("Closed",))
    closed = TestCase(id=1, acceptance_criterion_number=1, state="Closed")
    done = TestCase(id=2, acceptance_criterion_number=2, state="Done")
    
    rows = reconcile(_login_story(), [closed, done], options)
    
    assert [row.execution for row in rows] == ["Pass", "Fail"]


def test_test_case_for_unknown_criterion_produces_no_row():
    test_case = TestCase(id=1, acceptance_criterion_number=9)
    
    rows = reconcile(_login_story(), [test_case])
    
    assert [row.status for row in rows] == ["Missing", "Missing"]


def test_unreferenced_test_cases_are_dropped_by_default():
    test_cases = [TestCase(id=1, acceptance_criterion_number=1), TestCase(id=2)]
    
    rows = reconcile(_login_story(), test_cases)
    
    assert [row.test_case_id for row in rows] == [1, None]


def test_unreferenced_test_cases_can_be_appended():
    options = RTMOptions(unlinked_test_case_policy=UnlinkedTestCasePolicy.APPEND)
    test_cases = [TestCase(id=2, title="smoke"), TestCase(id=1, acceptance_criterion_number=1)]
    
    rows = reconcile(_login_story(), test_cases, options)
    
    assert [row.test_case_id for row in rows] == [1, None, 2]
    assert rows[2].status == "Covered"
    assert rows[2].description == "smoke"


@pytest.mark.parametrize("policy,expected_statuses", [
    (EmptyCriteriaPolicy.MISSING, ["Missing"]),
    (EmptyCriteriaPolicy.TESTS, ["Covered", "Covered"]),
    (EmptyCriteriaPolicy.DROP, []),
])
def test_linked_tests_without_criteria_follow_policy(policy, expected_statuses):
    requirement = Requirement(id=300, title="Search", acceptance_criteria={})
    test_cases = [TestCase(id=1), TestCase(id=2, acceptance_criterion_number=1)]
    
    rows = reconcile(requirement, test_cases, RTMOptions(empty_criteria_policy=policy))
    
    assert [row.status for row in rows] == expected_statuses


def test_default_empty_criteria_policy_emits_story_row():
    requirement = Requirement(id=300, title="Search", acceptance_criteria={})
    
    rows = reconcile(requirement, [TestCase(id=1)])
    
    assert len(rows) == 1
    assert rows[0].description == "Search"
    assert rows[0].test_case_id is None


def test_group_by_criterion_skips_unnumbered_test_cases():
    grouped = group_by_criterion([
        TestCase(id=1, acceptance_criterion_number=2),
        TestCase(id=2),
        TestCase(id=3, acceptance_criterion_number=2),
    ])
    
    assert list(grouped) == [2]
    assert [test_case.id for test_case in grouped[2]] == [1, 3]


def test_matrix_row_rejects_covered_row_without_test_case():
    with pytest.raises(ValidationError):
        MatrixRow(user_story_id=1, scenario_type="Functional", status="Covered", priority="Medium")


def test_matrix_row_rejects_execution_on_missing_row():
    with pytest.raises(ValidationError):
        MatrixRow(
            user_story_id=1, scenario_type="Functional", status="Missing",
            priority="Medium", execution="Pass"
        )
