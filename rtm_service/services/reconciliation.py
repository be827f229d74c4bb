"""
Reconcile a user story's acceptance criteria against its linked test cases.

This is the per-story step of RTM generation: it turns one Requirement and
the TestCases linked to it into ordered MatrixRows. It performs no I/O.
"""
from collections import OrderedDict
from typing import Dict, Iterable, List

from rtm_service.config import RTMOptions
from rtm_service.models.enums import (
    CoverageStatus,
    EmptyCriteriaPolicy,
    ExecutionStatus,
    Priority,
    ScenarioType,
    UnlinkedTestCasePolicy,
)
from rtm_service.models.matrix import MatrixRow
from rtm_service.models.work_items import Requirement, TestCase
from rtm_service.services.classifier import classify_scenario_type, map_priority


def group_by_criterion(test_cases: Iterable[TestCase]) -> Dict[int, List[TestCase]]:
    """Criterion number -> test cases in fetch order. Test cases without a number are left out."""
    grouped: Dict[int, List[TestCase]] = OrderedDict()
    for test_case in test_cases:
        number = test_case.acceptance_criterion_number
        if number is None:
            continue
        grouped.setdefault(number, []).append(test_case)
    return grouped


def story_missing_row(requirement: Requirement) -> MatrixRow:
    """The single row emitted for a story that has no linked test cases."""
    return MatrixRow(
        user_story_id=requirement.id,
        feature=requirement.feature,
        scenario_type=classify_scenario_type(requirement.title, requirement.description, requirement.tags).value,
        description=requirement.title,
        test_case_id=None,
        status=CoverageStatus.MISSING,
        priority=map_priority(requirement.priority),
        execution=ExecutionStatus.NONE,
    )


def criterion_missing_row(requirement: Requirement, criterion_text: str) -> MatrixRow:
    return MatrixRow(
        user_story_id=requirement.id,
        feature=requirement.feature,
        scenario_type=ScenarioType.FUNCTIONAL.value,
        description=criterion_text,
        test_case_id=None,
        status=CoverageStatus.MISSING,
        priority=Priority.MEDIUM,
        execution=ExecutionStatus.NONE,
    )


def covered_row(requirement: Requirement, test_case: TestCase, options: RTMOptions) -> MatrixRow:
    return MatrixRow(
        user_story_id=requirement.id,
        feature=requirement.feature,
        scenario_type=test_case.scenario_type or ScenarioType.FUNCTIONAL.value,
        description=test_case.description or test_case.title,
        test_case_id=test_case.id,
        status=CoverageStatus.COVERED,
        priority=map_priority(test_case.priority),
        execution=test_case.execution_outcome(options.done_states),
    )


def reconcile(
    requirement: Requirement,
    test_cases: List[TestCase],
    options: RTMOptions = RTMOptions()
) -> List[MatrixRow]:
    """
    Build the matrix rows for one user story.
    
    - No linked test cases: one Missing row for the story itself.
    - Otherwise one group of rows per acceptance criterion, in ascending
      criterion number: a Missing row when no test references the
      criterion, else one Covered row per referencing test case.
    - Test cases without a criterion number are dropped, or appended as
      Covered rows after the criteria under UnlinkedTestCasePolicy.APPEND.
    - Linked test cases but no parsed criteria: handled by
      options.empty_criteria_policy (drop / single Missing row / one row per test).
    
    Args:
        requirement: The user story, with parsed acceptance criteria
        test_cases: Test cases resolved from the story's test links, in link order
        options: Engine options (done states and open-question policies)
    
    Returns:
        Rows for this story, in emission order
    """
    if not test_cases:
        return [story_missing_row(requirement)]
    
    if not requirement.acceptance_criteria:
        policy = EmptyCriteriaPolicy(options.empty_criteria_policy)
        if policy == EmptyCriteriaPolicy.MISSING:
            return [story_missing_row(requirement)]
        if policy == EmptyCriteriaPolicy.TESTS:
            return [covered_row(requirement, test_case, options) for test_case in test_cases]
        return []
    
    grouped = group_by_criterion(test_cases)
    rows = []
    for number in sorted(requirement.acceptance_criteria):
        covering = grouped.get(number, [])
        if not covering:
            rows.append(criterion_missing_row(requirement, requirement.acceptance_criteria[number]))
            continue
        for test_case in covering:
            rows.append(covered_row(requirement, test_case, options))
    
    if UnlinkedTestCasePolicy(options.unlinked_test_case_policy) == UnlinkedTestCasePolicy.APPEND:
        for test_case in test_cases:
            if test_case.acceptance_criterion_number is None:
                rows.append(covered_row(requirement, test_case, options))
    
    return rows
