"""
Tests for scenario type classification and priority mapping.
"""
import pytest

from rtm_service.models.enums import Priority, ScenarioType
from rtm_service.services.classifier import classify_scenario_type, map_priority


@pytest.mark.parametrize("title,description,tags,expected", [
    ("Login API returns a token", "", "", ScenarioType.API),
    ("Checkout screen layout", "", "", ScenarioType.UI),
    ("Order sync", "Runs end-to-end against the ERP", "", ScenarioType.INTEGRATION),
    ("Export report", "", "performance", ScenarioType.PERFORMANCE),
    ("Password reset", "Protected by authorization", "", ScenarioType.SECURITY),
    ("Edit profile", "", "", ScenarioType.FUNCTIONAL),
])
def test_classify_scenario_type_by_keyword(title, description, tags, expected):
    assert classify_scenario_type(title, description, tags) == expected


def test_first_matching_group_wins():
    """API keywords are checked before UI keywords."""
    assert classify_scenario_type("Screen that calls the API", "", "") == ScenarioType.API


def test_keywords_match_inside_words():
    """'build' contains 'ui', so it classifies as UI."""
    assert classify_scenario_type("Build pipeline", "", "") == ScenarioType.UI


def test_missing_text_is_functional():
    assert classify_scenario_type(None, None, None) == ScenarioType.FUNCTIONAL


def test_matching_is_case_insensitive():
    assert classify_scenario_type("STRESS run", "", "") == ScenarioType.PERFORMANCE


@pytest.mark.parametrize("raw,expected", [
    (1, Priority.HIGH),
    ("1", Priority.HIGH),
    ("Critical", Priority.HIGH),
    ("high", Priority.HIGH),
    (2, Priority.MEDIUM),
    ("Normal", Priority.MEDIUM),
    (3, Priority.LOW),
    (4, Priority.LOW),
    (" low ", Priority.LOW),
    (None, Priority.MEDIUM),
    ("urgent", Priority.MEDIUM),
    ("", Priority.MEDIUM),
])
def test_map_priority(raw, expected):
    assert map_priority(raw) == expected
