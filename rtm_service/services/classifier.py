"""
Deterministic classification of work items into scenario types and RTM priorities.
"""
from typing import Any, Optional

from rtm_service.models.enums import Priority, ScenarioType

# Ordered: the first group with a keyword contained in the text wins
SCENARIO_KEYWORDS = [
    (ScenarioType.API, ("api", "service", "endpoint")),
    (ScenarioType.UI, ("ui", "interface", "screen", "page")),
    (ScenarioType.INTEGRATION, ("integration", "end-to-end", "e2e")),
    (ScenarioType.PERFORMANCE, ("performance", "load", "stress")),
    (ScenarioType.SECURITY, ("security", "authentication", "authorization")),
]

HIGH_PRIORITY_VALUES = {"1", "critical", "high"}
MEDIUM_PRIORITY_VALUES = {"2", "medium", "normal"}
LOW_PRIORITY_VALUES = {"3", "4", "low"}


def classify_scenario_type(
    title: Optional[str],
    description: Optional[str],
    tags: Optional[str]
) -> ScenarioType:
    """
    Classify an item by substring keywords over its title, description and tags.
    
    Matching is plain containment on the lower-cased text, so "ui" also
    matches inside words such as "build".
    """
    content = f"{title or ''} {description or ''} {tags or ''}".lower()
    for scenario_type, keywords in SCENARIO_KEYWORDS:
        if any(keyword in content for keyword in keywords):
            return scenario_type
    return ScenarioType.FUNCTIONAL


def map_priority(raw_priority: Any) -> Priority:
    """
    Map an Azure DevOps priority (1-4 or a label) to Low/Medium/High.
    
    Missing and unrecognized values map to Medium.
    """
    if raw_priority is None:
        return Priority.MEDIUM
    
    priority_str = str(raw_priority).strip().lower()
    
    if priority_str in HIGH_PRIORITY_VALUES:
        return Priority.HIGH
    if priority_str in MEDIUM_PRIORITY_VALUES:
        return Priority.MEDIUM
    if priority_str in LOW_PRIORITY_VALUES:
        return Priority.LOW
    return Priority.MEDIUM
