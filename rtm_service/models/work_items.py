"""
Pydantic models for Azure DevOps work items consumed by the RTM engine.
"""
from typing import Any, Dict, Iterable, Optional
from pydantic import BaseModel, Field

from rtm_service.models.enums import ExecutionStatus

DEFAULT_DONE_STATES = ("Done", "Completed")


class LinkedRef(BaseModel):
    """A raw relation on a work item."""
    
    rel: str = Field(default="", description="Relation kind (e.g. Microsoft.VSTS.Common.TestedBy-Forward)")
    url: str = Field(default="", description="Target work item URL")
    target_id: Optional[int] = Field(None, description="Target work item ID parsed from the URL")

    def is_test_link(self) -> bool:
        """Tested-by relations, or any relation whose kind mentions tests."""
        rel = self.rel or ""
        return rel.startswith("Microsoft.VSTS.Common.TestedBy") or "test" in rel.lower()


class Requirement(BaseModel):
    """A user story with its parsed acceptance criteria."""
    
    id: int
    title: str = ""
    description: str = ""
    state: str = ""
    priority: Any = None
    feature: str = ""
    tags: str = ""
    acceptance_criteria: Dict[int, str] = Field(
        default_factory=dict,
        description="Criterion number (1-based, parse order) -> criterion text"
    )


class TestCase(BaseModel):
    """A test case linked to a user story."""
    
    __test__ = False  # not a pytest class
    
    id: int
    title: str = ""
    description: str = ""
    state: str = ""
    priority: Any = None
    steps: str = ""
    acceptance_criterion_number: Optional[int] = Field(
        None,
        description="Number of the parent story's acceptance criterion this test verifies"
    )
    scenario_type: Optional[str] = None

    def execution_outcome(self, done_states: Iterable[str] = DEFAULT_DONE_STATES) -> ExecutionStatus:
        """Pass when the lifecycle state is one of the done states, otherwise Fail."""
        return ExecutionStatus.PASS if self.state in set(done_states) else ExecutionStatus.FAIL


class Iteration(BaseModel):
    """A sprint (team iteration)."""
    
    id: str
    name: str
    path: Optional[str] = None
    start_date: Optional[str] = None
    finish_date: Optional[str] = None
    time_frame: Optional[str] = None
    url: Optional[str] = None

    def to_api_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "startDate": self.start_date,
            "finishDate": self.finish_date,
            "timeFrame": self.time_frame,
            "url": self.url,
        }
