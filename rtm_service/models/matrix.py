"""
Pydantic models for the traceability matrix and its coverage statistics.

Field aliases are the wire contract consumed by the JSON report, the KPI
endpoint and the spreadsheet export; always serialize with ``by_alias=True``.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from rtm_service.models.enums import CoverageStatus, ExecutionStatus, Priority


class MatrixRow(BaseModel):
    """One RTM row pairing a user story (and possibly a criterion) with its coverage."""
    
    model_config = ConfigDict(populate_by_name=True, frozen=True, use_enum_values=True, validate_default=True)
    
    user_story_id: int = Field(..., alias="UserStoryId")
    feature: str = Field(default="", alias="Feature")
    scenario_type: str = Field(..., alias="ScenarioType")
    description: str = Field(default="", alias="Description")
    test_case_id: Optional[int] = Field(None, alias="TestCaseId")
    status: CoverageStatus = Field(..., alias="Status")
    priority: Priority = Field(..., alias="Priority")
    execution: ExecutionStatus = Field(default=ExecutionStatus.NONE, alias="Execution")

    @model_validator(mode="after")
    def _check_coverage_invariant(self) -> "MatrixRow":
        covered = self.status == CoverageStatus.COVERED.value
        if covered != (self.test_case_id is not None):
            raise ValueError("Covered rows must carry a test case id and Missing rows must not")
        if self.execution != ExecutionStatus.NONE.value and not covered:
            raise ValueError("Execution is only recorded for Covered rows")
        return self

    @field_serializer("test_case_id")
    def _serialize_test_case_id(self, value: Optional[int]):
        return "" if value is None else value

    @property
    def is_covered(self) -> bool:
        return self.status == CoverageStatus.COVERED.value


class RowDiagnostic(BaseModel):
    """Why a requested user story contributed no rows (or fewer rows than expected)."""
    
    model_config = ConfigDict(populate_by_name=True)
    
    user_story_id: int = Field(..., alias="userStoryId")
    reason: str = Field(..., description="not_found | wrong_type | fetch_failed | no_criteria")
    detail: str = ""


class MatrixResult(BaseModel):
    """Matrix rows plus the per-item diagnostics collected while building them."""
    
    rows: List[MatrixRow] = Field(default_factory=list)
    diagnostics: List[RowDiagnostic] = Field(default_factory=list)


class _StatsModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class TestCasesByType(_StatsModel):
    __test__ = False
    
    positive: int = 0
    negative: int = 0
    edge_cases: int = Field(0, alias="edgeCases")
    integration: int = 0


class CoverageSummary(_StatsModel):
    total_covered: int = Field(0, alias="totalCovered")
    coverage_percentage: int = Field(0, alias="coveragePercentage")
    uncovered_user_stories: int = Field(0, alias="uncoveredUserStories")


class ExecutionSummary(_StatsModel):
    total: int = 0
    passed: int = Field(0, alias="pass")
    failed: int = Field(0, alias="fail")
    pass_percentage: int = Field(0, alias="passPercentage")
    fail_percentage: int = Field(0, alias="failPercentage")


class OverallCoverage(_StatsModel):
    total_user_stories: int = Field(0, alias="totalUserStories")
    total_modules: int = Field(0, alias="totalModules")
    total_use_cases: int = Field(0, alias="totalUseCases")
    test_cases_by_type: TestCasesByType = Field(default_factory=TestCasesByType, alias="testCasesByType")
    coverage: CoverageSummary = Field(default_factory=CoverageSummary)
    execution: ExecutionSummary = Field(default_factory=ExecutionSummary)


class ModuleCoverage(_StatsModel):
    """Per-feature coverage breakdown."""
    
    feature: str
    total_use_cases: int = Field(0, alias="totalUseCases")
    positive_covered: int = Field(0, alias="positiveCovered")
    negative_covered: int = Field(0, alias="negativeCovered")
    edge_cases_covered: int = Field(0, alias="edgeCasesCovered")
    integration_covered: int = Field(0, alias="integrationCovered")
    total_covered: int = Field(0, alias="totalCovered")
    coverage_percentage: int = Field(0, alias="coveragePercentage")
    passed: int = Field(0, alias="pass")
    failed: int = Field(0, alias="fail")


class RankedModule(_StatsModel):
    feature: str
    coverage_percentage: int = Field(0, alias="coveragePercentage")
    total_use_cases: int = Field(0, alias="totalUseCases")


class RiskArea(RankedModule):
    gap: int = 0


class StatisticsSummary(_StatsModel):
    top_performing_modules: List[RankedModule] = Field(default_factory=list, alias="topPerformingModules")
    low_performing_modules: List[RankedModule] = Field(default_factory=list, alias="lowPerformingModules")
    risk_areas: List[RiskArea] = Field(default_factory=list, alias="riskAreas")


class CoverageStatistics(_StatsModel):
    """Coverage KPIs derived from a matrix. Recomputed per request, never stored."""
    
    overall_coverage: OverallCoverage = Field(default_factory=OverallCoverage, alias="overallCoverage")
    module_wise_coverage: List[ModuleCoverage] = Field(default_factory=list, alias="moduleWiseCoverage")
    summary: StatisticsSummary = Field(default_factory=StatisticsSummary)

    def to_api_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
