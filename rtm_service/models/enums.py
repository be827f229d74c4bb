"""
Status and classification enums for RTM rows and engine policies.
"""
from enum import Enum


class ScenarioType(str, Enum):
    """Scenario type labels produced by the classifier."""
    
    API = "API"
    UI = "UI"
    INTEGRATION = "Integration"
    PERFORMANCE = "Performance"
    SECURITY = "Security"
    FUNCTIONAL = "Functional"


class Priority(str, Enum):
    """Normalized RTM priority."""
    
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class CoverageStatus(str, Enum):
    """Coverage status of a matrix row."""
    
    COVERED = "Covered"
    MISSING = "Missing"


class ExecutionStatus(str, Enum):
    """Execution outcome of a covered row ("" is reserved for Missing rows)."""
    
    PASS = "Pass"
    FAIL = "Fail"
    NONE = ""


class UnlinkedTestCasePolicy(str, Enum):
    """What to do with linked test cases that carry no acceptance criterion number."""
    
    DROP = "drop"
    APPEND = "append"


class EmptyCriteriaPolicy(str, Enum):
    """What to do with a user story that has test cases but no parsed acceptance criteria."""
    
    DROP = "drop"
    MISSING = "missing"
    TESTS = "tests"
