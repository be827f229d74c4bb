"""
Environment configuration and explicit configuration structs for the RTM engine.
"""
from dataclasses import dataclass
from typing import List, Optional, Tuple
from dotenv import load_dotenv
from pydantic_settings import BaseSettings

from rtm_service.models.enums import EmptyCriteriaPolicy, UnlinkedTestCasePolicy

# Load environment variables from .env file at module import time
try:
    load_dotenv()
except (PermissionError, OSError):
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # API Configuration
    api_title: str = "Azure DevOps RTM Generator API"
    api_version: str = "1.0.0"
    cors_allowed_origins: str = "http://localhost:8080"
    
    # Persistence
    database_url: str = "sqlite:///./connections.db"
    connection_secret_key: Optional[str] = None
    
    # Default Azure DevOps connection (optional; stored connections are used otherwise)
    azure_devops_org_url: Optional[str] = None
    azure_devops_pat: Optional[str] = None
    azure_devops_project: Optional[str] = None
    azure_devops_api_version: str = "7.0"
    
    # Transport
    request_timeout: int = 30
    max_retries: int = 2
    retry_base_delay: float = 0.5
    
    # Engine
    concurrency_limit: int = 5
    done_states: List[str] = ["Done", "Completed"]
    unlinked_test_case_policy: UnlinkedTestCasePolicy = UnlinkedTestCasePolicy.DROP
    empty_criteria_policy: EmptyCriteriaPolicy = EmptyCriteriaPolicy.MISSING
    coverage_risk_threshold: int = 80
    
    # Application Configuration
    log_level: str = "INFO"
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    def get_allowed_origins(self) -> List[str]:
        """Split the comma-separated CORS allow-list."""
        return [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]

    def has_default_connection(self) -> bool:
        return bool(self.azure_devops_org_url and self.azure_devops_pat and self.azure_devops_project)


# Global settings instance
settings = Settings()


@dataclass(frozen=True)
class AzureDevOpsConfig:
    """Connection settings handed to the Azure DevOps client."""
    
    org_url: str
    personal_access_token: str
    project: str
    api_version: str = "7.0"
    timeout: int = 30
    max_retries: int = 2
    retry_base_delay: float = 0.5
    retry_max_delay: float = 8.0

    def __post_init__(self):
        if not self.org_url:
            raise ValueError("Azure DevOps organization URL is required")
        if not self.personal_access_token:
            raise ValueError("Azure DevOps personal access token is required")
        if not self.project:
            raise ValueError("Azure DevOps project name is required")
        # Trailing slashes break URL joining
        object.__setattr__(self, "org_url", self.org_url.rstrip("/"))

    @property
    def api_base_url(self) -> str:
        return f"{self.org_url}/{self.project}/_apis"

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "AzureDevOpsConfig":
        """
        Create config from the default connection in application settings.
        
        Raises:
            ValueError: If the default connection variables are missing
        """
        return cls(
            org_url=app_settings.azure_devops_org_url or "",
            personal_access_token=app_settings.azure_devops_pat or "",
            project=app_settings.azure_devops_project or "",
            api_version=app_settings.azure_devops_api_version,
            timeout=app_settings.request_timeout,
            max_retries=app_settings.max_retries,
            retry_base_delay=app_settings.retry_base_delay,
        )

    @classmethod
    def from_connection(
        cls,
        org_url: str,
        personal_access_token: str,
        project: str,
        app_settings: Optional[Settings] = None,
    ) -> "AzureDevOpsConfig":
        """Create config for a stored connection, taking transport tuning from settings."""
        app_settings = app_settings or settings
        return cls(
            org_url=org_url,
            personal_access_token=personal_access_token,
            project=project,
            api_version=app_settings.azure_devops_api_version,
            timeout=app_settings.request_timeout,
            max_retries=app_settings.max_retries,
            retry_base_delay=app_settings.retry_base_delay,
        )


@dataclass(frozen=True)
class RTMOptions:
    """Engine options for matrix generation."""
    
    concurrency_limit: int = 5
    done_states: Tuple[str, ...] = ("Done", "Completed")
    unlinked_test_case_policy: UnlinkedTestCasePolicy = UnlinkedTestCasePolicy.DROP
    empty_criteria_policy: EmptyCriteriaPolicy = EmptyCriteriaPolicy.MISSING
    risk_threshold: int = 80

    def __post_init__(self):
        if self.concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "RTMOptions":
        return cls(
            concurrency_limit=app_settings.concurrency_limit,
            done_states=tuple(app_settings.done_states),
            unlinked_test_case_policy=app_settings.unlinked_test_case_policy,
            empty_criteria_policy=app_settings.empty_criteria_policy,
            risk_threshold=app_settings.coverage_risk_threshold,
        )
