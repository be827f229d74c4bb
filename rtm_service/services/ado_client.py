"""
Azure DevOps client for read-only access to work items, links, queries and iterations.

This module never writes to Azure DevOps. Transport failures are retried and
translated into AzureDevOpsClientError; a missing work item (HTTP 404) is
not an error and comes back as None.
"""
from typing import Any, Dict, List, Optional, Tuple
import logging
import random
import time
import requests
from requests.auth import HTTPBasicAuth

from rtm_service.config import AzureDevOpsConfig
from rtm_service.models.work_items import Iteration, LinkedRef, Requirement, TestCase
from rtm_service.services.acceptance_criteria import parse_acceptance_criteria

logger = logging.getLogger(__name__)

USER_STORY_TYPE = "User Story"
TEST_CASE_TYPE = "Test Case"
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class AzureDevOpsClientError(Exception):
    """Raised when Azure DevOps API calls fail."""
    
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AzureDevOpsAuthError(AzureDevOpsClientError):
    """Raised when Azure DevOps rejects the credentials (401/403)."""
    pass


def work_item_type(work_item: Dict[str, Any]) -> str:
    return (work_item.get("fields") or {}).get("System.WorkItemType", "")


def _feature_from_area_path(area_path: str, title: str) -> str:
    """Last segment of the area path, falling back to the title."""
    if area_path:
        segment = area_path.split("\\")[-1].strip()
        if segment:
            return segment
    return title


def _parse_criterion_number(value: Any) -> Optional[int]:
    """Custom.AcceptanceCriteriaNumber arrives as int, float or string; keep positive integers only."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if not number.is_integer() or number < 1:
        return None
    return int(number)


def parse_requirement(work_item: Dict[str, Any]) -> Requirement:
    """
    Build a Requirement from a raw user story payload.
    
    Args:
        work_item: Work item JSON as returned by the work items API
        
    Returns:
        Requirement with acceptance criteria parsed from the HTML field
    """
    fields = work_item.get("fields") or {}
    title = fields.get("System.Title") or ""
    return Requirement(
        id=work_item.get("id"),
        title=title,
        description=fields.get("System.Description") or "",
        state=fields.get("System.State") or "",
        priority=fields.get("Microsoft.VSTS.Common.Priority"),
        feature=_feature_from_area_path(fields.get("System.AreaPath") or "", title),
        tags=fields.get("System.Tags") or "",
        acceptance_criteria=parse_acceptance_criteria(
            fields.get("Microsoft.VSTS.Common.AcceptanceCriteria")
        ),
    )


def parse_test_case(work_item: Dict[str, Any]) -> TestCase:
    """Build a TestCase from a raw test case payload."""
    fields = work_item.get("fields") or {}
    return TestCase(
        id=work_item.get("id"),
        title=fields.get("System.Title") or "",
        description=fields.get("System.Description") or "",
        state=fields.get("System.State") or "",
        priority=fields.get("Microsoft.VSTS.Common.Priority"),
        steps=fields.get("Microsoft.VSTS.TCM.Steps") or "",
        acceptance_criterion_number=_parse_criterion_number(fields.get("Custom.AcceptanceCriteriaNumber")),
        scenario_type=fields.get("Custom.ScenarioType") or None,
    )


def parse_relation(relation: Dict[str, Any]) -> LinkedRef:
    """Build a LinkedRef; the target ID is the last path segment of the relation URL."""
    url = relation.get("url") or ""
    target_id = None
    tail = url.rstrip("/").split("/")[-1] if url else ""
    if tail.isdigit():
        target_id = int(tail)
    return LinkedRef(rel=relation.get("rel") or "", url=url, target_id=target_id)


class AzureDevOpsClient:
    """Client for fetching Azure DevOps work item data (read-only)."""
    
    def __init__(self, config: AzureDevOpsConfig):
        """
        Initialize Azure DevOps client.
        
        Args:
            config: Organization URL, personal access token, project and transport tuning
        """
        self.config = config
        self.api_base_url = config.api_base_url
        # Azure DevOps takes the PAT as the basic-auth password with an empty user
        self._auth = HTTPBasicAuth("", config.personal_access_token)
        self._headers = {"Accept": "application/json", "Content-Type": "application/json"}
    
    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with jitter: min(cap, base * 2^attempt) * random(0.5, 1.0)."""
        delay = min(self.config.retry_max_delay, self.config.retry_base_delay * (2 ** attempt))
        return delay * random.uniform(0.5, 1.0)
    
    def _make_request(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None
    ) -> Optional[Any]:
        """
        Make authenticated request to the Azure DevOps API.
        
        Args:
            endpoint: Path below {org}/{project}/_apis (e.g., "/wit/workitems/42")
            method: HTTP method (GET, POST)
            params: Query parameters; api-version is added automatically
            data: Optional JSON request body
            
        Returns:
            Parsed JSON response, or None when the resource does not exist (404)
            
        Raises:
            AzureDevOpsAuthError: If credentials are rejected
            AzureDevOpsClientError: If the request fails after retries
        """
        url = f"{self.api_base_url}{endpoint}"
        query = {"api-version": self.config.api_version}
        query.update(params or {})
        
        max_retries = max(self.config.max_retries, 0)
        for attempt in range(max_retries + 1):
            try:
                if method == "GET":
                    response = requests.get(
                        url, auth=self._auth, headers=self._headers, params=query, timeout=self.config.timeout
                    )
                elif method == "POST":
                    response = requests.post(
                        url, auth=self._auth, headers=self._headers, params=query, json=data,
                        timeout=self.config.timeout
                    )
                else:
                    raise AzureDevOpsClientError(f"Unsupported HTTP method: {method}")
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                if attempt < max_retries:
                    delay = self._backoff_delay(attempt)
                    logger.warning(
                        f"Retry {attempt + 1}/{max_retries} for {method} {endpoint} "
                        f"({type(e).__name__}) - waiting {delay:.1f}s"
                    )
                    time.sleep(delay)
                    continue
                raise AzureDevOpsClientError(
                    f"Azure DevOps API request to {endpoint} failed after {attempt + 1} attempt(s): {str(e)}"
                ) from e
            except requests.exceptions.RequestException as e:
                raise AzureDevOpsClientError(f"Azure DevOps API request failed: {str(e)}") from e
            
            status_code = response.status_code
            if status_code == 404:
                return None
            if status_code in (401, 403):
                raise AzureDevOpsAuthError(
                    f"Azure DevOps rejected the credentials (HTTP {status_code})",
                    status_code=status_code
                )
            if status_code in RETRYABLE_STATUS_CODES and attempt < max_retries:
                delay = self._backoff_delay(attempt)
                logger.warning(
                    f"Retry {attempt + 1}/{max_retries} for {method} {endpoint} "
                    f"(HTTP {status_code}) - waiting {delay:.1f}s"
                )
                time.sleep(delay)
                continue
            
            try:
                response.raise_for_status()
            except requests.exceptions.HTTPError as e:
                logger.error(f"Azure DevOps API request failed for {endpoint}: HTTP {status_code}")
                raise AzureDevOpsClientError(
                    f"Azure DevOps API request failed: {str(e)}", status_code=status_code
                ) from e
            
            # Some responses may be empty (204 No Content)
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise AzureDevOpsClientError(
                    f"Azure DevOps returned a non-JSON response for {endpoint}", status_code=status_code
                ) from e
        
        raise AzureDevOpsClientError(f"Azure DevOps API request to {endpoint} failed")
    
    def test_connection(self) -> bool:
        """
        Check that the organization, project and token are usable.
        
        Raises:
            AzureDevOpsClientError: If the backend cannot be reached or the project does not exist
        """
        result = self._make_request("/work/teamsettings/iterations", params={"$timeframe": "current"})
        if result is None:
            raise AzureDevOpsClientError(
                f"Project '{self.config.project}' not found at {self.config.org_url}", status_code=404
            )
        logger.info(f"Successfully connected to Azure DevOps project {self.config.project}")
        return True
    
    def fetch_item(self, item_id: int) -> Optional[Dict[str, Any]]:
        """
        Fetch one work item by ID.
        
        Returns:
            Raw work item JSON, or None if it does not exist
        """
        return self._make_request(f"/wit/workitems/{item_id}")
    
    def fetch_item_with_links(self, item_id: int) -> Optional[Tuple[Dict[str, Any], List[LinkedRef]]]:
        """
        Fetch one work item together with its relations.
        
        Returns:
            (raw work item JSON, relations), or None if the item does not exist
        """
        work_item = self._make_request(f"/wit/workitems/{item_id}", params={"$expand": "Relations"})
        if work_item is None:
            return None
        relations = [parse_relation(relation) for relation in (work_item.get("relations") or [])]
        return work_item, relations
    
    def query_by_filter(self, wiql: str) -> List[int]:
        """
        Run a WIQL query.
        
        Args:
            wiql: WIQL query text, passed through unchanged
            
        Returns:
            Matching work item IDs in the order Azure DevOps returned them
        """
        result = self._make_request("/wit/wiql", method="POST", data={"query": wiql})
        if not result or not result.get("workItems"):
            return []
        return [item["id"] for item in result["workItems"] if item.get("id") is not None]
    
    def list_iterations(self) -> List[Iteration]:
        """
        List the team's iterations, including future ones (callers filter those).
        
        Raises:
            AzureDevOpsClientError: If iterations cannot be fetched
        """
        result = self._make_request("/work/teamsettings/iterations")
        if not result:
            return []
        
        iterations = []
        for iteration in result.get("value", []):
            attributes = iteration.get("attributes") or {}
            iterations.append(Iteration(
                id=str(iteration.get("id", "")),
                name=iteration.get("name", ""),
                path=iteration.get("path"),
                start_date=attributes.get("startDate"),
                finish_date=attributes.get("finishDate"),
                time_frame=attributes.get("timeFrame"),
                url=iteration.get("url"),
            ))
        return iterations
    
    def fetch_requirement(self, requirement_id: int) -> Optional[Requirement]:
        """Fetch a user story; None if it does not exist or is another work item type."""
        work_item = self.fetch_item(requirement_id)
        if work_item is None:
            return None
        if work_item_type(work_item) != USER_STORY_TYPE:
            logger.debug(f"Work item {requirement_id} is not a {USER_STORY_TYPE}")
            return None
        return parse_requirement(work_item)

    def fetch_test_case(self, test_case_id: int) -> Optional[TestCase]:
        """
        Fetch a test case.
        
        Returns:
            TestCase, or None if the item does not exist or is not a Test Case
        """
        work_item = self.fetch_item(test_case_id)
        if work_item is None:
            return None
        if work_item_type(work_item) != TEST_CASE_TYPE:
            logger.debug(f"Work item {test_case_id} is not a {TEST_CASE_TYPE}")
            return None
        return parse_test_case(work_item)
    
    def fetch_linked_test_cases(self, requirement_id: int, links: List[LinkedRef]) -> List[TestCase]:
        """
        Resolve the test links of a user story into test cases, in link order.
        
        Links that cannot be resolved (missing item, other item type, transport
        error) are skipped with a warning. Credential failures propagate.
        """
        test_cases = []
        for link in links:
            if not link.is_test_link() or link.target_id is None:
                continue
            try:
                test_case = self.fetch_test_case(link.target_id)
            except AzureDevOpsAuthError:
                raise
            except AzureDevOpsClientError as e:
                logger.warning(
                    f"Skipping linked item {link.target_id} of user story {requirement_id}: {str(e)}"
                )
                continue
            if test_case is None:
                logger.warning(
                    f"Skipping linked item {link.target_id} of user story {requirement_id}: not a test case"
                )
                continue
            test_cases.append(test_case)
        return test_cases
