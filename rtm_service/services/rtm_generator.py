"""
RTM generation: fan out over user stories, reconcile each one, collect the matrix.

Also resolves user story IDs from sprints and creation-date windows, and
computes the week-by-week coverage trend.
"""
import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from rtm_service.config import RTMOptions
from rtm_service.models.enums import EmptyCriteriaPolicy
from rtm_service.models.matrix import MatrixResult, MatrixRow, RowDiagnostic
from rtm_service.models.work_items import Iteration
from rtm_service.services.ado_client import (
    USER_STORY_TYPE,
    AzureDevOpsAuthError,
    AzureDevOpsClient,
    AzureDevOpsClientError,
    parse_requirement,
    work_item_type,
)
from rtm_service.services.concurrency import run_bounded
from rtm_service.services.coverage_stats import covered_user_story_ids, percentage
from rtm_service.services.reconciliation import reconcile

logger = logging.getLogger(__name__)

FUTURE_TIME_FRAME = "future"


def _wiql_literal(value: str) -> str:
    """Quote a value for a WIQL string literal."""
    return "'" + str(value).replace("'", "''") + "'"


def build_sprint_query(iteration_path: str) -> str:
    return (
        "SELECT [System.Id] FROM WorkItems "
        f"WHERE [System.WorkItemType] = {_wiql_literal(USER_STORY_TYPE)} "
        f"AND [System.IterationPath] UNDER {_wiql_literal(iteration_path)} "
        "ORDER BY [System.Id]"
    )


def build_date_range_query(start: date, end: date, area_path: Optional[str] = None) -> str:
    query = (
        "SELECT [System.Id] FROM WorkItems "
        f"WHERE [System.WorkItemType] = {_wiql_literal(USER_STORY_TYPE)} "
        f"AND [System.CreatedDate] >= {_wiql_literal(start.isoformat())} "
        f"AND [System.CreatedDate] <= {_wiql_literal(end.isoformat())}"
    )
    if area_path:
        query += f" AND [System.AreaPath] UNDER {_wiql_literal(area_path)}"
    return query + " ORDER BY [System.Id]"


class RTMGenerator:
    """Builds Requirements Traceability Matrices from Azure DevOps."""
    
    def __init__(self, client: AzureDevOpsClient, options: Optional[RTMOptions] = None):
        """
        Args:
            client: Read-only Azure DevOps client (safe to call from several threads)
            options: Engine options; defaults match the original report behavior
        """
        self.client = client
        self.options = options or RTMOptions()
    
    def build_rows_for_story(self, user_story_id: int) -> Tuple[List[MatrixRow], Optional[RowDiagnostic]]:
        """
        Fetch one user story and its linked test cases and reconcile them.
        
        Returns:
            (rows, diagnostic); the diagnostic explains a skipped or empty story
        """
        logger.info(f"Processing User Story {user_story_id}")
        fetched = self.client.fetch_item_with_links(user_story_id)
        if fetched is None:
            logger.warning(f"Could not fetch user story {user_story_id}: not found")
            return [], RowDiagnostic(user_story_id=user_story_id, reason="not_found", detail="Work item does not exist")
        
        work_item, links = fetched
        item_type = work_item_type(work_item)
        if item_type != USER_STORY_TYPE:
            logger.warning(f"Work item {user_story_id} is not a {USER_STORY_TYPE} ({item_type or 'unknown type'})")
            return [], RowDiagnostic(
                user_story_id=user_story_id, reason="wrong_type", detail=f"Work item type is '{item_type}'"
            )
        
        requirement = parse_requirement(work_item)
        test_cases = self.client.fetch_linked_test_cases(requirement.id, links)
        rows = reconcile(requirement, test_cases, self.options)
        
        diagnostic = None
        if (
            test_cases
            and not requirement.acceptance_criteria
            and EmptyCriteriaPolicy(self.options.empty_criteria_policy) == EmptyCriteriaPolicy.DROP
        ):
            logger.warning(
                f"User story {user_story_id} has {len(test_cases)} linked test case(s) "
                "but no acceptance criteria; no rows emitted"
            )
            diagnostic = RowDiagnostic(
                user_story_id=user_story_id,
                reason="no_criteria",
                detail=f"{len(test_cases)} linked test case(s) but no parsed acceptance criteria",
            )
        return rows, diagnostic
    
    async def generate_matrix_result(self, user_story_ids: Sequence[int]) -> MatrixResult:
        """
        Generate the matrix for the given user stories, with per-story diagnostics.
        
        Stories are processed concurrently (options.concurrency_limit at a time).
        Rows of one story stay together in criterion order; the order of the
        story groups is whatever order they finished in.
        
        Raises:
            AzureDevOpsAuthError: If the credentials were rejected
            AzureDevOpsClientError: If every story failed with a transport error
        """
        row_groups: List[List[MatrixRow]] = []
        diagnostics: List[RowDiagnostic] = []
        
        async def process(user_story_id: int) -> None:
            rows, diagnostic = await asyncio.to_thread(self.build_rows_for_story, user_story_id)
            # Only the event loop thread appends here
            row_groups.append(rows)
            if diagnostic is not None:
                diagnostics.append(diagnostic)
        
        failures = await run_bounded(list(user_story_ids), process, self.options.concurrency_limit)
        
        for failure in failures:
            if isinstance(failure.error, AzureDevOpsAuthError):
                raise failure.error
        if failures and len(failures) == len(user_story_ids) and all(
            isinstance(failure.error, AzureDevOpsClientError) for failure in failures
        ):
            logger.error("Azure DevOps could not be reached for any requested user story")
            raise failures[0].error
        
        for failure in failures:
            logger.warning(f"Skipping user story {failure.item}: {failure.error}")
            diagnostics.append(RowDiagnostic(
                user_story_id=failure.item,
                reason="fetch_failed",
                detail=f"{type(failure.error).__name__}: {failure.error}",
            ))
        
        rows = [row for group in row_groups for row in group]
        logger.info(f"Generated {len(rows)} RTM rows for {len(user_story_ids)} user stories")
        return MatrixResult(rows=rows, diagnostics=diagnostics)
    
    async def generate_matrix(self, user_story_ids: Sequence[int]) -> List[MatrixRow]:
        """Generate the matrix rows for the given user stories (diagnostics dropped)."""
        result = await self.generate_matrix_result(user_story_ids)
        return result.rows
    
    def fetch_all_sprints(self) -> List[Iteration]:
        """All iterations except future ones."""
        iterations = [
            iteration for iteration in self.client.list_iterations()
            if iteration.time_frame != FUTURE_TIME_FRAME
        ]
        logger.info(f"Found {len(iterations)} sprints")
        return iterations
    
    def fetch_requirement_ids_by_sprint(self, sprint_name: str) -> List[int]:
        """
        Resolve a sprint name (case-insensitive) to the IDs of its user stories.
        
        Returns:
            User story IDs in ID order; [] when no sprint has that name
        """
        iterations = self.client.list_iterations()
        sprint = next(
            (iteration for iteration in iterations if iteration.name.lower() == sprint_name.lower()),
            None
        )
        if sprint is None:
            logger.warning(
                f"Sprint '{sprint_name}' not found",
                extra={"available_sprints": [iteration.name for iteration in iterations]}
            )
            return []
        
        logger.info(f"Found sprint: {sprint.name} (ID: {sprint.id})")
        user_story_ids = self.client.query_by_filter(build_sprint_query(sprint.path or sprint.name))
        logger.info(f"Found {len(user_story_ids)} user stories in sprint '{sprint_name}'")
        return user_story_ids
    
    def query_requirement_ids_by_date_range(
        self,
        start: date,
        end: date,
        area_path: Optional[str] = None
    ) -> List[int]:
        """IDs of user stories created between start and end (inclusive dates)."""
        return self.client.query_by_filter(build_date_range_query(start, end, area_path))
    
    async def calculate_coverage_trend(
        self,
        weeks: int = 4,
        area_path: Optional[str] = None,
        today: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Story coverage for each of the last ``weeks`` seven-day windows.
        
        Week ``weeks`` ends today and each earlier week ends seven days before
        the next. A week whose stories cannot be fetched reports zeros and an
        error message instead of failing the whole trend.
        
        Args:
            weeks: Number of weeks to analyze (default: 4)
            area_path: Optional area path filter
            today: End date of the latest week (default: today)
        """
        if weeks < 1:
            raise ValueError("weeks must be at least 1")
        today = today or date.today()
        entries: List[Tuple[int, Dict[str, Any]]] = []
        
        async def process(offset: int) -> None:
            week_number = weeks - offset
            week_end = today - timedelta(days=offset * 7)
            week_start = week_end - timedelta(days=6)
            entry: Dict[str, Any] = {
                "week": f"Week {week_number}",
                "coverage": 0,
                "totalUserStories": 0,
                "coveredUserStories": 0,
                "dateRange": {"start": week_start.isoformat(), "end": week_end.isoformat()},
            }
            try:
                user_story_ids = await asyncio.to_thread(
                    self.query_requirement_ids_by_date_range, week_start, week_end, area_path
                )
                if user_story_ids:
                    rows = await self.generate_matrix(user_story_ids)
                    total = len({row.user_story_id for row in rows})
                    covered = len(covered_user_story_ids(rows))
                    entry.update({
                        "coverage": percentage(covered, total),
                        "totalUserStories": total,
                        "coveredUserStories": covered,
                    })
            except AzureDevOpsClientError as e:
                logger.error(f"Error calculating coverage for week {week_number}: {str(e)}")
                entry["error"] = "Failed to calculate coverage for this week"
            except Exception as e:
                logger.error(
                    f"Unexpected error calculating coverage for week {week_number}: {str(e)}", exc_info=True
                )
                entry["error"] = "Failed to calculate coverage for this week"
            entries.append((week_number, entry))
        
        await run_bounded(
            [weeks - i - 1 for i in range(weeks)], process, self.options.concurrency_limit
        )
        entries.sort(key=lambda pair: pair[0])
        return {
            "weeks": weeks,
            "data": [entry for _, entry in entries],
            "calculatedAt": datetime.now(timezone.utc).isoformat(),
        }
