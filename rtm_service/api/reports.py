"""
RTM report endpoints: JSON matrix, spreadsheet download, KPI statistics and coverage trend.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from rtm_service.api.deps import get_generator
from rtm_service.models.matrix import MatrixResult
from rtm_service.services.ado_client import AzureDevOpsClientError
from rtm_service.services.coverage_stats import calculate_coverage_statistics, summarize_report
from rtm_service.services.excel_export import (
    build_export_filename,
    export_rtm_xlsx,
    sanitize_identifier,
    story_ids_identifier,
)
from rtm_service.services.rtm_generator import RTMGenerator

logger = logging.getLogger(__name__)

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
MAX_TREND_WEEKS = 52


def parse_story_ids(story_ids: str) -> List[int]:
    """
    Parse a comma-separated list of user story IDs.
    
    Raises:
        ValueError: If any entry is not a positive integer, or there are none
    """
    parsed = []
    for raw in story_ids.split(","):
        value = raw.strip()
        if not value:
            continue
        if not value.isdigit() or int(value) < 1:
            raise ValueError(f"'{value}' is not a valid user story ID")
        parsed.append(int(value))
    if not parsed:
        raise ValueError("no user story IDs given")
    return parsed


async def resolve_story_ids(
    generator: RTMGenerator,
    story_ids: Optional[str],
    sprint_name: Optional[str]
) -> Tuple[List[int], str]:
    """
    Turn the request parameters into user story IDs and a report identifier.
    
    story_ids wins when both parameters are given.
    """
    if story_ids:
        try:
            user_story_ids = parse_story_ids(story_ids)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid story_ids format: {str(e)}"
            )
        return user_story_ids, story_ids_identifier(user_story_ids)
    
    if sprint_name:
        try:
            user_story_ids = await asyncio.to_thread(generator.fetch_requirement_ids_by_sprint, sprint_name)
        except AzureDevOpsClientError as e:
            logger.error(f"Failed to fetch user stories for sprint '{sprint_name}': {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Failed to fetch user stories for sprint: {sprint_name}"
            )
        if not user_story_ids:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"No user stories found for sprint: {sprint_name}"
            )
        return user_story_ids, sanitize_identifier(sprint_name)
    
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="Either story_ids or sprint_name parameter is required"
    )


async def _generate(generator: RTMGenerator, user_story_ids: List[int]) -> MatrixResult:
    try:
        return await generator.generate_matrix_result(user_story_ids)
    except AzureDevOpsClientError as e:
        logger.error(f"RTM generation failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to generate RTM report: {str(e)}"
        )


@router.get("/rtm-report")
async def get_rtm_report(
    story_ids: Optional[str] = Query(None, description="Comma-separated user story IDs"),
    sprint_name: Optional[str] = Query(None, description="Sprint name (case-insensitive)"),
    connection_id: Optional[int] = Query(None),
    generator: RTMGenerator = Depends(get_generator)
) -> Dict[str, Any]:
    """Matrix rows with a story-level summary and per-story diagnostics."""
    user_story_ids, _ = await resolve_story_ids(generator, story_ids, sprint_name)
    logger.info(f"Generating RTM for user story IDs: {user_story_ids}")
    result = await _generate(generator, user_story_ids)
    
    return {
        "success": True,
        "summary": summarize_report(result.rows),
        "data": [row.model_dump(by_alias=True) for row in result.rows],
        "diagnostics": [diagnostic.model_dump(by_alias=True) for diagnostic in result.diagnostics],
        "metadata": {
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "userStoryIds": user_story_ids,
            "requestType": "story_ids" if story_ids else "sprint_name",
            "requestValue": story_ids or sprint_name,
            "connectionId": connection_id if connection_id is not None else "default",
        },
    }


@router.get("/rtm-report/download")
async def download_rtm_report(
    story_ids: Optional[str] = Query(None, description="Comma-separated user story IDs"),
    sprint_name: Optional[str] = Query(None, description="Sprint name (case-insensitive)"),
    filename: Optional[str] = Query(None, description="Base file name; the date is appended"),
    connection_id: Optional[int] = Query(None),
    generator: RTMGenerator = Depends(get_generator)
) -> StreamingResponse:
    """RTM and KPI sheets as an .xlsx attachment."""
    user_story_ids, identifier = await resolve_story_ids(generator, story_ids, sprint_name)
    logger.info(f"Generating RTM Excel file for user story IDs: {user_story_ids}")
    result = await _generate(generator, user_story_ids)
    
    stats = calculate_coverage_statistics(result.rows, generator.options.risk_threshold)
    output = export_rtm_xlsx(result.rows, stats)
    excel_filename = build_export_filename(identifier, filename)
    
    return StreamingResponse(
        output,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{excel_filename}"',
            "Access-Control-Expose-Headers": "Content-Disposition",
        }
    )


@router.get("/rtm-download")
async def get_rtm_kpis(
    story_ids: Optional[str] = Query(None, description="Comma-separated user story IDs"),
    sprint_name: Optional[str] = Query(None, description="Sprint name (case-insensitive)"),
    connection_id: Optional[int] = Query(None),
    generator: RTMGenerator = Depends(get_generator)
) -> Dict[str, Any]:
    """Coverage KPIs in JSON (the same numbers as the KPI sheet)."""
    user_story_ids, identifier = await resolve_story_ids(generator, story_ids, sprint_name)
    logger.info(f"Generating RTM KPI data for user story IDs: {user_story_ids}")
    result = await _generate(generator, user_story_ids)
    stats = calculate_coverage_statistics(result.rows, generator.options.risk_threshold)
    
    return {
        "success": True,
        "reportIdentifier": identifier,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "metadata": {
            "connectionId": connection_id if connection_id is not None else "default",
            "userStoryIds": user_story_ids,
            "sprintName": sprint_name,
            "totalRtmRows": len(result.rows),
        },
        **stats.to_api_dict(),
    }


@router.get("/rtm-trend")
async def get_rtm_trend(
    weeks: int = Query(4, description="Number of weeks to analyze"),
    area_path: Optional[str] = Query(None, description="Only user stories under this area path"),
    connection_id: Optional[int] = Query(None),
    generator: RTMGenerator = Depends(get_generator)
) -> Dict[str, Any]:
    """Story coverage per week for the last N weeks."""
    if weeks < 1 or weeks > MAX_TREND_WEEKS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"weeks must be between 1 and {MAX_TREND_WEEKS}"
        )
    trend = await generator.calculate_coverage_trend(weeks=weeks, area_path=area_path)
    return {"success": True, **trend}
