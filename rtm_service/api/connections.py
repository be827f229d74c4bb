"""
Connection registry endpoints and the cached sprint list.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from rtm_service.config import AzureDevOpsConfig, RTMOptions, settings
from rtm_service.db import get_db
from rtm_service.services.ado_client import AzureDevOpsClient, AzureDevOpsClientError
from rtm_service.services.connections import (
    ConnectionExistsError,
    ConnectionNotFoundError,
    add_connection,
    build_client_for_connection,
    delete_connection,
    get_connection,
    get_connection_by_name,
    get_sprints,
    list_connections,
    store_sprints,
)
from rtm_service.services.rtm_generator import RTMGenerator

logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionCreateRequest(BaseModel):
    """Request model for registering an Azure DevOps connection."""
    
    model_config = ConfigDict(populate_by_name=True)
    
    name: str = Field(..., min_length=1, description="Unique connection name")
    org_url: str = Field(..., min_length=1, alias="azure_devops_org_url", description="Organization URL")
    pat: str = Field(..., min_length=1, alias="azure_devops_pat", description="Personal access token")
    project: str = Field(..., min_length=1, alias="azure_devops_project", description="Project name")


@router.post("/connections", status_code=status.HTTP_201_CREATED)
async def create_connection(request: ConnectionCreateRequest, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    Register a connection after checking it works, and cache its sprints.
    """
    if get_connection_by_name(db, request.name) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Connection name '{request.name}' already exists"
        )
    
    try:
        config = AzureDevOpsConfig.from_connection(request.org_url, request.pat, request.project, settings)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    generator = RTMGenerator(AzureDevOpsClient(config), RTMOptions.from_settings(settings))
    
    logger.info(f"Testing connection '{request.name}' before saving")
    try:
        await asyncio.to_thread(generator.client.test_connection)
        sprints = await asyncio.to_thread(generator.fetch_all_sprints)
    except AzureDevOpsClientError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unable to connect to Azure DevOps: {str(e)}"
        )
    
    try:
        connection = add_connection(db, request.name, request.org_url, request.pat, request.project)
    except ConnectionExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    sprints_count = store_sprints(db, connection.id, sprints) if sprints else 0
    
    return {
        "success": True,
        "message": "Connection created successfully",
        "data": {
            "id": connection.id,
            "name": connection.name,
            "azure_devops_org_url": connection.org_url,
            "azure_devops_project": connection.project,
            "created_at": connection.created_at.isoformat() if connection.created_at else None,
            "sprints_count": sprints_count,
        },
    }


@router.get("/connections")
async def get_connections(db: Session = Depends(get_db)) -> Dict[str, Any]:
    connections = list_connections(db)
    return {
        "success": True,
        "count": len(connections),
        "data": [connection.to_summary_dict() for connection in connections],
    }


@router.delete("/connections/{connection_id}")
async def remove_connection(connection_id: int, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        deleted_sprints = delete_connection(db, connection_id)
    except ConnectionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Connection not found")
    return {
        "success": True,
        "message": "Connection and associated sprints deleted successfully",
        "data": {"id": connection_id, "deleted_sprints": deleted_sprints},
    }


@router.get("/sprints")
async def list_sprints(
    connection_id: int = Query(..., description="Stored connection ID"),
    refresh: bool = Query(False, description="Re-fetch sprints from Azure DevOps before answering"),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """
    Sprints cached for a connection.
    
    With refresh=true the sprints are fetched again and the cache replaced;
    if that fails the cached copy is returned instead.
    """
    try:
        connection = get_connection(db, connection_id)
    except ConnectionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Connection not found")
    
    if refresh:
        try:
            generator = RTMGenerator(build_client_for_connection(connection, settings), RTMOptions.from_settings(settings))
            fresh_sprints = await asyncio.to_thread(generator.fetch_all_sprints)
            store_sprints(db, connection_id, fresh_sprints)
            return {
                "success": True,
                "count": len(fresh_sprints),
                "data": [sprint.to_api_dict() for sprint in fresh_sprints],
                "metadata": {
                    "source": "azure_devops_fresh",
                    "fetchedAt": datetime.now(timezone.utc).isoformat(),
                    "connectionId": connection_id,
                    "refreshed": True,
                },
            }
        except AzureDevOpsClientError as e:
            logger.warning(f"Refreshing sprints for connection {connection_id} failed, using cached sprints: {str(e)}")
    
    sprints = get_sprints(db, connection_id)
    if not sprints:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No sprints found for this connection. Try using refresh=true to fetch from Azure DevOps."
        )
    return {
        "success": True,
        "count": len(sprints),
        "data": [sprint.to_api_dict() for sprint in sprints],
        "metadata": {
            "source": "database",
            "fetchedAt": datetime.now(timezone.utc).isoformat(),
            "connectionId": connection_id,
            "refreshed": False,
        },
    }
