"""
Shared FastAPI dependencies: resolve the Azure DevOps client for a request.
"""
import logging
from typing import Optional
from fastapi import Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from rtm_service.config import AzureDevOpsConfig, RTMOptions, settings
from rtm_service.db import get_db
from rtm_service.services.ado_client import AzureDevOpsClient
from rtm_service.services.connections import (
    ConnectionNotFoundError,
    build_client_for_connection,
    get_connection,
)
from rtm_service.services.rtm_generator import RTMGenerator

logger = logging.getLogger(__name__)


def get_client(
    connection_id: Optional[int] = Query(None, description="Stored connection ID; omit to use the default connection"),
    db: Session = Depends(get_db)
) -> AzureDevOpsClient:
    """
    Client for a stored connection, or for the default connection from settings.
    
    Raises:
        HTTPException 404: Unknown connection ID
        HTTPException 400: No connection ID and no default connection configured
    """
    if connection_id is not None:
        try:
            connection = get_connection(db, connection_id)
        except ConnectionNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        return build_client_for_connection(connection, settings)
    
    if not settings.has_default_connection():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="connection_id is required (no default Azure DevOps connection is configured)"
        )
    return AzureDevOpsClient(AzureDevOpsConfig.from_settings(settings))


def get_generator(client: AzureDevOpsClient = Depends(get_client)) -> RTMGenerator:
    return RTMGenerator(client, RTMOptions.from_settings(settings))
