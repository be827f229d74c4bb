"""
FastAPI entry point for the Azure DevOps RTM Generator.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from rtm_service.config import settings

# Configure logging
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rtm_service.api import connections, reports
from rtm_service.api.deps import get_client
from rtm_service.db import init_db
from rtm_service.services.ado_client import AzureDevOpsClient, AzureDevOpsClientError


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create the connection registry tables."""
    init_db()
    yield


app = FastAPI(
    title=settings.api_title,
    description="Generates Requirements Traceability Matrices from Azure DevOps user stories and test cases",
    version=settings.api_version,
    lifespan=lifespan,
)

ALLOWED_ORIGINS = settings.get_allowed_origins()

# Add CORS middleware - must be added before exception handlers
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler: anything unhandled becomes a JSON 500.
    """
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"Internal server error: {str(exc)}"},
    )


# Include routers
app.include_router(connections.router, tags=["Connections"])
app.include_router(reports.router, tags=["Reports"])


@app.get("/")
async def root():
    """Root endpoint with API description."""
    return {
        "name": settings.api_title,
        "version": settings.api_version,
        "endpoints": {
            "POST /connections": "Add a new Azure DevOps connection (tested before saving)",
            "GET /connections": "List stored connections",
            "DELETE /connections/{id}": "Delete a connection and its cached sprints",
            "GET /sprints": "Cached sprints of a connection (refresh=true re-fetches)",
            "GET /rtm-report": "RTM rows in JSON for story_ids or sprint_name",
            "GET /rtm-report/download": "RTM workbook (.xlsx) for story_ids or sprint_name",
            "GET /rtm-download": "Coverage KPIs in JSON for story_ids or sprint_name",
            "GET /rtm-trend": "Weekly story coverage for the last N weeks",
            "GET /health": "Check an Azure DevOps connection",
        },
    }


@app.get("/health")
async def health(
    connection_id: Optional[int] = None,
    client: AzureDevOpsClient = Depends(get_client)
):
    """Health check endpoint: 200 when the connection works, 503 otherwise."""
    try:
        await asyncio.to_thread(client.test_connection)
    except AzureDevOpsClientError as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "message": "Azure DevOps connection failed",
                "error": str(e),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
    return {
        "status": "healthy",
        "message": "Azure DevOps connection is working",
        "connectionId": connection_id if connection_id is not None else "default",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("rtm_service.main:app", host="0.0.0.0", port=8000, reload=False)
