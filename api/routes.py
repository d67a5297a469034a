# ============================================================================
# API ROUTES
# ============================================================================
# STATUS: Core - FastAPI route definitions
# PURPOSE: HTTP endpoints for resources and the reconciler
# CREATED: 12 OCT 2026
# ============================================================================
"""
API Routes

FastAPI routes for the control plane. Thin wrappers over ResourceService
and the Reconciler; no reconciliation happens in a request.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from core.contracts import DesiredState, ResourceKind
from core.errors import InvalidDesiredState, ResourceNotFound, UnsupportedKind
from core.models import ResourceRecord, ResourceStatus
from repositories.base import RepositoryError
from .schemas import (
    DesiredStateUpdate,
    ErrorResponse,
    ResourceCreate,
    ResourceListResponse,
    ResourceResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================
# These will be set by the main app at startup

_resource_service = None
_reconciler = None


def set_services(resource_service, reconciler):
    """Set service instances for dependency injection."""
    global _resource_service, _reconciler
    _resource_service = resource_service
    _reconciler = reconciler


def get_resource_service():
    if _resource_service is None:
        raise HTTPException(500, "Services not initialized")
    return _resource_service


def get_reconciler():
    if _reconciler is None:
        raise HTTPException(500, "Reconciler not initialized")
    return _reconciler


def _to_response(record: ResourceRecord) -> ResourceResponse:
    return ResourceResponse(
        id=record.id,
        kind=record.kind,
        owner_key=record.owner_key,
        parent_id=record.parent_id,
        state=record.state,
        phase=record.phase,
        message=record.message,
        retry_count=record.retry_count,
        spec=record.spec,
        expires_at=record.expires_at,
        locked=record.locked_at is not None,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


# ============================================================================
# RECONCILER STATUS
# ============================================================================

@router.get("/reconciler/status", tags=["Reconciler"])
async def get_reconciler_status():
    """
    Get reconciler status and statistics.

    Returns metrics about the reconciliation loops including:
    - Running state and uptime
    - Cycle and cascade pass counts
    - Claimed / contended / advanced / retrying / failed records
    - Error count
    """
    stats = get_reconciler().stats

    return {
        "status": "running" if stats["running"] else "stopped",
        "worker_id": stats["worker_id"],
        "started_at": stats["started_at"],
        "uptime_seconds": stats["uptime_seconds"],
        "poll_interval_seconds": stats["poll_interval"],
        "kinds": stats["kinds"],
        "metrics": {
            "cycles": stats["cycles"],
            "cascade_passes": stats["cascade_passes"],
            "last_cycle_at": stats["last_cycle_at"],
            "last_cascade_at": stats["last_cascade_at"],
            "claimed": stats["claimed"],
            "contended": stats["contended"],
            "succeeded": stats["succeeded"],
            "retried": stats["retried"],
            "failed": stats["failed"],
            "stale": stats["stale"],
            "cascade_writes": stats["cascade_writes"],
            "errors": stats["errors"],
        },
    }


@router.post("/reconciler/run", tags=["Reconciler"])
async def run_reconciler_once():
    """
    Run one cycle over every kind plus one cascade pass, now.

    Safe alongside the background loops; leases keep them apart.
    """
    reconciler = get_reconciler()
    return await reconciler.run_once()


# ============================================================================
# RESOURCES
# ============================================================================

@router.post(
    "/resources",
    response_model=ResourceResponse,
    status_code=201,
    tags=["Resources"],
    responses={
        201: {"description": "Resource created"},
        400: {"model": ErrorResponse, "description": "Unsupported kind"},
        404: {"model": ErrorResponse, "description": "Parent not found"},
        409: {"model": ErrorResponse, "description": "Invalid initial state"},
    },
)
async def create_resource(request: ResourceCreate):
    """
    Provision a new resource.

    Returns immediately; poll GET /resources/{id} to follow convergence.
    """
    service = get_resource_service()

    try:
        record = await service.provision(
            kind=request.kind,
            owner_key=request.owner_key,
            spec=request.spec,
            parent_id=request.parent_id,
            expires_at=request.expires_at,
            state=request.state,
            idempotency_key=request.idempotency_key,
        )
    except UnsupportedKind as e:
        raise HTTPException(400, str(e))
    except ResourceNotFound as e:
        raise HTTPException(404, str(e))
    except InvalidDesiredState as e:
        raise HTTPException(409, str(e))
    except RepositoryError as e:
        logger.exception(f"Error creating resource: {e}")
        raise HTTPException(500, str(e))

    logger.info(f"Created {record.kind.value} {record.id} for {record.owner_key}")
    return _to_response(record)


@router.get("/resources", response_model=ResourceListResponse, tags=["Resources"])
async def list_resources(
    owner_key: str = Query(..., max_length=64, description="Owning appid"),
    kind: Optional[ResourceKind] = Query(None, description="Filter by kind"),
):
    """
    List status of every resource of one owner.
    """
    statuses = await get_resource_service().list_status(owner_key, kind)
    return ResourceListResponse(resources=statuses, total=len(statuses))


@router.get(
    "/resources/{record_id}",
    response_model=ResourceResponse,
    tags=["Resources"],
    responses={404: {"model": ErrorResponse}},
)
async def get_resource(record_id: str):
    """
    Get a resource record.
    """
    try:
        record = await get_resource_service().get(record_id)
    except ResourceNotFound as e:
        raise HTTPException(404, str(e))
    return _to_response(record)


@router.get(
    "/resources/{record_id}/status",
    response_model=ResourceStatus,
    tags=["Resources"],
    responses={404: {"model": ErrorResponse}},
)
async def get_resource_status(record_id: str):
    """
    Get phase, message and convergence of a resource.
    """
    try:
        return await get_resource_service().get_status(record_id)
    except ResourceNotFound as e:
        raise HTTPException(404, str(e))


@router.put(
    "/resources/{record_id}/state",
    response_model=ResourceResponse,
    tags=["Resources"],
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "State not allowed"},
    },
)
async def set_desired_state(record_id: str, request: DesiredStateUpdate):
    """
    Change a resource's desired state.

    Deletion is final: once a resource wants `deleted`, any other state
    is rejected.
    """
    service = get_resource_service()

    try:
        record = await service.set_desired_state(record_id, request.state)
    except ResourceNotFound as e:
        raise HTTPException(404, str(e))
    except InvalidDesiredState as e:
        raise HTTPException(409, str(e))

    return _to_response(record)


@router.delete(
    "/resources/{record_id}",
    response_model=ResourceResponse,
    status_code=202,
    tags=["Resources"],
    responses={404: {"model": ErrorResponse}},
)
async def delete_resource(record_id: str):
    """
    Request deletion. Shorthand for PUT state=deleted.
    """
    try:
        record = await get_resource_service().set_desired_state(record_id, DesiredState.DELETED)
    except ResourceNotFound as e:
        raise HTTPException(404, str(e))

    return _to_response(record)


__all__ = ["router", "set_services"]
