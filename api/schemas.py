# ============================================================================
# API SCHEMAS
# ============================================================================
# STATUS: Core - Request/Response schemas
# PURPOSE: Pydantic models for API validation
# CREATED: 12 OCT 2026
# ============================================================================
"""
API Schemas

Request and response models for the API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from core.contracts import DesiredState, Phase, ResourceKind
from core.models import ResourceStatus


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class ResourceCreate(BaseModel):
    """Request to provision a new resource."""
    kind: ResourceKind
    owner_key: str = Field(..., min_length=1, max_length=64, description="Owning appid")
    spec: Dict[str, Any] = Field(
        default_factory=dict,
        description="Kind-specific payload for the driver"
    )
    parent_id: Optional[str] = Field(None, max_length=64)
    expires_at: Optional[datetime] = None
    state: Optional[DesiredState] = Field(
        None,
        description="Initial desired state (default: the kind's)"
    )
    idempotency_key: Optional[str] = Field(
        None,
        max_length=128,
        description="Optional key for idempotent provisioning"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "kind": "database",
                    "owner_key": "app-7f3a",
                    "spec": {"engine": "postgres", "size": "small"},
                }
            ]
        }
    }


class DesiredStateUpdate(BaseModel):
    """Request to change a resource's desired state."""
    state: DesiredState


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class ResourceResponse(BaseModel):
    """Resource record response."""
    id: str
    kind: ResourceKind
    owner_key: str
    parent_id: Optional[str] = None
    state: DesiredState
    phase: Phase
    message: Optional[str] = None
    retry_count: int = 0
    spec: Dict[str, Any] = {}
    expires_at: Optional[datetime] = None
    locked: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ResourceListResponse(BaseModel):
    """List of resource statuses."""
    resources: List[ResourceStatus]
    total: int


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: Optional[str] = None
    record_id: Optional[str] = None


__all__ = [
    "ResourceCreate",
    "DesiredStateUpdate",
    "ResourceResponse",
    "ResourceListResponse",
    "ErrorResponse",
]
