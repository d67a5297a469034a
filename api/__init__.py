# ============================================================================
# API MODULE
# ============================================================================
# STATUS: Core - FastAPI routes
# PURPOSE: HTTP API for resources and the reconciler
# CREATED: 12 OCT 2026
# ============================================================================
"""
API Module

FastAPI routes for the control plane.
"""

from .routes import router, set_services
from .schemas import (
    ResourceCreate,
    DesiredStateUpdate,
    ResourceResponse,
    ResourceListResponse,
)

__all__ = [
    "router",
    "set_services",
    "ResourceCreate",
    "DesiredStateUpdate",
    "ResourceResponse",
    "ResourceListResponse",
]
