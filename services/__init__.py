# ============================================================================
# SERVICES MODULE
# ============================================================================
# STATUS: Core - Business logic layer
# PURPOSE: External-actor operations on resource records
# CREATED: 12 OCT 2026
# ============================================================================
"""
Services Module

Usage:
    from services import ResourceService

    service = ResourceService(store, kinds, cascade)
    record = await service.provision(ResourceKind.DATABASE, "app-123")
"""

from .resource_service import ResourceService

__all__ = ["ResourceService"]
