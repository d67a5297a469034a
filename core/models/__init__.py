# ============================================================================
# MODELS MODULE
# ============================================================================
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# CREATED: 06 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

Models define SQL metadata via __sql_* ClassVar attributes for DDL generation.

Single Source of Truth Pattern:
    - Pydantic models define structure
    - PydanticToSQL reads __sql_* metadata
    - PostgreSQL schema generated from models
"""

from core.models.resource import ResourceRecord, ResourceStatus, utc_now, truncate_message
from core.models.lease import Lease
from core.models.cascade import CascadeJoin, CascadeRule, ExpiryRule, CascadeEvent

__all__ = [
    "ResourceRecord",
    "ResourceStatus",
    "Lease",
    "CascadeJoin",
    "CascadeRule",
    "ExpiryRule",
    "CascadeEvent",
    "utc_now",
    "truncate_message",
]
