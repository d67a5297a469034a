# ============================================================================
# SCHEMA MODULE
# ============================================================================
# STATUS: Core - Schema generation from Pydantic models
# PURPOSE: Generate PostgreSQL DDL from Pydantic models (single source of truth)
# CREATED: 07 OCT 2026
# ============================================================================

from core.schema.sql_generator import PydanticToSQL

__all__ = ["PydanticToSQL"]
