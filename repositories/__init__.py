# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# STATUS: Core - Database access layer
# PURPOSE: Storage for reconcilable resource records
# CREATED: 08 OCT 2026
# ============================================================================
"""
Repositories Module

Provides the ResourceStore contract and its implementations.
PostgreSQL access uses psycopg3 async with connection pooling.

Usage:
    from repositories import PostgresResourceStore, get_pool

    pool = await get_pool()
    store = PostgresResourceStore(pool)
    record = await store.get(record_id)
"""

from .base import ResourceStore, RepositoryError, CascadeWrite
from .database import get_pool, init_pool, close_pool
from .memory_repo import MemoryResourceStore
from .resource_repo import PostgresResourceStore

__all__ = [
    "ResourceStore",
    "RepositoryError",
    "CascadeWrite",
    "get_pool",
    "init_pool",
    "close_pool",
    "MemoryResourceStore",
    "PostgresResourceStore",
]
