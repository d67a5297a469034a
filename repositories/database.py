# ============================================================================
# DATABASE CONNECTION POOL
# ============================================================================
# STATUS: Core - Async PostgreSQL connection management
# PURPOSE: One psycopg_pool pool per process for the resource store
# CREATED: 08 OCT 2026
# ============================================================================
"""
Database Connection Pool

The PostgreSQL store needs exactly one pool per process. It is opened by
the FastAPI lifespan (or deploy_schema.py) and shared by every kind loop,
the cascade loop and the request handlers.

Connection info comes from DATABASE_URL, or is assembled from POSTGRES_*.
Pool sizing comes from DatabaseDefaults (DB_POOL_* variables).

Usage:
    pool = await init_pool()
    store = PostgresResourceStore(pool)
    ...
    await close_pool()
"""

import logging
import os
from typing import Optional

from psycopg import sql
from psycopg_pool import AsyncConnectionPool

from core.config import DatabaseDefaults, get_defaults

logger = logging.getLogger(__name__)

SCHEMA = "ctrl"

# Use with sql.SQL().format() so the schema name is always quoted
TABLE_RESOURCES = sql.Identifier(SCHEMA, "resources")

_pool: Optional[AsyncConnectionPool] = None


def get_connection_string() -> str:
    """DATABASE_URL if set, otherwise a URL built from POSTGRES_*."""
    if url := os.environ.get("DATABASE_URL"):
        return url

    host = os.environ.get("POSTGRES_HOST", "localhost")
    port = os.environ.get("POSTGRES_PORT", "5432")
    name = os.environ.get("POSTGRES_DB", "postgres")
    user = os.environ.get("POSTGRES_USER", "postgres")
    password = os.environ.get("POSTGRES_PASSWORD", "")
    sslmode = os.environ.get("POSTGRES_SSLMODE", "prefer")

    return f"postgresql://{user}:{password}@{host}:{port}/{name}?sslmode={sslmode}"


def mask_conninfo(conninfo: str) -> str:
    """Strip credentials from a connection string for logging."""
    if "@" in conninfo:
        return conninfo.split("@")[-1]
    if "password=" in conninfo:
        return conninfo.split("password=")[0] + "password=***"
    return conninfo


async def init_pool(
    settings: Optional[DatabaseDefaults] = None,
    connection_string: Optional[str] = None,
) -> AsyncConnectionPool:
    """
    Open the process-wide pool. A second call returns the open pool.

    Args:
        settings: Pool sizing (default: from environment)
        connection_string: Override DATABASE_URL / POSTGRES_*
    """
    global _pool

    if _pool is not None:
        logger.warning("Pool already initialized, returning existing pool")
        return _pool

    settings = settings or get_defaults().database
    conninfo = connection_string or get_connection_string()
    logger.info(f"Opening connection pool to {mask_conninfo(conninfo)}")

    pool = AsyncConnectionPool(
        conninfo=conninfo,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        timeout=settings.pool_timeout_seconds,
        open=False,
    )
    await pool.open(wait=True, timeout=settings.pool_timeout_seconds)
    _pool = pool

    logger.info(
        f"Connection pool opened (min={settings.pool_min_size}, max={settings.pool_max_size})"
    )
    return _pool


async def get_pool() -> AsyncConnectionPool:
    """The open pool, opening it on first use."""
    if _pool is None:
        return await init_pool()
    return _pool


async def close_pool() -> None:
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Connection pool closed")


__all__ = [
    "SCHEMA",
    "TABLE_RESOURCES",
    "get_connection_string",
    "mask_conninfo",
    "init_pool",
    "get_pool",
    "close_pool",
]
