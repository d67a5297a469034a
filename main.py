# ============================================================================
# TENANT CONTROL PLANE - MAIN APPLICATION
# ============================================================================
# STATUS: Core - FastAPI application entry point
# PURPOSE: Main application with reconciliation loops
# CREATED: 12 OCT 2026
# ============================================================================
"""
Tenant Control Plane Main Application

FastAPI application that:
1. Provides HTTP API for resource provisioning and desired-state changes
2. Runs the reconciliation loops in the background
3. Manages the resource store (PostgreSQL or in-memory)

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from __version__ import __version__, BUILD_DATE

from core.config import Defaults, StoreBackend, get_defaults
from core.schema import PydanticToSQL
from drivers import register_default_drivers
from infrastructure import LeaseManager
from orchestrator import CascadeNotifier, Reconciler, default_expiry_rules
from orchestrator.engine import TransitionExecutor, default_kinds
from repositories import MemoryResourceStore, PostgresResourceStore, ResourceStore
from repositories.database import SCHEMA, init_pool, close_pool
from services import ResourceService
from api.routes import router, set_services

# Configure logging using our structured logging system
from core.logging import configure_logging, get_logger

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__)

# Global instances
_reconciler: Optional[Reconciler] = None
_store: Optional[ResourceStore] = None


def build_reconciler(store: ResourceStore, defaults: Optional[Defaults] = None):
    """
    Wire store, lease manager, executor, cascade notifier and service.

    Returns:
        (ResourceService, Reconciler)
    """
    defaults = defaults or get_defaults()

    kinds = default_kinds(defaults)
    leases = LeaseManager(store)
    executor = TransitionExecutor(store, leases, kinds)
    cascade = CascadeNotifier(store, expiry_rules=default_expiry_rules(defaults.cascade))
    reconciler = Reconciler(store, executor, cascade, defaults.reconciler)
    leases.holder_id = reconciler.worker_id

    service = ResourceService(store, kinds, cascade)
    return service, reconciler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Initializes the store and loops on startup, cleans up on shutdown.
    """
    global _reconciler, _store

    logger.info(f"Starting Control Plane v{__version__} (Build {BUILD_DATE})")

    defaults = get_defaults()
    backend = defaults.reconciler.store_backend

    if backend == StoreBackend.MEMORY:
        store: ResourceStore = MemoryResourceStore()
        logger.warning("Using in-memory resource store; state is lost on restart")
    else:
        pool = await init_pool(defaults.database)
        logger.info("Database pool initialized")

        # Optional: Bootstrap schema on startup (for development)
        if os.environ.get("AUTO_BOOTSTRAP_SCHEMA", "").lower() == "true":
            logger.info("Auto-bootstrap enabled, deploying schema...")
            async with pool.connection() as conn:
                await PydanticToSQL(schema_name=SCHEMA).execute(conn)

        store = PostgresResourceStore(pool)

    drivers = register_default_drivers(defaults.drivers, replace=True)
    logger.info(f"Registered drivers for {len(drivers)} kinds")

    _store = store
    service, _reconciler = build_reconciler(store, defaults)
    set_services(resource_service=service, reconciler=_reconciler)

    await _reconciler.start()
    logger.info("Reconciler started")

    yield

    # Shutdown
    logger.info("Shutting down Control Plane...")

    await _reconciler.stop()
    _store = None
    if backend != StoreBackend.MEMORY:
        await close_pool()

    logger.info("Control Plane stopped")


# Create FastAPI app
app = FastAPI(
    title="Tenant Control Plane",
    description="Desired-state reconciliation for tenant cloud resources",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api/v1")


@app.get("/livez", tags=["Health"])
async def livez():
    """Liveness check. Reports the reconciler's running flag."""
    return {
        "status": "alive",
        "reconciler_running": bool(_reconciler and _reconciler.is_running),
    }


@app.get("/readyz", tags=["Health"])
async def readyz():
    """
    Readiness check. 503 until the store answers and the loops run.
    """
    store_ok = _store is not None and await _store.ping()
    running = bool(_reconciler and _reconciler.is_running)

    if not (store_ok and running):
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "store": store_ok, "reconciler_running": running},
        )
    return {"status": "ready", "store": True, "reconciler_running": True}


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Tenant Control Plane",
        "version": __version__,
        "build_date": BUILD_DATE,
        "status": "running",
        "docs": "/docs",
    }


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
