# ============================================================================
# DRIVERS MODULE
# ============================================================================
# STATUS: Core - Driver adapters
# PURPOSE: Boundary to the external provisioning systems
# CREATED: 09 OCT 2026
# ============================================================================

from .registry import (
    Outcome,
    DriverAdapter,
    DriverError,
    DriverFatalError,
    DriverNotFoundError,
    DuplicateDriverError,
    register_driver,
    get_driver,
    get_driver_or_raise,
    list_drivers,
    clear_drivers,
)
from .builtin import NoopDriver, HttpDriver, register_default_drivers

__all__ = [
    "Outcome",
    "DriverAdapter",
    "DriverError",
    "DriverFatalError",
    "DriverNotFoundError",
    "DuplicateDriverError",
    "register_driver",
    "get_driver",
    "get_driver_or_raise",
    "list_drivers",
    "clear_drivers",
    "NoopDriver",
    "HttpDriver",
    "register_default_drivers",
]
