# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 07 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the control plane.
"""

from core.config.defaults import (
    StoreBackend,
    ReconcilerDefaults,
    LeaseDefaults,
    RetryDefaults,
    CascadeDefaults,
    DriverDefaults,
    DatabaseDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "StoreBackend",
    "ReconcilerDefaults",
    "LeaseDefaults",
    "RetryDefaults",
    "CascadeDefaults",
    "DriverDefaults",
    "DatabaseDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
