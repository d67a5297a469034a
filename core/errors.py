# ============================================================================
# DOMAIN EXCEPTIONS
# ============================================================================
# STATUS: Foundation - Exception hierarchy
# PURPOSE: Errors raised at the external-actor boundary and at startup
# CREATED: 06 OCT 2026
# ============================================================================
"""
Domain exceptions.

These are raised to callers of the service layer (API, scripts) and while
validating configuration at startup. The reconciliation loop itself never
lets one of them escape for a single record; failures there are recorded
in the record's phase/message pair.
"""

from typing import Optional


class ControlPlaneError(Exception):
    """Base exception for the control plane."""
    pass


class ResourceNotFound(ControlPlaneError):
    """Raised when a record id does not exist."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Resource not found: {record_id}")


class InvalidDesiredState(ControlPlaneError):
    """Raised when a desired-state write is not allowed for a record."""

    def __init__(self, message: str, record_id: Optional[str] = None):
        self.record_id = record_id
        super().__init__(message)


class UnsupportedKind(ControlPlaneError):
    """Raised when a kind has no transition table registered."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Resource kind is not reconciled: {kind}")


class TransitionTableError(ControlPlaneError):
    """Raised when a kind's transition table violates the engine rules."""
    pass


__all__ = [
    "ControlPlaneError",
    "ResourceNotFound",
    "InvalidDesiredState",
    "UnsupportedKind",
    "TransitionTableError",
]
