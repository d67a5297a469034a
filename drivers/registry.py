# ============================================================================
# DRIVER REGISTRY
# ============================================================================
# STATUS: Core - Driver adapter contract and lookup
# PURPOSE: Register and discover provisioning drivers by resource kind
# CREATED: 09 OCT 2026
# ============================================================================
"""
Driver Registry

A driver adapter is the boundary to the external system that does the
real provisioning work for one resource kind (container cluster, object
storage, database server, API gateway, payment provider).

Design:
- One adapter per ResourceKind
- Adapters return an Outcome; they never decide phases
- Fail-fast on duplicate registration
- Adapters must be idempotent: the same action may be re-applied after
  a worker crash or an expired lease
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.contracts import Action, OutcomeStatus, ResourceKind
from core.models import ResourceRecord

logger = logging.getLogger(__name__)


# ============================================================================
# OUTCOME
# ============================================================================

@dataclass(frozen=True)
class Outcome:
    """
    Result returned by a driver for one action.
    """
    status: OutcomeStatus = OutcomeStatus.SUCCESS
    reason: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    @classmethod
    def success(cls) -> "Outcome":
        return cls(status=OutcomeStatus.SUCCESS)

    @classmethod
    def retryable(cls, reason: str) -> "Outcome":
        """Transient failure: unreachable backend, rate limit, timeout."""
        return cls(status=OutcomeStatus.RETRYABLE, reason=reason)

    @classmethod
    def fatal(cls, reason: str) -> "Outcome":
        """Permanent failure: invalid configuration, rejected request."""
        return cls(status=OutcomeStatus.FATAL, reason=reason)


# ============================================================================
# ADAPTER CONTRACT
# ============================================================================

class DriverAdapter(ABC):
    """
    Per-kind interface to the external provisioning system.
    """

    name: str = "driver"

    @abstractmethod
    async def apply(self, record: ResourceRecord, action: Action) -> Outcome:
        """
        Perform `action` for `record` and report the outcome.

        Must not leak partial external state that the Outcome does not
        reflect.
        """


# ============================================================================
# EXCEPTIONS
# ============================================================================

class DriverError(Exception):
    """Base exception for driver errors."""
    pass


class DriverFatalError(DriverError):
    """Raised by drivers for failures that retrying cannot fix."""
    pass


class DriverNotFoundError(DriverError):
    """Raised when no driver is registered for a kind."""
    def __init__(self, kind: ResourceKind):
        self.kind = kind
        super().__init__(f"Driver not found for kind: {kind.value}")


class DuplicateDriverError(DriverError):
    """Raised when a kind already has a driver."""
    def __init__(self, kind: ResourceKind):
        self.kind = kind
        super().__init__(f"Driver already registered for kind: {kind.value}")


# ============================================================================
# REGISTRY
# ============================================================================

_drivers: Dict[ResourceKind, DriverAdapter] = {}
_driver_metadata: Dict[ResourceKind, Dict[str, Any]] = {}


def register_driver(kind: ResourceKind, driver: DriverAdapter, replace: bool = False) -> DriverAdapter:
    """
    Register the driver for a kind.

    Args:
        kind: Resource kind handled by the driver
        driver: Adapter instance
        replace: Allow overriding an existing registration

    Raises:
        DuplicateDriverError if the kind already has a driver and
        replace is False
    """
    if kind in _drivers and not replace:
        raise DuplicateDriverError(kind)

    _drivers[kind] = driver
    _driver_metadata[kind] = {
        "kind": kind.value,
        "driver": driver.name,
        "class": type(driver).__name__,
        "registered_at": datetime.now(timezone.utc).isoformat(),
    }
    logger.debug(f"Registered driver {driver.name} for {kind.value}")
    return driver


def get_driver(kind: ResourceKind) -> Optional[DriverAdapter]:
    return _drivers.get(kind)


def get_driver_or_raise(kind: ResourceKind) -> DriverAdapter:
    """
    Get the driver for a kind.

    Raises:
        DriverNotFoundError if no driver is registered
    """
    driver = _drivers.get(kind)
    if driver is None:
        raise DriverNotFoundError(kind)
    return driver


def list_drivers() -> List[Dict[str, Any]]:
    """List all registered drivers with metadata."""
    return list(_driver_metadata.values())


def clear_drivers() -> None:
    """Clear all registered drivers (for testing)."""
    _drivers.clear()
    _driver_metadata.clear()


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
]
