# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for scheduling, leases, retries, cascades
# CREATED: 07 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides sensible defaults for the reconciliation engine.
These can be overridden via environment variables.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional


class StoreBackend:
    """Resource store implementations selectable via STORE_BACKEND."""
    POSTGRES = "postgres"
    MEMORY = "memory"


@dataclass(frozen=True)
class ReconcilerDefaults:
    """
    Defaults for the reconciliation scheduler.

    Controls scan cadence and how much work one scan may start.
    """
    poll_interval_seconds: float = 1.0
    batch_size: int = 20
    cascade_interval_seconds: float = 5.0
    store_backend: str = StoreBackend.POSTGRES

    @classmethod
    def from_env(cls) -> "ReconcilerDefaults":
        """Create from environment variables."""
        return cls(
            poll_interval_seconds=float(os.getenv("RECONCILER_POLL_INTERVAL", 1.0)),
            batch_size=int(os.getenv("RECONCILER_BATCH_SIZE", 20)),
            cascade_interval_seconds=float(os.getenv("CASCADE_INTERVAL", 5.0)),
            store_backend=os.getenv("STORE_BACKEND", StoreBackend.POSTGRES),
        )


@dataclass(frozen=True)
class LeaseDefaults:
    """
    Defaults for per-record leases.

    The lease must outlive the slowest driver call of the kind,
    otherwise a second worker may re-claim a record mid-action.
    """
    default_lease_seconds: float = 60.0

    # Kind-specific overrides (seconds)
    kind_lease_seconds: Dict[str, float] = field(default_factory=lambda: {
        # Container workloads take the longest to roll
        "application": 120.0,
        # Certificate issuance behind the gateway
        "runtime_domain": 90.0,
        "bucket_domain": 90.0,
        "website_domain": 90.0,
    })

    def get_lease_seconds(self, kind: str) -> float:
        return self.kind_lease_seconds.get(kind, self.default_lease_seconds)

    @classmethod
    def from_env(cls) -> "LeaseDefaults":
        """Create from environment variables."""
        return cls(
            default_lease_seconds=float(os.getenv("LEASE_SECONDS", 60.0)),
        )


@dataclass(frozen=True)
class RetryDefaults:
    """
    Defaults for the retry/backoff controller.
    """
    max_attempts: int = 5
    backoff: str = "exponential"
    initial_delay_seconds: int = 5
    max_delay_seconds: int = 300

    # Payment kinds must not hammer the provider
    kind_max_attempts: Dict[str, int] = field(default_factory=lambda: {
        "charge_order": 3,
        "subscription_renewal": 3,
    })

    def get_max_attempts(self, kind: str) -> int:
        return self.kind_max_attempts.get(kind, self.max_attempts)

    @classmethod
    def from_env(cls) -> "RetryDefaults":
        """Create from environment variables."""
        return cls(
            max_attempts=int(os.getenv("RETRY_MAX_ATTEMPTS", 5)),
            backoff=os.getenv("RETRY_BACKOFF", "exponential"),
            initial_delay_seconds=int(os.getenv("RETRY_INITIAL_DELAY", 5)),
            max_delay_seconds=int(os.getenv("RETRY_MAX_DELAY", 300)),
        )


@dataclass(frozen=True)
class CascadeDefaults:
    """
    Defaults for the cascade notifier.
    """
    # How long an expired subscription keeps its stopped application
    expired_grace_seconds: int = 7 * 24 * 3600

    @classmethod
    def from_env(cls) -> "CascadeDefaults":
        """Create from environment variables."""
        return cls(
            expired_grace_seconds=int(os.getenv("EXPIRED_GRACE_SECONDS", 7 * 24 * 3600)),
        )


@dataclass(frozen=True)
class DatabaseDefaults:
    """
    Defaults for the PostgreSQL connection pool.

    Every kind loop holds at most one connection at a time, so max_size
    should not be below the number of kinds plus the cascade loop.
    """
    pool_min_size: int = 2
    pool_max_size: int = 16
    pool_timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> "DatabaseDefaults":
        """Create from environment variables."""
        return cls(
            pool_min_size=int(os.getenv("DB_POOL_MIN_SIZE", 2)),
            pool_max_size=int(os.getenv("DB_POOL_MAX_SIZE", 16)),
            pool_timeout_seconds=float(os.getenv("DB_POOL_TIMEOUT", 30.0)),
        )


@dataclass(frozen=True)
class DriverDefaults:
    """
    Defaults for driver adapters.

    An empty base URL means every kind runs with the no-op driver.
    """
    http_base_url: str = ""
    http_timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> "DriverDefaults":
        """Create from environment variables."""
        return cls(
            http_base_url=os.getenv("DRIVER_BASE_URL", ""),
            http_timeout_seconds=float(os.getenv("DRIVER_TIMEOUT_SECONDS", 30.0)),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    reconciler: ReconcilerDefaults = field(default_factory=ReconcilerDefaults)
    lease: LeaseDefaults = field(default_factory=LeaseDefaults)
    retry: RetryDefaults = field(default_factory=RetryDefaults)
    cascade: CascadeDefaults = field(default_factory=CascadeDefaults)
    drivers: DriverDefaults = field(default_factory=DriverDefaults)
    database: DatabaseDefaults = field(default_factory=DatabaseDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            reconciler=ReconcilerDefaults.from_env(),
            lease=LeaseDefaults.from_env(),
            retry=RetryDefaults.from_env(),
            cascade=CascadeDefaults.from_env(),
            drivers=DriverDefaults.from_env(),
            database=DatabaseDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


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
