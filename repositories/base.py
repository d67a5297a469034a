# ============================================================================
# BASE REPOSITORY - RESOURCE STORE CONTRACT
# ============================================================================
# STATUS: Core - Storage contract for reconcilable records
# PURPOSE: Atomic conditional writes the engine relies on
# CREATED: 08 OCT 2026
# ============================================================================
"""
Base Repository

ResourceStore is the only shared mutable state of the control plane.
Every method that guards concurrency is a single atomic conditional write
(one UPDATE ... WHERE ... RETURNING in PostgreSQL):

- try_lock:   claim if unlocked or lease expired
- unlock:     release only if the token still matches
- relock:     move locked_at only if the token still matches
- commit:     write a transition result only if the token still matches
- cascade:    desired-state fan-out from parents to children
- expire:     time-based desired-state change

Storage-specific stores (PostgreSQL, in-memory) extend this class.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple

from core.contracts import DesiredState, Phase, ResourceKind
from core.models import CascadeRule, ExpiryRule, ResourceRecord

logger = logging.getLogger(__name__)

# (child_id, child_kind, parent_id) written by one cascade statement
CascadeWrite = Tuple[str, ResourceKind, str]


class RepositoryError(Exception):
    """Base exception for repository operations."""

    def __init__(self, message: str, operation: str = None, entity_id: str = None):
        self.operation = operation
        self.entity_id = entity_id
        super().__init__(message)


class ResourceStore(ABC):
    """
    Abstract store of ResourceRecords.

    Provides the error context manager shared by implementations.
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def _error_context(self, operation: str, entity_id: Optional[str] = None):
        """
        Wrap a storage operation with consistent logging and error type.

        Example:
            with self._error_context("resource creation", record.id):
                await conn.execute(...)
        """
        try:
            yield
        except RepositoryError:
            raise
        except Exception as e:
            error_msg = f"{operation} failed"
            if entity_id:
                error_msg += f" for {entity_id}"
            error_msg += f": {e}"
            self.logger.error(error_msg)
            raise RepositoryError(error_msg, operation=operation, entity_id=entity_id) from e

    # =========================================================================
    # CRUD
    # =========================================================================

    @abstractmethod
    async def create(self, record: ResourceRecord) -> ResourceRecord:
        ...

    @abstractmethod
    async def get_or_create(self, record: ResourceRecord) -> Tuple[ResourceRecord, bool]:
        """Insert unless the id exists. Returns (stored record, created)."""
        ...

    @abstractmethod
    async def get(self, record_id: str) -> Optional[ResourceRecord]:
        ...

    @abstractmethod
    async def list_by_owner(
        self,
        owner_key: str,
        kind: Optional[ResourceKind] = None,
    ) -> List[ResourceRecord]:
        ...

    @abstractmethod
    async def set_desired_state(
        self,
        record_id: str,
        state: DesiredState,
        now: datetime,
    ) -> Optional[ResourceRecord]:
        """
        External-actor write of the desired state.

        Resets retry_count. Never overwrites a DELETED desired state with
        anything else. Returns the updated record, or None when nothing
        was written (missing record or deletion already requested).
        """

    # =========================================================================
    # SCHEDULING
    # =========================================================================

    @abstractmethod
    async def list_candidates(
        self,
        kind: ResourceKind,
        pairs: Sequence[Tuple[DesiredState, Phase]],
        now: datetime,
        lease_seconds: float,
        limit: int,
    ) -> List[ResourceRecord]:
        """
        Records of `kind` whose (state, phase) is in `pairs` and that are
        unlocked at `now`. Never-locked records first, then oldest
        updated_at first.
        """

    # =========================================================================
    # LEASES
    # =========================================================================

    @abstractmethod
    async def try_lock(
        self,
        record_id: str,
        now: datetime,
        lease_seconds: float,
    ) -> Optional[datetime]:
        """Set locked_at = now if unlocked; return the token or None."""

    @abstractmethod
    async def unlock(self, record_id: str, token: datetime) -> bool:
        ...

    @abstractmethod
    async def relock(self, record_id: str, token: datetime, locked_at: datetime) -> bool:
        ...

    @abstractmethod
    async def commit(
        self,
        record_id: str,
        token: datetime,
        *,
        phase: Phase,
        message: Optional[str],
        retry_count: int,
        locked_at: Optional[datetime],
        now: datetime,
    ) -> bool:
        """
        Write a transition result under the lease.

        `locked_at` is None to release the lease, or a new value to keep
        the record invisible until a backoff elapses.
        """

    # =========================================================================
    # CASCADES
    # =========================================================================

    @abstractmethod
    async def cascade(
        self,
        rule: CascadeRule,
        now: datetime,
        parent_id: Optional[str] = None,
    ) -> List[CascadeWrite]:
        ...

    @abstractmethod
    async def expire(self, rule: ExpiryRule, now: datetime) -> List[str]:
        ...

    async def ping(self) -> bool:
        """Readiness check. True when the backing store answers."""
        return True


__all__ = ["ResourceStore", "RepositoryError", "CascadeWrite"]
