# ============================================================================
# LEASE MANAGER
# ============================================================================
# STATUS: Infrastructure - Concurrency control
# PURPOSE: Time-bounded exclusive leases on resource records
# CREATED: 09 OCT 2026
# ============================================================================
"""
Lease Manager

Grants and releases leases on individual resource records through
compare-and-set writes on the record's locked_at column:

- try_acquire:  locked_at NULL or older than the lease -> locked_at = now
- release:      locked_at = token -> locked_at = NULL
- defer:        locked_at = token -> locked_at shifted so the record is
                claimable again after a backoff delay

Properties:
- Acquisition never blocks; contention returns None immediately
- A single lease covers a single record, so no deadlock is possible
- A crashed worker's lease simply expires and is reclaimed
- A late release or commit from an expired holder is a no-op

Usage:
    from infrastructure.locking import LeaseManager

    leases = LeaseManager(store)

    lease = await leases.try_acquire(record.id, lease_seconds=60)
    if lease is None:
        return  # another worker owns it
    ...
    await leases.release(lease)
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from core.models import Lease, ResourceRecord, utc_now
from repositories.base import ResourceStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class LeaseManager:
    """
    Store-level optimistic locking for resource records.

    All coordination goes through the shared store; nothing is held in
    process memory between calls.
    """

    def __init__(
        self,
        store: ResourceStore,
        clock: Clock = utc_now,
        holder_id: Optional[str] = None,
    ):
        """
        Initialize lease manager.

        Args:
            store: Shared resource store
            clock: Time source (injected by tests)
            holder_id: Worker identifier stamped on granted leases
        """
        self.store = store
        self.clock = clock
        self.holder_id = holder_id

    @staticmethod
    def is_expired(record: ResourceRecord, now: datetime, lease_seconds: float) -> bool:
        """
        Check if a record is claimable at `now`.

        A lease taken at T is claimable from T + lease_seconds on, and
        never before.
        """
        if record.locked_at is None:
            return True
        return record.locked_at + timedelta(seconds=lease_seconds) <= now

    async def try_acquire(self, record_id: str, lease_seconds: float) -> Optional[Lease]:
        """
        Try to claim one record.

        Returns:
            Lease if acquired, None if another worker holds a valid lease
            or the record does not exist
        """
        now = self.clock()
        token = await self.store.try_lock(record_id, now, lease_seconds)

        if token is None:
            logger.debug(f"Record {record_id} leased by another worker, skipping")
            return None

        logger.debug(f"Acquired lease on {record_id} (ttl={lease_seconds}s)")
        return Lease(
            record_id=record_id,
            token=token,
            duration_seconds=lease_seconds,
            holder_id=self.holder_id,
        )

    async def release(self, lease: Lease) -> bool:
        """
        Release a lease.

        Returns:
            True if released, False if the lease had already been
            reclaimed by another worker (not an error)
        """
        released = await self.store.unlock(lease.record_id, lease.token)
        if released:
            logger.debug(f"Released lease on {lease.record_id}")
        else:
            logger.info(
                f"Lease on {lease.record_id} no longer held at release "
                f"(token={lease.token.isoformat()}); ignoring"
            )
        return released

    @staticmethod
    def applied_delay(lease: Lease, delay_seconds: float) -> float:
        """Backoff delay actually applied: never negative, never past one lease."""
        return max(0.0, min(delay_seconds, lease.duration_seconds))

    def deferred_lock_time(self, lease: Lease, delay_seconds: float) -> datetime:
        """
        locked_at value that makes the record claimable `delay_seconds`
        from now, at most one lease duration away.

        Measured from now, not from the lease start.
        """
        now = self.clock()
        delay = self.applied_delay(lease, delay_seconds)
        return now + timedelta(seconds=delay) - timedelta(seconds=lease.duration_seconds)

    async def defer(self, lease: Lease, delay_seconds: float) -> bool:
        """
        Release early but keep the record invisible for `delay_seconds`.

        Returns:
            True if the record was re-timed, False if the lease was lost
        """
        locked_at = self.deferred_lock_time(lease, delay_seconds)
        deferred = await self.store.relock(lease.record_id, lease.token, locked_at)
        if deferred:
            logger.debug(f"Deferred {lease.record_id} for {self.applied_delay(lease, delay_seconds)}s")
        return deferred


__all__ = ["LeaseManager", "Clock"]
