# ============================================================================
# RECONCILIATION LOOP - MULTI-INSTANCE
# ============================================================================
# STATUS: Core - Periodic reconciliation scheduler
# PURPOSE: Drive every unconverged record towards its desired state
# CREATED: 11 OCT 2026
# ============================================================================
"""
Reconciliation Loop - Multi-Instance Design

Any number of instances may run against the same store. There is no
leader and no coordinator: exclusivity comes from per-record leases.

Each instance runs:
1. One loop per resource kind:
   a. List unconverged, unlocked records of the kind (oldest first)
   b. Try to lease each one; a denied lease is a contention skip
   c. Re-read the leased record and hand it to the executor
      (the whole batch runs concurrently)
2. One cascade loop applying the ownership rules

A crash mid-edge leaves the lease to expire; the next claimant repeats
the same (idempotent) driver action.

Runs as background tasks in the FastAPI application.
"""

import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.config import ReconcilerDefaults, get_defaults
from core.contracts import ResourceKind
from core.logging import ComponentType, log_checkpoint, log_context
from infrastructure.locking import LeaseManager
from orchestrator.cascade import CascadeNotifier
from orchestrator.engine.executor import ExecutionStatus, TransitionExecutor
from repositories.base import ResourceStore

logger = logging.getLogger(__name__)


@dataclass
class CycleStats:
    """Counters for one scheduling cycle of one kind."""
    kind: str
    candidates: int = 0
    claimed: int = 0
    contended: int = 0
    succeeded: int = 0
    retried: int = 0
    failed: int = 0
    stale: int = 0
    skipped: int = 0
    errors: int = 0
    results: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Reconciler:
    """
    Multi-instance reconciliation scheduler.

    Each instance:
    - Has a unique worker_id (used in logs and lease metadata only)
    - Scans every kind on its own asyncio task
    - Claims records through leases, never through ownership

    Multiple instances can run simultaneously with no coordination.
    """

    def __init__(
        self,
        store: ResourceStore,
        executor: TransitionExecutor,
        cascade: CascadeNotifier,
        settings: Optional[ReconcilerDefaults] = None,
        worker_id: Optional[str] = None,
    ):
        """
        Initialize reconciler.

        Args:
            store: Shared resource store
            executor: Transition executor (owns the lease manager and tables)
            cascade: Cascade notifier
            settings: Poll interval, batch size, cascade interval
            worker_id: Instance identifier (default: random UUID)
        """
        self.store = store
        self.executor = executor
        self.cascade = cascade
        self.settings = settings or get_defaults().reconciler

        self._worker_id = worker_id or str(uuid.uuid4())

        # State
        self._running = False
        self._stop_event = asyncio.Event()
        self._tasks: Dict[str, asyncio.Task] = {}

        # Metrics
        self._started_at: Optional[datetime] = None
        self._cycles = 0
        self._cascade_passes = 0
        self._claimed = 0
        self._contended = 0
        self._succeeded = 0
        self._retried = 0
        self._failed = 0
        self._stale = 0
        self._cascade_writes = 0
        self._errors = 0
        self._last_cycle_at: Optional[datetime] = None
        self._last_cascade_at: Optional[datetime] = None

    @property
    def worker_id(self) -> str:
        """This reconciler's unique ID."""
        return self._worker_id

    @property
    def leases(self) -> LeaseManager:
        return self.executor.leases

    @property
    def kinds(self) -> List[ResourceKind]:
        return list(self.executor.kinds.keys())

    def _now(self) -> datetime:
        return self.leases.clock()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """
        Start one loop per kind plus the cascade loop.

        Calling start() on a running reconciler is a no-op.
        """
        if self._running:
            logger.warning("Reconciler already running")
            return

        self._running = True
        self._started_at = self._now()
        self._stop_event.clear()

        short_id = self._worker_id[:8]
        for kind in self.kinds:
            self._tasks[kind.value] = asyncio.create_task(
                self._kind_loop(kind),
                name=f"reconcile-{kind.value}-{short_id}",
            )
        self._tasks["cascade"] = asyncio.create_task(
            self._cascade_loop(),
            name=f"cascade-{short_id}",
        )

        logger.info(
            f"Reconciler started (worker_id={short_id}..., kinds={len(self.kinds)}, "
            f"poll_interval={self.settings.poll_interval_seconds}s, "
            f"batch_size={self.settings.batch_size})"
        )

    async def stop(self) -> None:
        """
        Stop all loops gracefully.

        Leases held by in-flight cycles are not released here; they
        expire and the records are reclaimed by other instances.
        """
        if not self._running:
            return

        logger.info(f"Stopping reconciler (worker_id={self._worker_id[:8]}...)")

        self._running = False
        self._stop_event.set()

        for task in self._tasks.values():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

        logger.info(f"Reconciler stopped (cycles={self._cycles}, errors={self._errors})")

    async def _wait(self, timeout: float) -> bool:
        """Sleep for `timeout` unless stopped. Returns True when stopping."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    # =========================================================================
    # LOOPS
    # =========================================================================

    async def _kind_loop(self, kind: ResourceKind) -> None:
        """Scheduling loop for one kind."""
        logger.info(f"Starting {kind.value} loop (worker={self._worker_id[:8]}...)")

        while self._running and not self._stop_event.is_set():
            try:
                await self.run_cycle(kind)
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._errors += 1
                logger.exception(f"Error in {kind.value} reconcile cycle: {e}")

            if await self._wait(self.settings.poll_interval_seconds):
                break

        logger.info(f"{kind.value} loop stopped (worker={self._worker_id[:8]}...)")

    async def _cascade_loop(self) -> None:
        """Background loop applying cascade and expiry rules."""
        logger.info(
            f"Starting cascade loop (worker={self._worker_id[:8]}..., "
            f"interval={self.settings.cascade_interval_seconds}s)"
        )

        while self._running and not self._stop_event.is_set():
            try:
                await self.run_cascade_pass()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._errors += 1
                logger.error(f"Cascade pass error: {e}")

            if await self._wait(self.settings.cascade_interval_seconds):
                break

        logger.info(f"Cascade loop stopped (worker={self._worker_id[:8]}...)")

    # =========================================================================
    # CYCLES
    # =========================================================================

    async def run_cycle(self, kind: ResourceKind) -> CycleStats:
        """
        One scheduling cycle for one kind.

        Steps:
        1. List candidates (unconverged pairs, unlocked, oldest first)
        2. Lease each candidate; count denials as contention
        3. Re-read the leased record and execute one edge

        Candidates of one batch run concurrently; an error in one is
        counted and never cancels the others.
        """
        stats = CycleStats(kind=kind.value)
        spec = self.executor.kind_spec(kind)
        if spec is None:
            return stats

        with log_context(
            kind=kind.value,
            worker_id=self._worker_id,
            component=ComponentType.RECONCILER.value,
        ):
            candidates = await self.store.list_candidates(
                kind,
                spec.candidate_pairs(),
                self._now(),
                spec.lease_seconds,
                self.settings.batch_size,
            )
            stats.candidates = len(candidates)

            async def run_one(record_id: str) -> None:
                try:
                    await self._reconcile_one(record_id, spec.lease_seconds, stats)
                except Exception as e:
                    stats.errors += 1
                    logger.exception(f"Error reconciling {record_id}: {e}")

            # Batch size bounds the fan-out
            await asyncio.gather(*[run_one(candidate.id) for candidate in candidates])

        self._cycles += 1
        self._last_cycle_at = self._now()
        self._claimed += stats.claimed
        self._contended += stats.contended
        self._succeeded += stats.succeeded
        self._retried += stats.retried
        self._failed += stats.failed
        self._stale += stats.stale
        self._errors += stats.errors

        if stats.claimed:
            logger.debug(
                f"{kind.value} cycle: {stats.claimed} claimed, {stats.succeeded} advanced, "
                f"{stats.retried} retrying, {stats.failed} failed, {stats.contended} contended"
            )
        return stats

    async def _reconcile_one(self, record_id: str, lease_seconds: float, stats: CycleStats) -> None:
        lease = await self.leases.try_acquire(record_id, lease_seconds)
        if lease is None:
            stats.contended += 1
            return

        stats.claimed += 1
        with log_context(record_id=record_id):
            log_checkpoint("lease_acquired", {"token": lease.token.isoformat()})
            try:
                record = await self.store.get(record_id)
                if record is None:
                    stats.skipped += 1
                    return
                result = await self.executor.execute(record, lease)
            except Exception:
                # Best effort; an unreleased lease simply expires
                await self.leases.release(lease)
                raise

        stats.results.append(result.model_dump(mode="json"))
        if result.status == ExecutionStatus.SUCCEEDED:
            stats.succeeded += 1
        elif result.status == ExecutionStatus.RETRY:
            stats.retried += 1
        elif result.status == ExecutionStatus.FAILED:
            stats.failed += 1
        elif result.status == ExecutionStatus.STALE:
            stats.stale += 1
        else:
            stats.skipped += 1

    async def run_cascade_pass(self) -> int:
        """Run one cascade pass. Returns the number of desired-state writes."""
        events = await self.cascade.run_pass()
        self._cascade_passes += 1
        self._cascade_writes += len(events)
        self._last_cascade_at = self._now()
        return len(events)

    async def run_once(self) -> Dict[str, Any]:
        """
        One cycle over every kind followed by one cascade pass.

        Useful for testing or manual intervention.
        """
        cycles = {}
        for kind in self.kinds:
            cycles[kind.value] = (await self.run_cycle(kind)).to_dict()
        cascade_writes = await self.run_cascade_pass()
        return {"cycles": cycles, "cascade_writes": cascade_writes}

    # =========================================================================
    # STATS AND PROPERTIES
    # =========================================================================

    @property
    def is_running(self) -> bool:
        """Check if reconciler is running."""
        return self._running

    @property
    def stats(self) -> Dict[str, Any]:
        """Get reconciler statistics."""
        uptime_seconds = None
        if self._started_at and self._running:
            uptime_seconds = (self._now() - self._started_at).total_seconds()

        return {
            "running": self._running,
            "worker_id": self._worker_id,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "uptime_seconds": uptime_seconds,
            "poll_interval": self.settings.poll_interval_seconds,
            "batch_size": self.settings.batch_size,
            "kinds": [k.value for k in self.kinds],
            "cycles": self._cycles,
            "cascade_passes": self._cascade_passes,
            "claimed": self._claimed,
            "contended": self._contended,
            "succeeded": self._succeeded,
            "retried": self._retried,
            "failed": self._failed,
            "stale": self._stale,
            "cascade_writes": self._cascade_writes,
            "errors": self._errors,
            "last_cycle_at": self._last_cycle_at.isoformat() if self._last_cycle_at else None,
            "last_cascade_at": self._last_cascade_at.isoformat() if self._last_cascade_at else None,
        }


__all__ = ["Reconciler", "CycleStats"]
