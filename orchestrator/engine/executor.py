# ============================================================================
# TRANSITION EXECUTOR
# ============================================================================
# STATUS: Core - One table edge per lease
# PURPOSE: Plan, call the driver, classify, commit under the lease token
# CREATED: 10 OCT 2026
# ============================================================================
"""
Transition Executor

Given a record whose lease the caller already holds:

1. Look up the table edge for (state, phase). No edge: release, done.
2. Call the kind's driver once, bounded by the remaining lease time.
   BEGIN_* edges skip the driver and succeed immediately.
3. Turn the outcome into a RetryDecision.
4. Commit phase/message/retry_count/locked_at in one write guarded by
   the lease token. If the token no longer matches, another worker has
   reclaimed the record and the result is discarded as stale.

A failure of one record never raises out of execute().
"""

import asyncio
import logging
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel

from core.contracts import Action, Phase, ResourceKind
from core.logging import ComponentType, log_checkpoint, log_context
from core.models import Lease, ResourceRecord
from drivers.registry import DriverAdapter, DriverFatalError, Outcome, get_driver_or_raise
from infrastructure.locking import LeaseManager
from repositories.base import ResourceStore
from .backoff import BackoffController, DecisionStatus, RetryDecision
from .transitions import KindSpec, Transition, default_kinds, validate_kind_spec

logger = logging.getLogger(__name__)

class ExecutionStatus(str, Enum):
    SUCCEEDED = "succeeded"
    RETRY = "retry"
    FAILED = "failed"
    STALE = "stale"
    SKIPPED = "skipped"


class ExecutionResult(BaseModel):
    """What happened to one claimed record."""
    record_id: str
    kind: ResourceKind
    status: ExecutionStatus
    action: Optional[Action] = None
    from_phase: Optional[Phase] = None
    to_phase: Optional[Phase] = None
    retry_count: int = 0
    delay_seconds: float = 0.0
    message: Optional[str] = None


class TransitionExecutor:
    """
    Executes transition table edges for leased records.
    """

    def __init__(
        self,
        store: ResourceStore,
        leases: LeaseManager,
        kinds: Optional[Dict[ResourceKind, KindSpec]] = None,
        backoff: Optional[BackoffController] = None,
        drivers: Optional[Dict[ResourceKind, DriverAdapter]] = None,
    ):
        """
        Initialize executor.

        Args:
            store: Shared resource store
            leases: Lease manager (also the clock source)
            kinds: KindSpec per kind (default: shipped tables)
            backoff: Outcome classifier (default: built from kind policies)
            drivers: Explicit drivers per kind (default: global registry)
        """
        self.store = store
        self.leases = leases
        self.kinds = {
            kind: validate_kind_spec(spec)
            for kind, spec in (kinds if kinds is not None else default_kinds()).items()
        }
        self.backoff = backoff or BackoffController(
            {kind: spec.retry for kind, spec in self.kinds.items()}
        )
        self._drivers = drivers

    def kind_spec(self, kind: ResourceKind) -> Optional[KindSpec]:
        return self.kinds.get(kind)

    def plan(self, record: ResourceRecord) -> Optional[Transition]:
        """Next edge for the record, or None when converged or waiting."""
        spec = self.kinds.get(record.kind)
        if spec is None:
            return None
        return spec.plan(record.state, record.phase)

    def _driver_for(self, kind: ResourceKind) -> DriverAdapter:
        if self._drivers is not None:
            driver = self._drivers.get(kind)
            if driver is not None:
                return driver
        return get_driver_or_raise(kind)

    async def _invoke(self, record: ResourceRecord, action: Action, lease: Lease) -> Outcome:
        """Call the driver once. Exceptions become outcomes."""
        timeout = lease.remaining_seconds(self.leases.clock())
        if timeout <= 0:
            return Outcome.retryable("lease expired before driver call")

        try:
            driver = self._driver_for(record.kind)
            return await asyncio.wait_for(driver.apply(record, action), timeout=timeout)
        except asyncio.TimeoutError:
            return Outcome.retryable(f"{action.value} timed out after {timeout:.0f}s")
        except DriverFatalError as e:
            return Outcome.fatal(str(e))
        except Exception as e:
            logger.warning(f"Driver raised during {action.value} of {record.id}: {e}")
            return Outcome.retryable(f"{type(e).__name__}: {e}")

    async def execute(self, record: ResourceRecord, lease: Lease) -> ExecutionResult:
        """
        Move a leased record along one edge.

        Args:
            record: Current record (read after the lease was acquired)
            lease: Lease held on the record

        Returns:
            ExecutionResult (never raises for driver failures)
        """
        spec = self.kinds.get(record.kind)
        transition = spec.plan(record.state, record.phase) if spec else None

        if transition is None:
            await self.leases.release(lease)
            return ExecutionResult(
                record_id=record.id,
                kind=record.kind,
                status=ExecutionStatus.SKIPPED,
                from_phase=record.phase,
            )

        with log_context(
            record_id=record.id,
            kind=record.kind.value,
            owner_key=record.owner_key,
            component=ComponentType.EXECUTOR.value,
            operation=transition.action.value,
        ):
            if transition.action.requires_driver():
                outcome = await self._invoke(record, transition.action, lease)
            else:
                outcome = Outcome.success()

            decision = self.backoff.decide(record, outcome)
            return await self._commit(record, lease, spec, transition, decision)

    async def _commit(
        self,
        record: ResourceRecord,
        lease: Lease,
        spec: KindSpec,
        transition: Transition,
        decision: RetryDecision,
    ) -> ExecutionResult:
        now = self.leases.clock()
        delay = 0.0

        if decision.status == DecisionStatus.SUCCESS:
            phase, status, locked_at = transition.next_phase, ExecutionStatus.SUCCEEDED, None
        elif decision.status == DecisionStatus.RETRY:
            phase, status = record.phase, ExecutionStatus.RETRY
            delay = self.leases.applied_delay(lease, decision.delay_seconds)
            locked_at = self.leases.deferred_lock_time(lease, delay)
        else:
            phase, status, locked_at = spec.failure_phase(transition), ExecutionStatus.FAILED, None

        committed = await self.store.commit(
            record.id,
            lease.token,
            phase=phase,
            message=decision.message,
            retry_count=decision.retry_count,
            locked_at=locked_at,
            now=now,
        )

        result = ExecutionResult(
            record_id=record.id,
            kind=record.kind,
            status=status if committed else ExecutionStatus.STALE,
            action=transition.action,
            from_phase=record.phase,
            to_phase=phase,
            retry_count=decision.retry_count,
            delay_seconds=delay,
            message=decision.message,
        )

        if not committed:
            logger.warning(
                f"Lease on {record.id} lost during {transition.action.value}; "
                f"discarding {status.value} result"
            )
            return result

        if status == ExecutionStatus.SUCCEEDED:
            log_checkpoint("transition_committed", {
                "action": transition.action.value,
                "from_phase": record.phase.value,
                "to_phase": phase.value,
            })
        elif status == ExecutionStatus.RETRY:
            logger.info(
                f"{record.kind.value} {record.id} {transition.action.value} retry "
                f"{decision.retry_count}/{spec.retry.max_attempts} in {delay:.0f}s: "
                f"{decision.message}"
            )
        else:
            log_checkpoint("transition_failed", {
                "action": transition.action.value,
                "from_phase": record.phase.value,
                "message": decision.message,
            }, level=logging.WARNING)
            logger.error(f"{record.kind.value} {record.id} failed: {decision.message}")

        return result


__all__ = ["TransitionExecutor", "ExecutionResult", "ExecutionStatus"]
