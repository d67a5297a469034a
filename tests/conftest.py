# ============================================================================
# SHARED TEST FIXTURES
# ============================================================================
# STATUS: Tests - Fakes and wiring for the reconciliation engine
# PURPOSE: Controllable clock, scripted drivers, in-memory engine
# CREATED: 13 OCT 2026
# ============================================================================
"""
Shared fixtures.

Everything runs against MemoryResourceStore with a FakeClock, so lease
expiry and backoff are driven by clock.advance() instead of sleeping.
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

import pytest

from core.config import Defaults, ReconcilerDefaults
from core.contracts import Action, DesiredState, ResourceKind
from core.models import ResourceRecord
from drivers import DriverAdapter, Outcome, clear_drivers
from infrastructure import LeaseManager
from orchestrator import CascadeNotifier, Reconciler, default_expiry_rules
from orchestrator.engine import TransitionExecutor, default_kinds
from repositories import MemoryResourceStore
from services import ResourceService


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class ScriptedDriver(DriverAdapter):
    """
    Driver returning queued outcomes, then `default`.

    A queued Exception instance is raised instead of returned.
    """

    name = "scripted"

    def __init__(self, default: Optional[Outcome] = None):
        self.default = default or Outcome.success()
        self.queue = deque()
        self.calls: List[tuple] = []

    def script(self, *outcomes: Any) -> "ScriptedDriver":
        self.queue.extend(outcomes)
        return self

    def calls_for(self, record_id: str) -> List[Action]:
        return [action for rid, action in self.calls if rid == record_id]

    async def apply(self, record: ResourceRecord, action: Action) -> Outcome:
        self.calls.append((record.id, action))
        item = self.queue.popleft() if self.queue else self.default
        if isinstance(item, Exception):
            raise item
        return item


@dataclass
class Engine:
    """Fully wired in-memory control plane."""
    clock: FakeClock
    store: MemoryResourceStore
    driver: ScriptedDriver
    leases: LeaseManager
    executor: TransitionExecutor
    cascade: CascadeNotifier
    reconciler: Reconciler
    service: ResourceService

    def run(self, coro):
        return asyncio.run(coro)

    def run_once(self):
        return asyncio.run(self.reconciler.run_once())

    def cycle(self, kind: ResourceKind):
        return asyncio.run(self.reconciler.run_cycle(kind))

    def get(self, record_id: str) -> ResourceRecord:
        return asyncio.run(self.store.get(record_id))

    def converge(self, max_rounds: int = 20) -> int:
        """run_once until a round claims nothing. Returns rounds used."""
        for rounds in range(1, max_rounds + 1):
            result = self.run_once()
            claimed = sum(c["claimed"] for c in result["cycles"].values())
            if claimed == 0 and result["cascade_writes"] == 0:
                return rounds
        raise AssertionError(f"did not converge in {max_rounds} rounds")


def build_engine(
    clock: Optional[FakeClock] = None,
    driver: Optional[ScriptedDriver] = None,
    store: Optional[MemoryResourceStore] = None,
    defaults: Optional[Defaults] = None,
    worker_id: Optional[str] = None,
) -> Engine:
    clock = clock or FakeClock()
    driver = driver or ScriptedDriver()
    store = store if store is not None else MemoryResourceStore()
    defaults = defaults or Defaults()

    kinds = default_kinds(defaults)
    leases = LeaseManager(store, clock=clock, holder_id=worker_id)
    executor = TransitionExecutor(
        store,
        leases,
        kinds,
        drivers={kind: driver for kind in ResourceKind},
    )
    cascade = CascadeNotifier(
        store,
        expiry_rules=default_expiry_rules(defaults.cascade),
        clock=clock,
    )
    reconciler = Reconciler(
        store,
        executor,
        cascade,
        ReconcilerDefaults(poll_interval_seconds=0.01, batch_size=20, cascade_interval_seconds=0.01),
        worker_id=worker_id,
    )
    service = ResourceService(store, kinds, cascade, clock=clock)
    return Engine(clock, store, driver, leases, executor, cascade, reconciler, service)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryResourceStore()


@pytest.fixture
def driver():
    return ScriptedDriver()


@pytest.fixture
def engine(clock, store, driver):
    return build_engine(clock=clock, driver=driver, store=store)


@pytest.fixture
def make_record(clock):
    """Factory for ResourceRecords stamped with the fake clock."""
    counter = {"n": 0}

    def _make(kind=ResourceKind.DATABASE, owner_key="app-1", **kwargs):
        counter["n"] += 1
        kwargs.setdefault("id", f"{kind.value}-{counter['n']}")
        kwargs.setdefault("created_at", clock())
        kwargs.setdefault("updated_at", clock())
        if kind == ResourceKind.APPLICATION:
            kwargs.setdefault("state", DesiredState.RUNNING)
        return ResourceRecord(kind=kind, owner_key=owner_key, **kwargs)

    return _make


@pytest.fixture(autouse=True)
def _isolated_driver_registry():
    clear_drivers()
    yield
    clear_drivers()
