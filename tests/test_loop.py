# ============================================================================
# RECONCILIATION LOOP TESTS
# ============================================================================
# STATUS: Tests - Scheduler cycles and end-to-end convergence
# PURPOSE: Verify claiming, contention, convergence and failure handling
# CREATED: 13 OCT 2026
# ============================================================================
"""
Reconciliation Loop Tests

Covers:
1. run_cycle claims unconverged records and skips converged ones
2. Two reconcilers sharing a store never run the same edge twice
3. Always-success drivers converge every kind
4. Retry exhaustion fails a record after exactly max_attempts calls
5. A failed teardown is final (one retry budget, no re-entry)
6. Crash recovery after lease expiry
7. Concurrent execution of a batch
8. start/stop lifecycle

Run with:
    pytest tests/test_loop.py -v
"""

import asyncio

from core.config import ReconcilerDefaults
from core.contracts import Action, DesiredState, Phase, ResourceKind
from drivers import Outcome

from conftest import ScriptedDriver, build_engine


def _run(coro):
    return asyncio.run(coro)


class TestRunCycle:
    """Single scheduling cycles."""

    def test_cycle_advances_one_edge(self, engine, make_record):
        record = make_record()
        _run(engine.store.create(record))

        stats = engine.cycle(ResourceKind.DATABASE)

        assert stats.candidates == 1
        assert stats.claimed == 1
        assert stats.succeeded == 1
        assert engine.get(record.id).phase == Phase.CREATED

    def test_converged_records_not_candidates(self, engine, make_record):
        _run(engine.store.create(make_record(phase=Phase.CREATED)))
        _run(engine.store.create(make_record(phase=Phase.FAILED)))

        stats = engine.cycle(ResourceKind.DATABASE)

        assert stats.candidates == 0
        assert engine.driver.calls == []

    def test_locked_records_skipped(self, engine, make_record):
        record = make_record(locked_at=engine.clock())
        _run(engine.store.create(record))

        assert engine.cycle(ResourceKind.DATABASE).candidates == 0

    def test_batch_size_bounds_work(self, make_record, clock):
        engine = build_engine(clock=clock)
        engine.reconciler.settings = ReconcilerDefaults(batch_size=3)
        for _ in range(5):
            _run(engine.store.create(make_record()))

        assert engine.cycle(ResourceKind.DATABASE).claimed == 3
        assert engine.cycle(ResourceKind.DATABASE).claimed == 2

    def test_oldest_first(self, engine, make_record, clock):
        newer = make_record(id="newer", updated_at=clock.advance(10))
        older = make_record(id="older", updated_at=clock.advance(-20))
        _run(engine.store.create(newer))
        _run(engine.store.create(older))

        engine.cycle(ResourceKind.DATABASE)

        assert [rid for rid, _ in engine.driver.calls] == ["older", "newer"]

    def test_batch_runs_concurrently(self, engine, make_record):
        class RendezvousDriver:
            """Succeeds only when every record of the batch is in flight together."""
            name = "rendezvous"

            def __init__(self, expected):
                self.expected = expected
                self.in_flight = 0
                self.everyone_here = None

            async def apply(self, record, action):
                if self.everyone_here is None:
                    self.everyone_here = asyncio.Event()
                self.in_flight += 1
                if self.in_flight == self.expected:
                    self.everyone_here.set()
                await asyncio.wait_for(self.everyone_here.wait(), timeout=2)
                return Outcome.success()

        engine.executor._drivers = {ResourceKind.DATABASE: RendezvousDriver(3)}
        for _ in range(3):
            _run(engine.store.create(make_record()))

        stats = engine.cycle(ResourceKind.DATABASE)

        assert stats.succeeded == 3
        assert stats.retried == 0

    def test_one_record_error_does_not_stop_cycle(self, engine, make_record):
        first = make_record(id="a")
        second = make_record(id="b")
        _run(engine.store.create(first))
        _run(engine.store.create(second))

        original = engine.executor.execute
        calls = []

        async def flaky_execute(record, lease):
            calls.append(record.id)
            if record.id == "a":
                raise RuntimeError("boom")
            return await original(record, lease)

        engine.executor.execute = flaky_execute
        stats = engine.cycle(ResourceKind.DATABASE)

        assert stats.errors == 1
        assert stats.succeeded == 1
        assert calls == ["a", "b"]
        # Failed record's lease was released
        assert engine.get("a").locked_at is None


class TestMultiInstance:
    """Two reconcilers against one store."""

    def test_lease_prevents_double_execution(self, store, clock, make_record):
        driver = ScriptedDriver()
        a = build_engine(clock=clock, driver=driver, store=store, worker_id="worker-a")
        b = build_engine(clock=clock, driver=driver, store=store, worker_id="worker-b")
        for _ in range(10):
            _run(store.create(make_record()))

        async def both():
            return await asyncio.gather(
                a.reconciler.run_cycle(ResourceKind.DATABASE),
                b.reconciler.run_cycle(ResourceKind.DATABASE),
            )

        stats_a, stats_b = _run(both())

        assert stats_a.succeeded + stats_b.succeeded == 10
        assert len(driver.calls) == 10
        assert len({rid for rid, _ in driver.calls}) == 10

    def test_crashed_worker_lease_is_reclaimed(self, engine, make_record):
        record = make_record()
        _run(engine.store.create(record))
        # Simulate a worker that claimed and died
        _run(engine.leases.try_acquire(record.id, 60))

        assert engine.cycle(ResourceKind.DATABASE).candidates == 0

        engine.clock.advance(60)
        stats = engine.cycle(ResourceKind.DATABASE)

        assert stats.succeeded == 1
        assert engine.get(record.id).phase == Phase.CREATED


class TestConvergence:
    """End-to-end convergence with the run_once trigger."""

    def test_every_kind_converges(self, engine):
        ids = {}
        for kind in ResourceKind:
            record = _run(engine.service.provision(kind, owner_key="app-1"))
            ids[kind] = record.id

        engine.converge()

        for kind, record_id in ids.items():
            status = _run(engine.service.get_status(record_id))
            assert status.converged, f"{kind.value} stuck at {status.phase.value}"

        app = engine.get(ids[ResourceKind.APPLICATION])
        assert app.phase == Phase.STARTED
        assert engine.driver.calls_for(app.id) == [Action.PROVISION, Action.START]

    def test_application_stop_then_delete(self, engine):
        app = _run(engine.service.provision(ResourceKind.APPLICATION, owner_key="app-9"))
        engine.converge()

        _run(engine.service.set_desired_state(app.id, DesiredState.STOPPED))
        engine.converge()
        assert engine.get(app.id).phase == Phase.STOPPED

        _run(engine.service.set_desired_state(app.id, DesiredState.DELETED))
        engine.converge()
        assert engine.get(app.id).phase == Phase.DELETED
        assert engine.driver.calls_for(app.id) == [
            Action.PROVISION, Action.START, Action.STOP, Action.TEARDOWN,
        ]

    def test_fails_after_exactly_max_attempts(self, clock):
        driver = ScriptedDriver(default=Outcome.retryable("backend down"))
        engine = build_engine(clock=clock, driver=driver)
        record = _run(engine.service.provision(ResourceKind.DATABASE, owner_key="app-1"))

        for _ in range(20):
            engine.cycle(ResourceKind.DATABASE)
            clock.advance(300)

        stored = engine.get(record.id)
        assert stored.phase == Phase.FAILED
        assert len(driver.calls) == 5
        assert stored.message == "retries exhausted after 5 attempts: backend down"

    def test_fatal_teardown_is_not_retried(self, engine):
        record = _run(engine.service.provision(ResourceKind.BUCKET, owner_key="app-1"))
        engine.converge()

        engine.driver.default = Outcome.fatal("bucket not empty")
        _run(engine.service.set_desired_state(record.id, DesiredState.DELETED))
        for _ in range(12):
            engine.cycle(ResourceKind.BUCKET)
            engine.clock.advance(300)

        stored = engine.get(record.id)
        assert stored.phase == Phase.DELETE_FAILED
        assert stored.message == "bucket not empty"
        assert engine.driver.calls_for(record.id).count(Action.TEARDOWN) == 1

    def test_retryable_teardown_stops_after_max_attempts(self, engine):
        record = _run(engine.service.provision(ResourceKind.DATABASE, owner_key="app-1"))
        engine.converge()

        engine.driver.default = Outcome.retryable("backend down")
        _run(engine.service.set_desired_state(record.id, DesiredState.DELETED))
        for _ in range(60):
            engine.cycle(ResourceKind.DATABASE)
            engine.clock.advance(300)

        stored = engine.get(record.id)
        assert stored.phase == Phase.DELETE_FAILED
        assert engine.driver.calls_for(record.id).count(Action.TEARDOWN) == 5
        assert stored.message == "retries exhausted after 5 attempts: backend down"

    def test_transient_failure_recovers(self, engine):
        engine.driver.script(Outcome.retryable("rate limited"), Outcome.retryable("rate limited"))
        record = _run(engine.service.provision(ResourceKind.BUCKET, owner_key="app-1"))

        for _ in range(5):
            engine.cycle(ResourceKind.BUCKET)
            engine.clock.advance(60)

        stored = engine.get(record.id)
        assert stored.phase == Phase.CREATED
        assert stored.retry_count == 0
        assert stored.message is None

    def test_failed_record_recovers_only_through_deletion(self, engine):
        engine.driver.script(Outcome.fatal("invalid spec"))
        record = _run(engine.service.provision(ResourceKind.DATABASE, owner_key="app-1"))

        engine.converge()
        assert engine.get(record.id).phase == Phase.FAILED

        _run(engine.service.set_desired_state(record.id, DesiredState.DELETED))
        engine.converge()

        stored = engine.get(record.id)
        assert stored.phase == Phase.DELETED
        assert stored.is_deleted


class TestLifecycle:
    """start/stop of the background loops."""

    def test_start_and_stop(self, engine):
        record = _run(engine.service.provision(ResourceKind.DATABASE, owner_key="app-1"))

        async def run_briefly():
            await engine.reconciler.start()
            await engine.reconciler.start()  # idempotent
            assert engine.reconciler.is_running
            for _ in range(100):
                if (await engine.store.get(record.id)).phase == Phase.CREATED:
                    break
                await asyncio.sleep(0.01)
            await engine.reconciler.stop()
            await engine.reconciler.stop()

        _run(run_briefly())

        assert not engine.reconciler.is_running
        assert engine.get(record.id).phase == Phase.CREATED
        stats = engine.reconciler.stats
        assert stats["cycles"] >= 1
        assert stats["succeeded"] >= 1
        assert stats["worker_id"] == engine.reconciler.worker_id
