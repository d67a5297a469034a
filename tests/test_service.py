# ============================================================================
# RESOURCE SERVICE TESTS
# ============================================================================
# STATUS: Tests - External-actor boundary
# PURPOSE: Verify provisioning, desired-state validation and status reads
# CREATED: 13 OCT 2026
# ============================================================================
"""
Resource Service Tests

Run with:
    pytest tests/test_service.py -v
"""

import asyncio

import pytest

from core.contracts import DesiredState, Phase, ResourceKind
from core.errors import InvalidDesiredState, ResourceNotFound, UnsupportedKind
from core.models import ResourceRecord
from repositories import MemoryResourceStore
from services import ResourceService


def _run(coro):
    return asyncio.run(coro)


class TestProvision:
    """ResourceService.provision."""

    def test_initial_state_per_kind(self, engine):
        db = _run(engine.service.provision(ResourceKind.DATABASE, owner_key="app-1"))
        app = _run(engine.service.provision(ResourceKind.APPLICATION, owner_key="app-1"))

        assert (db.state, db.phase) == (DesiredState.ACTIVE, Phase.CREATING)
        assert (app.state, app.phase) == (DesiredState.RUNNING, Phase.CREATING)
        assert db.created_at == engine.clock()

    def test_application_may_start_stopped(self, engine):
        app = _run(engine.service.provision(
            ResourceKind.APPLICATION, owner_key="app-1", state=DesiredState.STOPPED,
        ))
        assert app.state == DesiredState.STOPPED

    def test_disallowed_initial_state(self, engine):
        with pytest.raises(InvalidDesiredState):
            _run(engine.service.provision(
                ResourceKind.DATABASE, owner_key="app-1", state=DesiredState.RUNNING,
            ))
        with pytest.raises(InvalidDesiredState):
            _run(engine.service.provision(
                ResourceKind.DATABASE, owner_key="app-1", state=DesiredState.DELETED,
            ))

    def test_idempotency_key_returns_same_record(self, engine):
        first = _run(engine.service.provision(
            ResourceKind.BUCKET, owner_key="app-1", idempotency_key="req-1",
        ))
        second = _run(engine.service.provision(
            ResourceKind.BUCKET, owner_key="app-1", idempotency_key="req-1",
        ))

        assert first.id == second.id
        assert len(engine.store) == 1

    def test_concurrent_create_with_same_key_returns_winner(self, engine):
        class RacingStore(MemoryResourceStore):
            """A concurrent caller inserts the same id right after the existence check."""

            def __init__(self):
                super().__init__()
                self.winner = None

            async def get(self, record_id):
                found = await super().get(record_id)
                if found is None and self.winner is None:
                    self.winner = ResourceRecord(
                        id=record_id,
                        kind=ResourceKind.BUCKET,
                        owner_key="app-1",
                        spec={"name": "winner"},
                    )
                    await super().create(self.winner)
                return found

        store = RacingStore()
        service = ResourceService(store, engine.executor.kinds, clock=engine.clock)

        record = _run(service.provision(
            ResourceKind.BUCKET, owner_key="app-1", spec={"name": "loser"},
            idempotency_key="req-1",
        ))

        assert record.id == store.winner.id
        assert record.spec == {"name": "winner"}
        assert len(store) == 1

    def test_get_or_create_reports_existing(self, engine, make_record):
        record = make_record()

        stored, created = _run(engine.store.get_or_create(record))
        duplicate = record.model_copy(update={"message": "x"})
        again, created_again = _run(engine.store.get_or_create(duplicate))

        assert created is True
        assert stored.id == record.id
        assert created_again is False
        assert again.message is None

    def test_missing_parent(self, engine):
        with pytest.raises(ResourceNotFound):
            _run(engine.service.provision(
                ResourceKind.BUCKET_DOMAIN, owner_key="app-1", parent_id="nope",
            ))

    def test_unsupported_kind(self, engine):
        service = ResourceService(engine.store, kinds={}, clock=engine.clock)
        with pytest.raises(UnsupportedKind):
            _run(service.provision(ResourceKind.DATABASE, owner_key="app-1"))


class TestSetDesiredState:
    """ResourceService.set_desired_state."""

    def test_change_state(self, engine):
        app = _run(engine.service.provision(ResourceKind.APPLICATION, owner_key="app-1"))
        engine.clock.advance(10)

        updated = _run(engine.service.set_desired_state(app.id, DesiredState.STOPPED))

        assert updated.state == DesiredState.STOPPED
        assert updated.updated_at == engine.clock()
        assert updated.phase == Phase.CREATING

    def test_missing_record(self, engine):
        with pytest.raises(ResourceNotFound):
            _run(engine.service.set_desired_state("missing", DesiredState.DELETED))

    def test_state_not_allowed_for_kind(self, engine):
        db = _run(engine.service.provision(ResourceKind.DATABASE, owner_key="app-1"))
        with pytest.raises(InvalidDesiredState):
            _run(engine.service.set_desired_state(db.id, DesiredState.STOPPED))

    def test_deletion_is_sticky(self, engine):
        db = _run(engine.service.provision(ResourceKind.DATABASE, owner_key="app-1"))
        _run(engine.service.set_desired_state(db.id, DesiredState.DELETED))

        with pytest.raises(InvalidDesiredState, match="cannot be withdrawn"):
            _run(engine.service.set_desired_state(db.id, DesiredState.ACTIVE))
        assert engine.get(db.id).state == DesiredState.DELETED

    def test_repeated_delete_is_noop(self, engine):
        db = _run(engine.service.provision(ResourceKind.DATABASE, owner_key="app-1"))
        _run(engine.service.set_desired_state(db.id, DesiredState.DELETED))

        again = _run(engine.service.set_desired_state(db.id, DesiredState.DELETED))
        assert again.state == DesiredState.DELETED

    def test_delete_propagates_immediately(self, engine):
        app = _run(engine.service.provision(ResourceKind.APPLICATION, owner_key="app-1"))
        db = _run(engine.service.provision(ResourceKind.DATABASE, owner_key="app-1"))

        _run(engine.service.set_desired_state(app.id, DesiredState.DELETED))

        assert engine.get(db.id).state == DesiredState.DELETED

    def test_write_never_touches_phase_or_lease(self, engine):
        db = _run(engine.service.provision(ResourceKind.DATABASE, owner_key="app-1"))
        lease = _run(engine.leases.try_acquire(db.id, 60))

        _run(engine.service.set_desired_state(db.id, DesiredState.DELETED))

        stored = engine.get(db.id)
        assert stored.locked_at == lease.token
        assert stored.phase == Phase.CREATING


class TestStatus:
    """Status reads."""

    def test_get_status_reports_convergence(self, engine):
        db = _run(engine.service.provision(ResourceKind.DATABASE, owner_key="app-1"))
        assert _run(engine.service.get_status(db.id)).converged is False

        engine.converge()

        status = _run(engine.service.get_status(db.id))
        assert status.converged is True
        assert status.phase == Phase.CREATED

    def test_get_status_missing(self, engine):
        with pytest.raises(ResourceNotFound):
            _run(engine.service.get_status("missing"))

    def test_list_status_by_owner_and_kind(self, engine):
        _run(engine.service.provision(ResourceKind.DATABASE, owner_key="app-1"))
        _run(engine.service.provision(ResourceKind.BUCKET, owner_key="app-1"))
        _run(engine.service.provision(ResourceKind.BUCKET, owner_key="app-2"))

        assert len(_run(engine.service.list_status("app-1"))) == 2
        buckets = _run(engine.service.list_status("app-1", ResourceKind.BUCKET))
        assert [s.kind for s in buckets] == [ResourceKind.BUCKET]
