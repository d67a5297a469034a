# ============================================================================
# API ROUTE TESTS
# ============================================================================
# STATUS: Tests - HTTP surface
# PURPOSE: Verify resource and reconciler endpoints and error mapping
# CREATED: 14 OCT 2026
# ============================================================================
"""
API Route Tests

Uses FastAPI TestClient against an in-memory engine. Convergence is
driven through POST /reconciler/run instead of the background loops.

Run with:
    pytest tests/test_routes.py -v
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.routes import router, set_services
from repositories.base import RepositoryError
from services import ResourceService


# ============================================================================
# FIXTURES
# ============================================================================

def _make_test_app(resource_service, reconciler):
    """Create a test FastAPI app with the control plane routes."""
    app = FastAPI()
    app.include_router(router, prefix="/api/v1")
    set_services(resource_service, reconciler)
    return app


@pytest.fixture
def client(engine):
    app = _make_test_app(engine.service, engine.reconciler)
    yield TestClient(app)
    set_services(None, None)


def _create(client, **body):
    body.setdefault("kind", "database")
    body.setdefault("owner_key", "app-1")
    return client.post("/api/v1/resources", json=body)


# ============================================================================
# RESOURCES
# ============================================================================

class TestCreateResource:
    """POST /resources."""

    def test_create_returns_201(self, client):
        resp = _create(client, spec={"engine": "postgres"})

        assert resp.status_code == 201
        data = resp.json()
        assert data["kind"] == "database"
        assert data["state"] == "active"
        assert data["phase"] == "creating"
        assert data["spec"] == {"engine": "postgres"}
        assert data["locked"] is False

    def test_create_idempotent(self, client):
        first = _create(client, idempotency_key="req-42").json()
        second = _create(client, idempotency_key="req-42").json()
        assert first["id"] == second["id"]

    def test_unknown_kind_is_422(self, client):
        assert _create(client, kind="mainframe").status_code == 422

    def test_unreconciled_kind_is_400(self, engine):
        service = ResourceService(engine.store, kinds={}, clock=engine.clock)
        client = TestClient(_make_test_app(service, engine.reconciler))

        assert _create(client).status_code == 400

    def test_missing_parent_is_404(self, client):
        resp = _create(client, kind="bucket_domain", parent_id="ghost")
        assert resp.status_code == 404

    def test_disallowed_state_is_409(self, client):
        resp = _create(client, state="running")
        assert resp.status_code == 409

    def test_store_failure_is_500(self, engine):
        service = MagicMock()
        service.provision = AsyncMock(side_effect=RepositoryError("connection lost"))
        client = TestClient(_make_test_app(service, engine.reconciler))

        resp = _create(client)

        assert resp.status_code == 500
        assert "connection lost" in resp.json()["detail"]


class TestReadResource:
    """GET endpoints."""

    def test_get_and_status(self, client):
        created = _create(client).json()

        resp = client.get(f"/api/v1/resources/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["owner_key"] == "app-1"

        status = client.get(f"/api/v1/resources/{created['id']}/status").json()
        assert status["converged"] is False

    def test_get_missing_is_404(self, client):
        assert client.get("/api/v1/resources/nope").status_code == 404
        assert client.get("/api/v1/resources/nope/status").status_code == 404

    def test_list_requires_owner(self, client):
        assert client.get("/api/v1/resources").status_code == 422

    def test_list_by_owner_and_kind(self, client):
        _create(client)
        _create(client, kind="bucket")
        _create(client, owner_key="app-2")

        all_app1 = client.get("/api/v1/resources", params={"owner_key": "app-1"}).json()
        buckets = client.get(
            "/api/v1/resources", params={"owner_key": "app-1", "kind": "bucket"}
        ).json()

        assert all_app1["total"] == 2
        assert buckets["total"] == 1
        assert buckets["resources"][0]["kind"] == "bucket"


class TestDesiredState:
    """PUT /resources/{id}/state and DELETE /resources/{id}."""

    def test_stop_application(self, client):
        app = _create(client, kind="application").json()

        resp = client.put(f"/api/v1/resources/{app['id']}/state", json={"state": "stopped"})

        assert resp.status_code == 200
        assert resp.json()["state"] == "stopped"

    def test_state_not_allowed_is_409(self, client):
        db = _create(client).json()
        resp = client.put(f"/api/v1/resources/{db['id']}/state", json={"state": "running"})
        assert resp.status_code == 409

    def test_delete_is_202_and_sticky(self, client):
        db = _create(client).json()

        resp = client.delete(f"/api/v1/resources/{db['id']}")
        assert resp.status_code == 202
        assert resp.json()["state"] == "deleted"

        resp = client.put(f"/api/v1/resources/{db['id']}/state", json={"state": "active"})
        assert resp.status_code == 409

    def test_missing_is_404(self, client):
        assert client.delete("/api/v1/resources/nope").status_code == 404
        resp = client.put("/api/v1/resources/nope/state", json={"state": "deleted"})
        assert resp.status_code == 404


# ============================================================================
# RECONCILER
# ============================================================================

class TestReconcilerEndpoints:
    """GET /reconciler/status and POST /reconciler/run."""

    def test_status_when_stopped(self, client):
        data = client.get("/api/v1/reconciler/status").json()

        assert data["status"] == "stopped"
        assert data["metrics"]["cycles"] == 0
        assert "database" in data["kinds"]

    def test_run_converges_resource(self, client):
        db = _create(client).json()

        resp = client.post("/api/v1/reconciler/run")

        assert resp.status_code == 200
        assert resp.json()["cycles"]["database"]["succeeded"] == 1
        status = client.get(f"/api/v1/resources/{db['id']}/status").json()
        assert status["phase"] == "created"
        assert status["converged"] is True

    def test_uninitialized_services_is_500(self):
        app = _make_test_app(None, None)
        client = TestClient(app)

        assert client.get("/api/v1/reconciler/status").status_code == 500
        assert client.get("/api/v1/resources/x").status_code == 500
