# ============================================================================
# DRIVER TESTS
# ============================================================================
# STATUS: Tests - Driver registry and HTTP driver
# PURPOSE: Verify registration rules and HTTP response classification
# CREATED: 14 OCT 2026
# ============================================================================
"""
Driver Tests

HTTP traffic goes through httpx.MockTransport; nothing leaves the process.

Run with:
    pytest tests/test_drivers.py -v
"""

import asyncio
import json

import httpx
import pytest

from core.config import DriverDefaults
from core.contracts import Action, OutcomeStatus, ResourceKind
from drivers import (
    DriverNotFoundError,
    DuplicateDriverError,
    HttpDriver,
    NoopDriver,
    Outcome,
    get_driver,
    get_driver_or_raise,
    list_drivers,
    register_default_drivers,
    register_driver,
)


def _run(coro):
    return asyncio.run(coro)


# ============================================================================
# REGISTRY
# ============================================================================

class TestRegistry:
    """register_driver / get_driver."""

    def test_register_and_get(self):
        driver = NoopDriver()
        register_driver(ResourceKind.BUCKET, driver)

        assert get_driver(ResourceKind.BUCKET) is driver
        assert get_driver(ResourceKind.DATABASE) is None
        assert list_drivers()[0]["driver"] == "noop"

    def test_duplicate_rejected_unless_replace(self):
        register_driver(ResourceKind.BUCKET, NoopDriver())
        with pytest.raises(DuplicateDriverError):
            register_driver(ResourceKind.BUCKET, NoopDriver())

        replacement = NoopDriver()
        register_driver(ResourceKind.BUCKET, replacement, replace=True)
        assert get_driver(ResourceKind.BUCKET) is replacement

    def test_missing_driver_raises(self):
        with pytest.raises(DriverNotFoundError):
            get_driver_or_raise(ResourceKind.CHARGE_ORDER)

    def test_default_drivers_without_url_are_noop(self):
        registered = register_default_drivers(DriverDefaults(http_base_url=""))

        assert set(registered) == set(ResourceKind)
        assert set(registered.values()) == {"noop"}

    def test_default_drivers_with_url_are_http(self):
        registered = register_default_drivers(DriverDefaults(http_base_url="http://prov:9000"))

        assert set(registered.values()) == {"http"}
        assert isinstance(get_driver(ResourceKind.DATABASE), HttpDriver)

    def test_noop_driver_succeeds(self, make_record):
        outcome = _run(NoopDriver().apply(make_record(), Action.TEARDOWN))
        assert outcome == Outcome.success()


# ============================================================================
# HTTP DRIVER
# ============================================================================

def _driver(handler):
    transport = httpx.MockTransport(handler)
    return HttpDriver("http://prov:9000/", client=httpx.AsyncClient(transport=transport))


class TestHttpDriver:
    """HttpDriver.apply classification."""

    def test_posts_record_to_kind_action_url(self, make_record):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        record = make_record(spec={"engine": "postgres"})
        outcome = _run(_driver(handler).apply(record, Action.PROVISION))

        assert outcome.is_success
        assert seen["url"] == "http://prov:9000/database/provision"
        assert seen["body"]["action"] == "provision"
        assert seen["body"]["record"]["id"] == record.id
        assert seen["body"]["record"]["spec"] == {"engine": "postgres"}

    @pytest.mark.parametrize("code", [408, 429, 500, 503])
    def test_retryable_status_codes(self, make_record, code):
        driver = _driver(lambda request: httpx.Response(code, json={"detail": "try later"}))

        outcome = _run(driver.apply(make_record(), Action.PROVISION))

        assert outcome.status == OutcomeStatus.RETRYABLE
        assert outcome.reason == f"provision rejected ({code}): try later"

    def test_client_error_is_fatal(self, make_record):
        driver = _driver(lambda request: httpx.Response(400, json={"error": "bad bucket name"}))

        outcome = _run(driver.apply(make_record(kind=ResourceKind.BUCKET), Action.PROVISION))

        assert outcome.status == OutcomeStatus.FATAL
        assert outcome.reason == "provision rejected (400): bad bucket name"

    def test_plain_text_detail(self, make_record):
        driver = _driver(lambda request: httpx.Response(422, text="spec invalid"))

        outcome = _run(driver.apply(make_record(), Action.TEARDOWN))

        assert outcome.reason == "teardown rejected (422): spec invalid"

    def test_connect_error_is_retryable(self, make_record):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        outcome = _run(_driver(handler).apply(make_record(), Action.PROVISION))

        assert outcome.status == OutcomeStatus.RETRYABLE
        assert "unreachable" in outcome.reason

    def test_timeout_is_retryable(self, make_record):
        def handler(request):
            raise httpx.ReadTimeout("Read timed out", request=request)

        outcome = _run(_driver(handler).apply(make_record(), Action.PROVISION))

        assert outcome.status == OutcomeStatus.RETRYABLE
        assert "timeout" in outcome.reason
