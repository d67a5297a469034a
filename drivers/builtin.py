# ============================================================================
# BUILT-IN DRIVERS
# ============================================================================
# STATUS: Core - Default driver adapters
# PURPOSE: No-op driver for development, HTTP driver for remote provisioners
# CREATED: 09 OCT 2026
# ============================================================================
"""
Built-in Drivers

- NoopDriver: reports success for every action. Used when no provisioning
  backend is configured.
- HttpDriver: forwards each action to a provisioning service over HTTP:

      POST {base_url}/{kind}/{action}
      {"record": {...}, "action": "provision"}

  The provisioner must treat repeated identical requests as no-ops.
"""

import logging
from typing import Dict, Optional

import httpx

from core.config import DriverDefaults, get_defaults
from core.contracts import Action, ResourceKind
from core.models import ResourceRecord
from .registry import DriverAdapter, Outcome, register_driver

logger = logging.getLogger(__name__)

# Status codes worth another attempt
RETRYABLE_STATUS_CODES = {408, 425, 429}


class NoopDriver(DriverAdapter):
    """Driver that succeeds without touching anything."""

    name = "noop"

    async def apply(self, record: ResourceRecord, action: Action) -> Outcome:
        logger.debug(f"noop {action.value} for {record.kind.value} {record.id}")
        return Outcome.success()


class HttpDriver(DriverAdapter):
    """Async httpx client for a remote provisioning service."""

    name = "http"

    def __init__(
        self,
        base_url: str,
        timeout: Optional[httpx.Timeout] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout or httpx.Timeout(30.0)
        self._client = client

    async def apply(self, record: ResourceRecord, action: Action) -> Outcome:
        url = f"{self._base_url}/{record.kind.value}/{action.value}"
        payload = {"record": record.model_dump(mode="json"), "action": action.value}

        try:
            if self._client is not None:
                resp = await self._client.post(url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(url, json=payload)
        except httpx.ConnectError as e:
            logger.warning(f"Provisioner unreachable at {url}: {e}")
            return Outcome.retryable(f"provisioner unreachable: {e}")
        except httpx.TimeoutException as e:
            logger.warning(f"Provisioner timeout: {url}: {e}")
            return Outcome.retryable(f"provisioner timeout: {e}")
        except httpx.HTTPError as e:
            logger.warning(f"Provisioner transport error: {url}: {e}")
            return Outcome.retryable(f"provisioner error: {e}")

        if resp.is_success:
            return Outcome.success()

        detail = self._detail(resp)
        reason = f"{action.value} rejected ({resp.status_code}): {detail}"
        if resp.status_code in RETRYABLE_STATUS_CODES or resp.status_code >= 500:
            return Outcome.retryable(reason)
        return Outcome.fatal(reason)

    @staticmethod
    def _detail(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text or resp.reason_phrase
        if isinstance(body, dict):
            return str(body.get("detail") or body.get("error") or body)
        return str(body)


def register_default_drivers(
    settings: Optional[DriverDefaults] = None,
    replace: bool = False,
) -> Dict[ResourceKind, str]:
    """
    Register one driver per kind from configuration.

    An HTTP driver is used for every kind when DRIVER_BASE_URL is set,
    otherwise the no-op driver.

    Returns:
        Mapping of kind -> driver name
    """
    settings = settings or get_defaults().drivers

    if settings.http_base_url:
        driver: DriverAdapter = HttpDriver(
            settings.http_base_url,
            timeout=httpx.Timeout(settings.http_timeout_seconds),
        )
    else:
        logger.warning("DRIVER_BASE_URL not set; all kinds use the no-op driver")
        driver = NoopDriver()

    registered = {}
    for kind in ResourceKind:
        register_driver(kind, driver, replace=replace)
        registered[kind] = driver.name
    return registered


__all__ = ["NoopDriver", "HttpDriver", "register_default_drivers", "RETRYABLE_STATUS_CODES"]
