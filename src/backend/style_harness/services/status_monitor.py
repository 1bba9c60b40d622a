"""
Status monitor — is the remote Style API up?

Backs the status page and the online/offline indicator. Each named endpoint
is probed with a plain GET:
  - the health endpoint is operational only if it answers {"status": "ok"}
  - any other endpoint is operational if it answers below 500
    (a 404/405 still proves the service is serving requests)
  - 5xx is degraded, no answer at all is an outage
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import httpx

from style_harness.errors import RemoteApiError
from style_harness.models.schemas import ServiceState, ServiceStatus
from style_harness.services.style_api import HEALTH_PATH, StyleApiClient

logger = logging.getLogger(__name__)

# (display name, path relative to the API base URL)
DEFAULT_SERVICES: List[Tuple[str, str]] = [
    ("API", HEALTH_PATH),
    ("Documentation", "/api-docs"),
    ("Profile API", "/api/preference"),
    ("Iteration API", "/api/preference/test/iteration"),
]


class StatusMonitor:
    def __init__(self, api: StyleApiClient, services: Optional[List[Tuple[str, str]]] = None):
        self._api = api
        self._services = services if services is not None else DEFAULT_SERVICES

    async def check_health(self) -> bool:
        """True iff GET /api answers {"status": "ok"}."""
        try:
            data = await self._api.check_health()
        except RemoteApiError as e:
            logger.debug(f"Health check failed: {e}")
            return False
        return data.get("status") == "ok"

    async def check_services(self) -> List[ServiceStatus]:
        """Probe every configured endpoint concurrently, in configured order."""
        return list(await asyncio.gather(*(self._probe(name, path) for name, path in self._services)))

    async def check_status(self) -> Tuple[bool, List[ServiceStatus]]:
        """
        Online flag plus per-service probes in one pass.

        The online flag is read from the health endpoint's probe when that
        endpoint is among the configured services, so GET /api is hit once.
        """
        services = await self.check_services()
        for (_, path), status in zip(self._services, services):
            if path == HEALTH_PATH:
                return status.state == ServiceState.OPERATIONAL, services
        return await self.check_health(), services

    async def _probe(self, name: str, path: str) -> ServiceStatus:
        url = self._api.url(path)
        start = time.monotonic()
        try:
            resp = await self._api.probe(url)
        except httpx.HTTPError as e:
            logger.debug(f"Probe of {name} ({url}) failed: {e!r}")
            return ServiceStatus(
                name=name,
                url=url,
                state=ServiceState.OUTAGE,
                checked_at=datetime.now(timezone.utc),
            )
        latency_ms = int((time.monotonic() - start) * 1000)

        if path == HEALTH_PATH:
            state = ServiceState.OPERATIONAL if _reports_ok(resp) else ServiceState.DEGRADED
        elif resp.status_code < 500:
            state = ServiceState.OPERATIONAL
        else:
            state = ServiceState.DEGRADED

        return ServiceStatus(
            name=name,
            url=url,
            state=state,
            status_code=resp.status_code,
            latency_ms=latency_ms,
            checked_at=datetime.now(timezone.utc),
        )


def _reports_ok(resp: httpx.Response) -> bool:
    if not resp.is_success:
        return False
    try:
        body = resp.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("status") == "ok"
