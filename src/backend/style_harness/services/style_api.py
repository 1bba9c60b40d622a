"""
Style API Client — thin async wrapper over the remote Style Preference API.

Knows the URL layout, headers and payload shapes of the fixed contract:

    GET  /api                                         health check
    POST /api/preference                              create session
    POST /api/preference/{id}/iteration/{n}           advance iteration
    POST /api/preference/{id}/profile                 save profile
    GET  /api/preference/{id}/profile                 get profile

Holds no session state. Every non-success response and every transport
failure is raised as RemoteApiError; callers decide what it means.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from style_harness.errors import RemoteApiError

logger = logging.getLogger(__name__)

AI_ID_HEADER = "AI-ID"
HEALTH_PATH = "/api"
PREFERENCE_PATH = "/api/preference"


class StyleApiClient:
    """
    Async client for the Style Preference API.

    Usage:
        api = StyleApiClient("https://haider.techrealm.online")
        created = await api.create_preference("user1", "women")
        step = await api.process_iteration(created["preference_id"], created["ai_id"], 1, {"feedback": "like"})
        await api.aclose()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    # ── Contract operations ──

    async def check_health(self) -> Dict[str, Any]:
        return await self._request("GET", HEALTH_PATH)

    async def create_preference(self, access_id: str, gender: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            PREFERENCE_PATH,
            json={"access_id": access_id, "gender": gender},
        )

    async def process_iteration(
        self,
        preference_id: str,
        ai_id: str,
        iteration: int,
        payload: Dict[str, Any],
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"{PREFERENCE_PATH}/{preference_id}/iteration/{iteration}",
            ai_id=ai_id,
            json=payload,
        )

    async def save_profile(self, preference_id: str, ai_id: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"{PREFERENCE_PATH}/{preference_id}/profile",
            ai_id=ai_id,
        )

    async def get_profile(self, preference_id: str, ai_id: str) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"{PREFERENCE_PATH}/{preference_id}/profile",
            ai_id=ai_id,
        )

    async def probe(self, url: str) -> httpx.Response:
        """Plain GET used by the status monitor. Transport errors propagate as httpx errors."""
        client = await self._get_client()
        return await client.get(url, headers={"Accept": "application/json"})

    # ── Internals ──

    async def _request(
        self,
        method: str,
        path: str,
        ai_id: Optional[str] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        client = await self._get_client()
        headers = {"Accept": "application/json"}
        if ai_id is not None:
            headers[AI_ID_HEADER] = ai_id

        try:
            resp = await client.request(method, self.url(path), headers=headers, json=json)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e!r}")
            raise RemoteApiError(f"request failed: {e!r}") from e

        if not resp.is_success:
            message = _error_message(resp)
            logger.info(f"{method} {path} -> {resp.status_code} {message}")
            raise RemoteApiError(message, status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise RemoteApiError("response is not valid JSON", status_code=resp.status_code) from e
        if not isinstance(data, dict):
            raise RemoteApiError("response is not a JSON object", status_code=resp.status_code)
        return data


def _error_message(resp: httpx.Response) -> str:
    """Extract the server's {error: ...} message, falling back to the raw text."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    text = resp.text.strip()
    return text[:200] if text else f"HTTP {resp.status_code}"
