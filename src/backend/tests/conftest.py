"""Shared fixtures: an in-process fake of the remote Style API."""
from __future__ import annotations

import asyncio
import json
import re
from typing import Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from style_harness.services.session_store import (
    AI_ID_KEY,
    ITERATION_KEY,
    PREFERENCE_ID_KEY,
    MemoryStore,
)
from style_harness.services.style_api import StyleApiClient
from style_harness.session.manager import SessionIterationManager

BASE_URL = "https://style.test"
ITERATION_RE = re.compile(r"^/api/preference/([^/]+)/iteration/(\d+)$")
PROFILE_RE = re.compile(r"^/api/preference/([^/]+)/profile$")

Override = Union[httpx.Response, Callable[[httpx.Request], httpx.Response], Exception]

DEFAULT_PROFILE = {
    "top_styles": {"casual": 0.8, "formal": 0.6, "sporty": 0.4},
    "selection_history": [
        {
            "image": "women/casual/img123.jpg",
            "style": "casual",
            "feedback": "Like",
            "score_change": 0.1,
            "current_score": 0.8,
            "timestamp": 1679444374,
        }
    ],
}


class FakeStyleApi:
    """
    Behaves like the documented remote API for preference "p1" / ai_id "a1".

    Set `overrides[(method, path)]` to a Response, a callable or an exception
    to replace the next answer for that exact request (consumed once).
    Set `gate` to an asyncio.Event to hold every request until it is set.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.bodies: List[Optional[dict]] = []
        self.overrides: Dict[Tuple[str, str], Override] = {}
        self.profile = dict(DEFAULT_PROFILE)
        self.gate: Optional[asyncio.Event] = None
        self.received = asyncio.Event()

    @property
    def iteration_calls(self) -> List[int]:
        calls = []
        for req in self.requests:
            m = ITERATION_RE.match(req.url.path)
            if m:
                calls.append(int(m.group(2)))
        return calls

    def last_body(self) -> Optional[dict]:
        return self.bodies[-1] if self.bodies else None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        content = await request.aread()
        self.requests.append(request)
        self.bodies.append(json.loads(content) if content else None)
        self.received.set()
        if self.gate is not None:
            await self.gate.wait()

        key = (request.method, request.url.path)
        if key in self.overrides:
            override = self.overrides.pop(key)
            if isinstance(override, Exception):
                raise override
            if callable(override):
                return override(request)
            return override

        return self._default(request, self.bodies[-1] or {})

    def _default(self, request: httpx.Request, body: dict) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path == "/api":
            return httpx.Response(200, json={"status": "ok"})

        if request.method == "POST" and path == "/api/preference":
            if not body.get("access_id") or body.get("gender") not in ("women", "men"):
                return httpx.Response(400, json={"error": "Invalid parameters"})
            return httpx.Response(200, json={"preference_id": "p1", "ai_id": "a1"})

        m = ITERATION_RE.match(path)
        if m and request.method == "POST":
            if request.headers.get("AI-ID") != "a1":
                return httpx.Response(401, json={"error": "Invalid AI ID"})
            if m.group(1) != "p1":
                return httpx.Response(404, json={"error": "Preference not found"})
            n = int(m.group(2))
            if body.get("feedback") not in ("like", "dislike"):
                return httpx.Response(400, json={"error": "Invalid parameters"})
            if n == 30:
                if not body.get("style") or not body.get("image_key"):
                    return httpx.Response(400, json={"error": "Invalid parameters"})
                return httpx.Response(200, json={"image_url": None, "iteration": 30, "completed": True})
            return httpx.Response(
                200,
                json={
                    "image_url": f"https://x/{n}.jpg",
                    "iteration": n,
                    "completed": False,
                    "style": "casual",
                    "image_key": f"women/casual/img{n}.jpg",
                },
            )

        m = PROFILE_RE.match(path)
        if m:
            if request.headers.get("AI-ID") != "a1":
                return httpx.Response(401, json={"error": "Invalid AI ID"})
            if request.method == "POST":
                return httpx.Response(200, json={"message": "Profile saved successfully"})
            return httpx.Response(200, json=self.profile)

        return httpx.Response(404, json={"error": "Not found"})


def session_store(iteration: int = 0, preference_id: str = "p1", ai_id: str = "a1") -> MemoryStore:
    return MemoryStore({
        AI_ID_KEY: ai_id,
        PREFERENCE_ID_KEY: preference_id,
        ITERATION_KEY: str(iteration),
    })


@pytest.fixture
def fake_api() -> FakeStyleApi:
    return FakeStyleApi()


@pytest.fixture
def api_client(fake_api: FakeStyleApi) -> StyleApiClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler))
    return StyleApiClient(BASE_URL, http_client=http_client)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def manager(api_client: StyleApiClient, store: MemoryStore) -> SessionIterationManager:
    return SessionIterationManager(api_client, store)


@pytest.fixture
def make_manager(api_client: StyleApiClient):
    """Build a manager whose store already holds a session at the given iteration."""

    def _make(iteration: int = 0, busy_policy: str = "queue") -> SessionIterationManager:
        return SessionIterationManager(api_client, session_store(iteration), busy_policy=busy_policy)

    return _make
