"""Integration tests for the tester backend endpoints.

The remote Style API is the in-process fake from conftest; the app talks to
it through an injected SessionIterationManager.
"""
import httpx
import pytest

from style_harness.main import create_app
from style_harness.services.session_store import MemoryStore
from style_harness.services.status_monitor import StatusMonitor
from style_harness.session.manager import SessionIterationManager

from conftest import session_store


@pytest.fixture
def build_client(api_client):
    def _build(store=None, busy_policy="queue") -> httpx.AsyncClient:
        manager = SessionIterationManager(api_client, store or MemoryStore(), busy_policy=busy_policy)
        app = create_app(manager=manager, monitor=StatusMonitor(api_client))
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")

    return _build


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, build_client):
        async with build_client() as client:
            resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_status_page(self, build_client, fake_api):
        async with build_client(session_store(iteration=4)) as client:
            resp = await client.get("/api/status")

        body = resp.json()
        assert resp.status_code == 200
        assert body["api_online"] is True
        assert [s["name"] for s in body["services"]] == ["API", "Documentation", "Profile API", "Iteration API"]
        assert body["session"] == {"authenticated": True, "current_iteration": 4, "complete": False}
        assert [r.url.path for r in fake_api.requests].count("/api") == 1


class TestSessionFlow:

    @pytest.mark.asyncio
    async def test_login_bootstrap_and_advance(self, build_client, fake_api):
        async with build_client() as client:
            resp = await client.post("/api/session", json={"access_id": "user1", "gender": "women"})
            assert resp.status_code == 200
            assert resp.json()["preference_id"] == "p1"
            assert resp.json()["ai_id"] == "a1"
            assert resp.json()["status"]["current_iteration"] == 0

            resp = await client.post("/api/session/bootstrap")
            assert resp.status_code == 200
            assert resp.json()["iteration"] == 1
            assert resp.json()["drifted"] is False

            resp = await client.post("/api/session/iterations", json={"feedback": "Like"})
            assert resp.status_code == 200
            assert resp.json()["iteration"] == 2
            assert resp.json()["style"] == "casual"

            resp = await client.get("/api/session")
            assert resp.json()["status"]["current_iteration"] == 2
            assert resp.json()["credentials"] == {"preference_id": "p1", "ai_id": "a1"}

        assert fake_api.iteration_calls == [1, 2]
        assert fake_api.bodies[-1] == {"feedback": "like"}

    @pytest.mark.asyncio
    async def test_invalid_login_is_400(self, build_client, fake_api):
        async with build_client() as client:
            resp = await client.post("/api/session", json={"access_id": "", "gender": "women"})
        assert resp.status_code == 400
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_advance_without_session_is_401(self, build_client):
        async with build_client() as client:
            resp = await client.post("/api/session/iterations", json={"feedback": "like"})
        assert resp.status_code == 401
        assert resp.json()["error"] == "not authenticated"

    @pytest.mark.asyncio
    async def test_remote_rejection_is_502_with_retry_context(self, build_client, fake_api):
        fake_api.overrides[("POST", "/api/preference/p1/iteration/6")] = httpx.Response(
            400, json={"error": "Invalid parameters"},
        )
        async with build_client(session_store(iteration=5)) as client:
            resp = await client.post("/api/session/iterations", json={"feedback": "dislike"})

        assert resp.status_code == 502
        assert resp.json() == {"error": "Invalid parameters", "status_code": 400, "target_iteration": 6}

    @pytest.mark.asyncio
    async def test_terminal_without_style_is_400(self, build_client, fake_api):
        async with build_client(session_store(iteration=29)) as client:
            resp = await client.post("/api/session/iterations", json={"feedback": "like"})
        assert resp.status_code == 400
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_complete_sequence_is_409(self, build_client):
        async with build_client(session_store(iteration=30)) as client:
            resp = await client.post("/api/session/iterations", json={"feedback": "like"})
        assert resp.status_code == 409
        assert resp.json()["current_iteration"] == 30

    @pytest.mark.asyncio
    async def test_logout(self, build_client):
        store = session_store(iteration=3)
        async with build_client(store) as client:
            resp = await client.delete("/api/session")
            assert resp.json()["status"]["authenticated"] is False
            resp = await client.get("/api/session/profile")
            assert resp.status_code == 401
        assert store.snapshot() == {}


class TestProfileEndpoints:

    @pytest.mark.asyncio
    async def test_get_profile(self, build_client):
        async with build_client(session_store(iteration=30)) as client:
            resp = await client.get("/api/session/profile")
        assert resp.status_code == 200
        assert resp.json()["top_styles"]["casual"] == 0.8
        assert resp.json()["selection_history"][0]["style"] == "casual"

    @pytest.mark.asyncio
    async def test_profile_not_ready_is_empty(self, build_client, fake_api):
        fake_api.overrides[("GET", "/api/preference/p1/profile")] = httpx.Response(400, json={"error": "not ready"})
        async with build_client(session_store(iteration=2)) as client:
            resp = await client.get("/api/session/profile")
        assert resp.status_code == 200
        assert resp.json() == {"top_styles": {}, "selection_history": []}

    @pytest.mark.asyncio
    async def test_profile_chart_has_every_category(self, build_client, fake_api):
        fake_api.profile = {"top_styles": {"Glam": 0.9}, "selection_history": []}
        async with build_client(session_store(iteration=30)) as client:
            resp = await client.get("/api/session/profile/chart")
        assert resp.status_code == 200
        scores = resp.json()["scores"]
        assert len(scores) == 9
        assert scores["Glam"] == 0.9
        assert scores["Streetstyle"] == 0.0

    @pytest.mark.asyncio
    async def test_save_profile(self, build_client):
        async with build_client(session_store(iteration=30)) as client:
            resp = await client.post("/api/session/profile")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Profile saved successfully"}
