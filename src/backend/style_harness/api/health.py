"""Health and remote API status endpoints."""
import logging

from fastapi import APIRouter, Request

from style_harness.config import settings

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
async def health_check():
    return {"status": "ok", "service": settings.app_name}


@router.get("/api/status")
async def api_status(request: Request):
    """Remote API health, per-service probes and the local session summary."""
    monitor = request.app.state.status_monitor
    manager = request.app.state.session_manager

    online, services = await monitor.check_status()
    return {
        "api_online": online,
        "services": [s.model_dump(mode="json") for s in services],
        "session": manager.current_status().model_dump(),
        "poll_interval_seconds": settings.status_poll_interval_seconds,
    }
