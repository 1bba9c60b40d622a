"""
Style API Tester — FastAPI Backend
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from style_harness.api import health, session
from style_harness.config import settings
from style_harness.errors import (
    AuthenticationError,
    InvalidArgumentError,
    IterationAdvanceError,
    RemoteApiError,
    SequenceCompleteError,
    SessionBusyError,
    StyleHarnessError,
)
from style_harness.services.session_store import JsonFileStore
from style_harness.services.status_monitor import StatusMonitor
from style_harness.services.style_api import StyleApiClient
from style_harness.session.manager import SessionIterationManager

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def _status_for(exc: StyleHarnessError) -> int:
    if isinstance(exc, InvalidArgumentError):
        return 400
    if isinstance(exc, AuthenticationError):
        return 401
    if isinstance(exc, (SequenceCompleteError, SessionBusyError)):
        return 409
    if isinstance(exc, RemoteApiError):
        return 502
    return 500


async def harness_error_handler(request: Request, exc: StyleHarnessError) -> JSONResponse:
    body = {"error": str(exc)}
    if isinstance(exc, (AuthenticationError, RemoteApiError)):
        body["error"] = exc.message
        body["status_code"] = exc.status_code
    if isinstance(exc, IterationAdvanceError):
        body["target_iteration"] = exc.target_iteration
    if isinstance(exc, SequenceCompleteError):
        body["current_iteration"] = exc.current_iteration
    return JSONResponse(status_code=_status_for(exc), content=body)


def create_app(
    manager: Optional[SessionIterationManager] = None,
    monitor: Optional[StatusMonitor] = None,
) -> FastAPI:
    """
    Build the app. Collaborators are created from settings unless passed in.
    """
    api_client = StyleApiClient(settings.style_api_base_url, timeout=settings.request_timeout_seconds)
    if manager is None:
        manager = SessionIterationManager(
            api_client,
            JsonFileStore(Path(settings.session_store_path)),
            busy_policy=settings.advance_busy_policy,
        )
    if monitor is None:
        monitor = StatusMonitor(api_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=== Style API Tester Starting ===")
        logger.info(f"  style_api_base_url : {settings.style_api_base_url}")
        logger.info(f"  session_store_path : {settings.session_store_path}")
        logger.info(f"  advance_busy_policy: {settings.advance_busy_policy}")
        logger.info(f"  cors_origins       : {settings.cors_origins}")
        try:
            yield
        finally:
            await api_client.aclose()

    app = FastAPI(
        title=settings.app_name,
        description="Test harness for the Style Preference API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.session_manager = manager
    app.state.status_monitor = monitor

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StyleHarnessError, harness_error_handler)

    # Routes
    app.include_router(health.router, tags=["health"])
    app.include_router(session.router, prefix="/api/session", tags=["session"])

    return app


app = create_app()
