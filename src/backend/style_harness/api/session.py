"""
REST API over the session manager: authentication, iterations and profile.

Errors raised by the manager are turned into JSON responses by the handlers
registered in main.create_app().
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request

from style_harness.models.schemas import (
    AdvanceRequest,
    CreateSessionRequest,
    IterationResult,
    Profile,
)
from style_harness.services.profile import chart_scores
from style_harness.session.manager import SessionIterationManager

logger = logging.getLogger(__name__)
router = APIRouter()


def _manager(request: Request) -> SessionIterationManager:
    return request.app.state.session_manager


def _iteration_body(result: IterationResult) -> dict:
    body = result.model_dump()
    body["drifted"] = result.drifted
    return body


@router.post("")
async def create_session(body: CreateSessionRequest, request: Request):
    """Create a preference session. Replaces any session in progress."""
    manager = _manager(request)
    creds = await manager.create_session(body.access_id, body.gender)
    return {
        **creds.model_dump(),
        "status": manager.current_status().model_dump(),
    }


@router.get("")
async def get_session(request: Request):
    manager = _manager(request)
    creds = manager.credentials
    return {
        "status": manager.current_status().model_dump(),
        "credentials": creds.model_dump() if creds else None,
    }


@router.delete("")
async def end_session(request: Request):
    manager = _manager(request)
    await manager.end_session()
    return {"status": manager.current_status().model_dump()}


@router.post("/bootstrap")
async def bootstrap_first_image(request: Request):
    """Fetch the first image. Records a placeholder 'dislike' server-side."""
    result = await _manager(request).bootstrap_first_image()
    return _iteration_body(result)


@router.post("/iterations")
async def advance(body: AdvanceRequest, request: Request):
    """Submit feedback for the current image and get the next one."""
    result = await _manager(request).advance(body.feedback, body.style, body.image_key)
    return _iteration_body(result)


@router.get("/profile", response_model=Profile)
async def get_profile(request: Request):
    return await _manager(request).get_profile()


@router.get("/profile/chart")
async def get_profile_chart(request: Request):
    """Profile scores with every chart category present, for a stable chart layout."""
    profile = await _manager(request).get_profile()
    return {"scores": chart_scores(profile)}


@router.post("/profile")
async def save_profile(request: Request):
    message = await _manager(request).save_profile()
    return {"message": message}
