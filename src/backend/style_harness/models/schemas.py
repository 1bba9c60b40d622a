"""
Domain models for the Style Preference harness.

These Pydantic models describe what flows between the remote Style API,
the session manager and the tester surfaces.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

MAX_ITERATIONS = 30


# ──────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────

class Gender(str, Enum):
    WOMEN = "women"
    MEN = "men"


class Feedback(str, Enum):
    LIKE = "like"
    DISLIKE = "dislike"


class ServiceState(str, Enum):
    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    OUTAGE = "outage"


# ──────────────────────────────────────────────
# Session Models
# ──────────────────────────────────────────────

class SessionCredentials(BaseModel):
    """Identifiers issued by the remote API when a preference session is created."""
    preference_id: str = Field(..., description="Session id, sent in the URL path")
    ai_id: str = Field(..., description="Identity token, sent as the AI-ID header")


class SessionStatus(BaseModel):
    authenticated: bool
    current_iteration: int = Field(0, ge=0, le=MAX_ITERATIONS)
    complete: bool = False


class IterationResult(BaseModel):
    """Outcome of one advance call, as reported by the server."""
    image_url: Optional[str] = None
    iteration: int = Field(..., ge=1, le=MAX_ITERATIONS)
    completed: bool = False
    style: Optional[str] = None
    image_key: Optional[str] = None
    requested_iteration: int = Field(..., ge=1, le=MAX_ITERATIONS)

    @property
    def drifted(self) -> bool:
        """True when the server reported a different iteration than the one requested."""
        return self.iteration != self.requested_iteration


# ──────────────────────────────────────────────
# Profile Models
# ──────────────────────────────────────────────

class SelectionRecord(BaseModel):
    image: Optional[str] = None
    style: Optional[str] = None
    feedback: Optional[str] = None
    score_change: Optional[float] = None
    current_score: Optional[float] = None
    timestamp: Optional[Union[int, float, str]] = None


class Profile(BaseModel):
    """Read-only snapshot of the server-side preference profile."""
    top_styles: Dict[str, float] = Field(default_factory=dict)
    selection_history: List[SelectionRecord] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "Profile":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.top_styles and not self.selection_history


# ──────────────────────────────────────────────
# Status Models
# ──────────────────────────────────────────────

class ServiceStatus(BaseModel):
    name: str
    url: str
    state: ServiceState
    status_code: Optional[int] = None
    latency_ms: Optional[int] = None
    checked_at: datetime


# ──────────────────────────────────────────────
# Tester API request bodies
# ──────────────────────────────────────────────

class CreateSessionRequest(BaseModel):
    access_id: str = Field(..., description="Access id issued by the API owner")
    gender: str = Field(Gender.WOMEN.value, description="'women' or 'men'")


class AdvanceRequest(BaseModel):
    feedback: Optional[str] = Field(None, description="'like' or 'dislike'; placeholder 'dislike' when omitted")
    style: Optional[str] = Field(None, description="Required for iteration 30")
    image_key: Optional[str] = Field(None, description="Required for iteration 30")

    @field_validator("feedback", mode="before")
    @classmethod
    def _normalise_feedback(cls, v):
        return v.strip().lower() if isinstance(v, str) else v
