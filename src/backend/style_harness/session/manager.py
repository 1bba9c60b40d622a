"""
Session Iteration Manager — client-side state for one preference session.

Owns the identity token (ai_id), the session id (preference_id) and the last
iteration the server confirmed, and drives the 30-step feedback sequence:

  1. create_session()          → iteration 0
  2. bootstrap_first_image()   → iteration 1 (placeholder "dislike" feedback)
  3. advance(feedback)         → iteration k+1, repeated up to 29
  4. advance(feedback, style, image_key) → iteration 30, sequence complete

Rules that keep the counter from drifting:
  - the next request is always current_iteration + 1
  - the counter moves only after a confirmed success, and always to the
    iteration number the server reported
  - mutating calls are serialized, so two advances never compute their
    target from the same stale counter
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Union

from style_harness.errors import (
    AuthenticationError,
    InvalidArgumentError,
    IterationAdvanceError,
    ProfileFetchError,
    RemoteApiError,
    SequenceCompleteError,
    SessionBusyError,
)
from style_harness.models.schemas import (
    MAX_ITERATIONS,
    Feedback,
    Gender,
    IterationResult,
    Profile,
    SessionCredentials,
    SessionStatus,
)
from style_harness.services.profile import normalize_profile
from style_harness.services.session_store import (
    AI_ID_KEY,
    ITERATION_KEY,
    PREFERENCE_ID_KEY,
    SESSION_KEYS,
    KeyValueStore,
)
from style_harness.services.style_api import StyleApiClient

logger = logging.getLogger(__name__)

# Sent when the caller gives no feedback. The server records it as a real
# feedback event, so the first image of every session costs one "dislike".
PLACEHOLDER_FEEDBACK = Feedback.DISLIKE

BUSY_POLICIES = ("queue", "reject")


def _mask(val: Optional[str]) -> str:
    if not val:
        return "(empty)"
    if len(val) <= 8:
        return "***"
    return val[:4] + "..." + val[-4:]


def _parse_feedback(feedback: Union[Feedback, str, None]) -> Feedback:
    if feedback is None:
        return PLACEHOLDER_FEEDBACK
    if isinstance(feedback, Feedback):
        return feedback
    if isinstance(feedback, str):
        try:
            return Feedback(feedback.strip().lower())
        except ValueError:
            pass
    raise InvalidArgumentError(f"feedback must be 'like' or 'dislike', got {feedback!r}")


def _parse_gender(gender: Union[Gender, str]) -> Gender:
    if isinstance(gender, Gender):
        return gender
    if isinstance(gender, str):
        try:
            return Gender(gender.strip().lower())
        except ValueError:
            pass
    allowed = ", ".join(g.value for g in Gender)
    raise InvalidArgumentError(f"gender must be one of: {allowed}; got {gender!r}")


class SessionIterationManager:
    """
    Tracks one preference session against the remote Style API.

    Usage:
        manager = SessionIterationManager(StyleApiClient(base_url), JsonFileStore(path))
        await manager.create_session("user1", "women")
        first = await manager.bootstrap_first_image()
        step = await manager.advance("like")
        ...
        last = await manager.advance("like", style=step.style, image_key=step.image_key)
        profile = await manager.get_profile()
    """

    def __init__(
        self,
        api: StyleApiClient,
        store: KeyValueStore,
        busy_policy: str = "queue",
    ):
        if busy_policy not in BUSY_POLICIES:
            raise InvalidArgumentError(f"busy_policy must be one of {BUSY_POLICIES}, got {busy_policy!r}")
        self._api = api
        self._store = store
        self._busy_policy = busy_policy
        self._lock = asyncio.Lock()

        self._ai_id: Optional[str] = None
        self._preference_id: Optional[str] = None
        self._iteration = 0
        self._load()

    # ── State ──

    def _load(self) -> None:
        ai_id = self._store.get(AI_ID_KEY)
        preference_id = self._store.get(PREFERENCE_ID_KEY)
        raw_iteration = self._store.get(ITERATION_KEY)

        if not ai_id or not preference_id or raw_iteration is None:
            if ai_id or preference_id or raw_iteration is not None:
                logger.warning("Stored session is incomplete; starting unauthenticated")
            return

        try:
            iteration = int(raw_iteration)
        except ValueError:
            logger.warning(f"Stored iteration {raw_iteration!r} is not an integer; starting unauthenticated")
            return
        if not 0 <= iteration <= MAX_ITERATIONS:
            logger.warning(f"Stored iteration {iteration} is out of range; starting unauthenticated")
            return

        self._ai_id = ai_id
        self._preference_id = preference_id
        self._iteration = iteration
        logger.info(f"Restored session {preference_id} (ai_id {_mask(ai_id)}) at iteration {iteration}")

    def _persist(self) -> None:
        try:
            self._store.update({
                AI_ID_KEY: self._ai_id or "",
                PREFERENCE_ID_KEY: self._preference_id or "",
                ITERATION_KEY: str(self._iteration),
            })
        except OSError as e:
            # A half-written session must not be restored on the next start.
            logger.warning(f"Could not persist session state (kept in memory): {e}")
            self._clear_storage()

    def _clear_storage(self) -> None:
        for key in SESSION_KEYS:
            try:
                self._store.delete(key)
            except OSError as e:
                logger.warning(f"Could not remove {key} from session storage: {e}")

    @property
    def is_authenticated(self) -> bool:
        return self._ai_id is not None and self._preference_id is not None

    @property
    def credentials(self) -> Optional[SessionCredentials]:
        if not self.is_authenticated:
            return None
        return SessionCredentials(preference_id=self._preference_id, ai_id=self._ai_id)

    @property
    def current_iteration(self) -> int:
        return self._iteration

    def current_status(self) -> SessionStatus:
        return SessionStatus(
            authenticated=self.is_authenticated,
            current_iteration=self._iteration,
            complete=self._iteration >= MAX_ITERATIONS,
        )

    def _require_session(self) -> SessionCredentials:
        creds = self.credentials
        if creds is None:
            raise AuthenticationError("not authenticated")
        return creds

    @asynccontextmanager
    async def _exclusive(self, operation: str, always_wait: bool = False) -> AsyncIterator[None]:
        if self._busy_policy == "reject" and not always_wait and self._lock.locked():
            raise SessionBusyError(operation)
        async with self._lock:
            yield

    # ── Session lifecycle ──

    async def create_session(self, access_id: str, gender: Union[Gender, str]) -> SessionCredentials:
        """
        Create a new preference session and make it the current one.

        Any previous session is replaced without confirmation; warning the
        user about lost progress is the caller's job.
        """
        if not isinstance(access_id, str) or not access_id.strip():
            raise InvalidArgumentError("access_id is required")
        gender = _parse_gender(gender)

        async with self._exclusive("create a session"):
            try:
                data = await self._api.create_preference(access_id.strip(), gender.value)
            except RemoteApiError as e:
                raise AuthenticationError(f"authentication failed: {e.message}", status_code=e.status_code) from e

            preference_id = data.get("preference_id")
            ai_id = data.get("ai_id")
            if not isinstance(preference_id, str) or not preference_id or not isinstance(ai_id, str) or not ai_id:
                raise AuthenticationError("authentication response is missing preference_id or ai_id")

            if self.is_authenticated:
                logger.info(
                    f"Replacing session {self._preference_id} at iteration {self._iteration} "
                    f"with new session {preference_id}"
                )

            self._ai_id = ai_id
            self._preference_id = preference_id
            self._iteration = 0
            self._persist()
            logger.info(f"Created session {preference_id} (ai_id {_mask(ai_id)}, gender {gender.value})")
            return SessionCredentials(preference_id=preference_id, ai_id=ai_id)

    async def end_session(self) -> None:
        """Forget the session locally. No network call; always succeeds."""
        async with self._exclusive("end the session", always_wait=True):
            if self.is_authenticated:
                logger.info(f"Ending session {self._preference_id} at iteration {self._iteration}")
            self._ai_id = None
            self._preference_id = None
            self._iteration = 0
            self._clear_storage()

    # ── Iterations ──

    async def bootstrap_first_image(self) -> IterationResult:
        """
        Fetch the first image of a fresh session.

        The remote API only hands out images in response to feedback, so this
        sends the placeholder "dislike" for iteration 1. The server records it.
        """
        async with self._exclusive("fetch the first image"):
            self._require_session()
            if self._iteration != 0:
                raise InvalidArgumentError(
                    f"first image already fetched (current iteration {self._iteration}); use advance()"
                )
            return await self._advance_locked(None, None, None)

    async def advance(
        self,
        feedback: Union[Feedback, str, None] = None,
        style: Optional[str] = None,
        image_key: Optional[str] = None,
    ) -> IterationResult:
        """
        Submit feedback and move to the next iteration.

        Args:
            feedback: "like" or "dislike"; the placeholder "dislike" when omitted
            style: style token from the previous result, required for iteration 30
            image_key: image key from the previous result, required for iteration 30

        Returns:
            IterationResult as reported by the server. image_url is None once
            the sequence is completed.
        """
        async with self._exclusive("advance"):
            return await self._advance_locked(feedback, style, image_key)

    async def _advance_locked(
        self,
        feedback: Union[Feedback, str, None],
        style: Optional[str],
        image_key: Optional[str],
    ) -> IterationResult:
        creds = self._require_session()
        if self._iteration >= MAX_ITERATIONS:
            raise SequenceCompleteError(self._iteration)

        target = self._iteration + 1
        choice = _parse_feedback(feedback)
        if feedback is None:
            logger.info(f"No feedback given for iteration {target}; sending placeholder '{choice.value}'")

        payload: Dict[str, Any] = {"feedback": choice.value}
        if target == MAX_ITERATIONS:
            if not style or not image_key:
                raise InvalidArgumentError(
                    f"iteration {MAX_ITERATIONS} requires both style and image_key from the previous result"
                )
            payload["style"] = style
            payload["image_key"] = image_key

        try:
            data = await self._api.process_iteration(creds.preference_id, creds.ai_id, target, payload)
        except RemoteApiError as e:
            raise IterationAdvanceError(e.message, status_code=e.status_code, target_iteration=target) from e

        result = self._parse_iteration(data, target)

        if result.iteration != target:
            gap = abs(result.iteration - target)
            log = logger.error if gap > 1 else logger.warning
            log(
                f"Server reported iteration {result.iteration} for request {target} "
                f"(was at {self._iteration}); adopting server value"
            )

        self._iteration = result.iteration
        self._persist()
        logger.info(
            f"Session {creds.preference_id}: iteration {result.iteration}/{MAX_ITERATIONS} "
            f"({choice.value}){' completed' if result.completed else ''}"
        )
        return result

    def _parse_iteration(self, data: Dict[str, Any], target: int) -> IterationResult:
        iteration = data.get("iteration")
        if isinstance(iteration, bool) or not isinstance(iteration, int) or not 1 <= iteration <= MAX_ITERATIONS:
            raise IterationAdvanceError(
                f"server returned invalid iteration {iteration!r}",
                target_iteration=target,
            )

        completed = iteration >= MAX_ITERATIONS
        reported = data.get("completed")
        if isinstance(reported, bool) and reported != completed:
            logger.warning(f"Server flagged completed={reported} at iteration {iteration}; using {completed}")

        image_url = data.get("image_url")
        if image_url is None and not completed:
            logger.warning(f"Server returned no image_url for iteration {iteration}")

        return IterationResult(
            image_url=image_url if isinstance(image_url, str) else None,
            iteration=iteration,
            completed=completed,
            style=data.get("style") if isinstance(data.get("style"), str) else None,
            image_key=data.get("image_key") if isinstance(data.get("image_key"), str) else None,
            requested_iteration=target,
        )

    # ── Profile ──

    async def save_profile(self) -> str:
        """Ask the server to persist the profile. Returns the server's message."""
        creds = self._require_session()
        data = await self._api.save_profile(creds.preference_id, creds.ai_id)
        message = data.get("message") or "Profile saved successfully"
        logger.info(f"Session {creds.preference_id}: {message}")
        return str(message)

    async def fetch_profile(self) -> Profile:
        """Fetch and normalize the profile. Raises ProfileFetchError on any failure."""
        creds = self._require_session()
        try:
            payload = await self._api.get_profile(creds.preference_id, creds.ai_id)
        except RemoteApiError as e:
            raise ProfileFetchError(e.message, status_code=e.status_code) from e
        return normalize_profile(payload)

    async def get_profile(self) -> Profile:
        """
        Fetch the profile, returning an empty one when it is not available.

        A profile that is not computed yet (HTTP 400) or unreachable is an
        expected transient state early in a session.
        """
        try:
            return await self.fetch_profile()
        except ProfileFetchError as e:
            logger.warning(f"Profile unavailable, returning empty profile: {e}")
            return Profile.empty()
