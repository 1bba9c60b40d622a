"""
Typed errors raised by the harness core.

Every error carries enough context (HTTP status, target iteration) for a UI
to let the user retry the exact same logical step.
"""
from __future__ import annotations

from typing import Optional


class StyleHarnessError(Exception):
    """Base class for all harness errors."""


class AuthenticationError(StyleHarnessError):
    """The operation needs a session that does not exist, or creating one failed."""

    def __init__(self, message: str = "not authenticated", status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidArgumentError(StyleHarnessError, ValueError):
    """A local precondition was violated. Nothing was sent to the network."""


class RemoteApiError(StyleHarnessError):
    """The remote API rejected a call or could not be reached (status_code is None then)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"HTTP {self.status_code}: {self.message}"


class IterationAdvanceError(RemoteApiError):
    """The server rejected (or never answered) an advance request."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        target_iteration: Optional[int] = None,
    ):
        super().__init__(message, status_code)
        self.target_iteration = target_iteration

    def __str__(self) -> str:
        base = super().__str__()
        if self.target_iteration is None:
            return base
        return f"{base} (iteration {self.target_iteration})"


class ProfileFetchError(RemoteApiError):
    """Profile could not be fetched or had an unrecognized shape."""


class SequenceCompleteError(StyleHarnessError):
    """All 30 iterations are done; there is nothing left to request."""

    def __init__(self, current_iteration: int):
        super().__init__(f"sequence already complete at iteration {current_iteration}")
        self.current_iteration = current_iteration


class SessionBusyError(StyleHarnessError):
    """Another mutating session operation is still in flight."""

    def __init__(self, operation: str):
        super().__init__(f"session busy: cannot {operation} while another operation is in flight")
        self.operation = operation
