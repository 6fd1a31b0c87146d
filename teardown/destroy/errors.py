"""Error taxonomy for the teardown engine.

Every provider failure is converted into one of these types before it reaches
a destroyer, so destroyers and the scheduler never inspect AWS error codes.
"""

from __future__ import annotations

from typing import Optional


class TeardownError(Exception):
    """Base class for engine errors."""

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code


class AuthorizationError(TeardownError):
    """Role assumption or a call was denied. The whole target is skipped."""


class ThrottlingError(TeardownError):
    """Rate limited or provider-side 5xx. The only retryable error."""


class DependencyNotReadyError(TeardownError):
    """Resource is not yet in a deletable state. Outcome is deferred."""


class NotFoundError(TeardownError):
    """Resource is already gone. Outcome is skipped."""


class OperationTimeoutError(TeardownError, TimeoutError):
    """Per-operation budget exhausted with partial progress. Outcome is deferred."""


class DestroyError(TeardownError):
    """Terminal failure for a single resource."""


class ValidationFailure(TeardownError):
    """Stragglers found after the run. Reported, never fatal."""

    def __init__(self, message: str, stragglers: Optional[list] = None) -> None:
        super().__init__(message)
        self.stragglers = stragglers or []


class CredentialsError(TeardownError):
    """Base credentials are missing or expired. Halts the run."""


class ConfirmationCancelled(TeardownError):
    """Operator did not type the confirmation phrase. Halts the run."""


class SessionRevokedError(TeardownError):
    """A client handle was used after its session was restored."""


class TrackingFileError(TeardownError):
    """The lazy-delete tracking file exists but cannot be read."""
