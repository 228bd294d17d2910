"""
Error taxonomy of the conversation core.

Two kinds of errors live here:
- Exceptions raised synchronously to the caller (AlreadyInProgress,
  history navigation errors)
- ErrorCategory, the closed classification of backend and device failures
  that the session reports to the presentation layer
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

# Status codes reported by assistant backends
UNKNOWN = 2
DEADLINE_EXCEEDED = 4
PERMISSION_DENIED = 7
UNAVAILABLE = 14
UNAUTHENTICATED = 16

MISSING_TOKEN_MESSAGE = "No access or refresh token is set"


class AssistantError(Exception):
    """Base class for conversation core exceptions."""


class AlreadyInProgress(AssistantError):
    """A new turn was requested while another one is still active."""


class InvalidState(AssistantError):
    """The operation is not allowed in the current state."""


class NoSuchEntry(AssistantError):
    """History navigation went past the first or last entry."""


class OverlayAlreadyActive(AssistantError):
    """A transient screen is already shown; overlays do not nest."""


class Recovery(Enum):
    """What the user can do about an error."""
    NONE = "none"
    RETRY = "retry"
    OPEN_SETTINGS = "open-settings"
    RELAUNCH = "relaunch"


class ErrorCategory(Enum):
    """Closed classification of failures reported to the presentation."""
    DEVICE_ERROR = "device-error"
    BACKEND_OFFLINE = "backend-offline"
    AUTH_INVALID = "auth-invalid"
    BACKEND_UNEXPECTED = "backend-unexpected"

    @property
    def recovery(self) -> Recovery:
        return _RECOVERY[self]

    @property
    def title(self) -> str:
        return _TITLES[self]


_RECOVERY = {
    ErrorCategory.DEVICE_ERROR: Recovery.NONE,
    ErrorCategory.BACKEND_OFFLINE: Recovery.RETRY,
    ErrorCategory.AUTH_INVALID: Recovery.OPEN_SETTINGS,
    ErrorCategory.BACKEND_UNEXPECTED: Recovery.RELAUNCH,
}

_TITLES = {
    ErrorCategory.DEVICE_ERROR: "Microphone unavailable",
    ErrorCategory.BACKEND_OFFLINE: "You are Offline!",
    ErrorCategory.AUTH_INVALID: "Invalid Tokens!",
    ErrorCategory.BACKEND_UNEXPECTED: "Unexpected Exception Occured",
}


@dataclass(frozen=True)
class ErrorReport:
    """A categorized failure as handed to the presentation layer."""
    category: ErrorCategory
    detail: str
    code: Optional[int] = None


def classify_backend_error(code: Optional[int], message: Optional[str]) -> ErrorCategory:
    """
    Map a backend error code/message to an ErrorCategory.

    UNAVAILABLE is normally a connectivity problem, except when the auth
    library reports that it has no tokens to send.
    """
    message = message or ""

    if code == UNAVAILABLE and MISSING_TOKEN_MESSAGE.lower() in message.lower():
        return ErrorCategory.AUTH_INVALID
    if code in (UNAUTHENTICATED, PERMISSION_DENIED):
        return ErrorCategory.AUTH_INVALID
    if code in (UNAVAILABLE, DEADLINE_EXCEEDED):
        return ErrorCategory.BACKEND_OFFLINE
    return ErrorCategory.BACKEND_UNEXPECTED


def exception_status_code(exc: BaseException) -> int:
    """
    Status code for an exception raised by a backend or its transport.

    Exceptions that carry an integer `code` keep it. Timeouts count as
    DEADLINE_EXCEEDED and connection failures as UNAVAILABLE, so a backend
    that cannot be reached is reported as offline.
    """
    code = getattr(exc, "code", None)
    if isinstance(code, int) and not isinstance(code, bool):
        return code
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return DEADLINE_EXCEEDED
    if isinstance(exc, (httpx.TransportError, ConnectionError, OSError)):
        return UNAVAILABLE
    return UNKNOWN
