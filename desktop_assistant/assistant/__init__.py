"""
Assistant Module - Conversation core.

Session state machine, response classifier and history navigation.
"""

from .classifier import (
    ClassifiedResult,
    Generic,
    PlainText,
    SearchResult,
    Suggestion,
    VideoResult,
    classify,
    extract_suggestions,
)
from .errors import (
    AlreadyInProgress,
    AssistantError,
    ErrorCategory,
    ErrorReport,
    InvalidState,
    NoSuchEntry,
    OverlayAlreadyActive,
    Recovery,
    classify_backend_error,
    exception_status_code,
)
from .history import HistoryNavigator
from .session import ConversationSession
from .state import SessionState, Turn

__all__ = [
    "ClassifiedResult",
    "Generic",
    "PlainText",
    "SearchResult",
    "Suggestion",
    "VideoResult",
    "classify",
    "extract_suggestions",
    "AlreadyInProgress",
    "AssistantError",
    "ErrorCategory",
    "ErrorReport",
    "InvalidState",
    "NoSuchEntry",
    "OverlayAlreadyActive",
    "Recovery",
    "classify_backend_error",
    "exception_status_code",
    "HistoryNavigator",
    "ConversationSession",
    "SessionState",
    "Turn",
]
