"""
Session state and the Turn record.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .classifier import ClassifiedResult, Suggestion


class SessionState(Enum):
    """Where the current turn is in its lifecycle."""
    IDLE = "idle"
    STARTING = "starting"
    LISTENING = "listening"
    PROCESSING = "processing"
    RESPONDING = "responding"
    ENDED = "ended"
    ERROR = "error"


# Allowed transitions of the session state machine
TRANSITIONS: dict[SessionState, frozenset] = {
    SessionState.IDLE: frozenset({SessionState.STARTING}),
    SessionState.STARTING: frozenset({
        SessionState.LISTENING, SessionState.PROCESSING, SessionState.ERROR,
    }),
    SessionState.LISTENING: frozenset({
        SessionState.PROCESSING, SessionState.ENDED, SessionState.ERROR,
    }),
    SessionState.PROCESSING: frozenset({
        SessionState.RESPONDING, SessionState.ENDED, SessionState.ERROR,
    }),
    SessionState.RESPONDING: frozenset({SessionState.ENDED, SessionState.ERROR}),
    SessionState.ENDED: frozenset({SessionState.STARTING, SessionState.IDLE}),
    SessionState.ERROR: frozenset({SessionState.IDLE}),
}


@dataclass
class Turn:
    """
    One request/response exchange.

    Owned and mutated by the session while it is active. Once committed to
    history the turn is read-only.
    """
    query: Optional[str]
    generation: int
    is_text_query: bool = False
    response_payload: Any = None
    classification: Optional[ClassifiedResult] = None
    suggestions: list[Suggestion] = field(default_factory=list)
    committed: bool = False

    def __setattr__(self, name, value):
        if self.__dict__.get("committed", False):
            raise AttributeError(f"Turn is committed, cannot set {name!r}")
        super().__setattr__(name, value)

    def freeze(self):
        """Mark the turn as committed (no further changes)."""
        self.committed = True
