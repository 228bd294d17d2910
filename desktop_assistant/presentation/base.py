"""
Base module for the Presentation sink.

The conversation session pushes everything the user should see through
this interface. It is one-way: the session never reads UI state back, and
user intents come in as explicit calls on the session.

Hooks may be plain functions or coroutines. Every hook has an empty
default, so a presentation only overrides what it displays.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..assistant.classifier import ClassifiedResult, Suggestion
    from ..assistant.errors import ErrorCategory
    from ..assistant.state import SessionState


class BasePresentation:
    """
    Receiver of session events.

    Example:
        class TrayPresentation(BasePresentation):
            def status_changed(self, state):
                self.icon.set_state(state.value)
    """

    def status_changed(self, state: "SessionState") -> None:
        """The session moved to a new state."""

    def transcription_update(self, text: str, is_final: bool) -> None:
        """Live transcription of the user's query."""

    def result_ready(
        self,
        result: "ClassifiedResult",
        suggestions: list["Suggestion"],
        query: Optional[str] = None,
    ) -> None:
        """A response (new or replayed from history) should be displayed."""

    def amplitude_update(self, sample: float) -> None:
        """Microphone level in [0, 1] for the listening indicator."""

    def error_raised(self, category: "ErrorCategory", detail: str) -> None:
        """A backend or device failure occurred."""

    def history_changed(self, head: int, length: int) -> None:
        """History cursor or length changed (nav button state)."""
