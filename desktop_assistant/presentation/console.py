"""
Console presentation - Shows the conversation in a terminal.

Used by the command-line client. Results are printed as simple cards,
the microphone level as a bar that redraws in place.
"""

import logging
import sys
from typing import Optional, TextIO

from ..assistant.classifier import (
    ClassifiedResult,
    Generic,
    PlainText,
    SearchResult,
    Suggestion,
    VideoResult,
)
from ..assistant.errors import ErrorCategory, Recovery
from ..assistant.state import SessionState
from .base import BasePresentation

logger = logging.getLogger(__name__)

STATUS_LINES = {
    SessionState.IDLE: "Hi! How can I help?",
    SessionState.STARTING: "Starting...",
    SessionState.LISTENING: "Listening...",
    SessionState.PROCESSING: "Loading results...",
}

RECOVERY_HINTS = {
    Recovery.RETRY: "Type /retry to try again.",
    Recovery.OPEN_SETTINGS: "Check your credentials in the settings.",
    Recovery.RELAUNCH: "Relaunch the assistant.",
    Recovery.NONE: "Text queries still work.",
}

METER_WIDTH = 20


class ConsolePresentation(BasePresentation):
    """Prints session events to a text stream (stdout by default)."""

    def __init__(self, out: Optional[TextIO] = None):
        self.out = out or sys.stdout
        self._meter_visible = False

    def _print(self, text: str = ""):
        if self._meter_visible:
            self.out.write("\n")
            self._meter_visible = False
        self.out.write(text + "\n")
        self.out.flush()

    def status_changed(self, state: SessionState) -> None:
        line = STATUS_LINES.get(state)
        if line:
            self._print(f"… {line}")

    def transcription_update(self, text: str, is_final: bool) -> None:
        if is_final:
            self._print(f"👤 {text}")

    def amplitude_update(self, sample: float) -> None:
        filled = int(round(sample * METER_WIDTH))
        self.out.write(f"\r🎤 [{'#' * filled}{' ' * (METER_WIDTH - filled)}]")
        self.out.flush()
        self._meter_visible = True

    def result_ready(
        self,
        result: ClassifiedResult,
        suggestions: list[Suggestion],
        query: Optional[str] = None,
    ) -> None:
        self._print()
        if query:
            self._print(f"== {query} ==")
        self._print(self.format_result(result))

        if suggestions:
            chips = "  ".join(f"[{i + 1}] {s.label}" for i, s in enumerate(suggestions))
            self._print(f"💡 {chips}")
        else:
            self._print("💡 No Suggestions.")

    def error_raised(self, category: ErrorCategory, detail: str) -> None:
        self._print()
        self._print(f"⚠️  {category.title}")
        self._print(f"   Error: {detail}")
        self._print(f"   {RECOVERY_HINTS[category.recovery]}")

    def history_changed(self, head: int, length: int) -> None:
        logger.debug(f"History {head + 1}/{length}")

    @staticmethod
    def format_result(result: ClassifiedResult) -> str:
        """Render a classified result as plain text."""
        if isinstance(result, VideoResult):
            lines = [f"▶ {result.title}", f"  {result.channel}", f"  {result.url}"]
            if result.thumbnail_url:
                lines.append(f"  🖼 {result.thumbnail_url}")
            if result.description:
                lines.append(f"  {result.description}")
            return "\n".join(lines)

        if isinstance(result, SearchResult):
            lines = [f"🔎 {result.title}", f"  {result.attribution} - {result.source}"]
            if result.snippet:
                lines.append(f"  {result.snippet}")
            return "\n".join(lines)

        if isinstance(result, PlainText):
            return f"🤖 {result.body}"

        if isinstance(result, Generic):
            return "🤖 (response has no text to show)"

        return repr(result)
