"""
History Navigator - Back/forward browsing over completed turns.

The log is append-only; `head` points at the turn currently on screen.
Transient screens (settings, error dialogs) use the overlay slot instead
of a history entry, so they never show up when going back and forth.
"""

import logging
from typing import Iterator, Optional

from .errors import InvalidState, NoSuchEntry, OverlayAlreadyActive
from .state import Turn

logger = logging.getLogger(__name__)


class HistoryNavigator:
    """
    Ordered log of committed turns plus a cursor.

    Invariants:
        -1 <= head <= len(self) - 1
        head == len(self) - 1 right after commit()
    """

    def __init__(self):
        self._turns: list[Turn] = []
        self._head = -1
        # Head to restore when the overlay is dismissed; None = no overlay
        self._overlay_head: Optional[int] = None

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)

    @property
    def head(self) -> int:
        return self._head

    @property
    def current(self) -> Optional[Turn]:
        return self._turns[self._head] if self._head >= 0 else None

    @property
    def overlay_active(self) -> bool:
        return self._overlay_head is not None

    @property
    def can_go_previous(self) -> bool:
        return not self.overlay_active and self._head > 0

    @property
    def can_go_next(self) -> bool:
        return not self.overlay_active and self._head < len(self._turns) - 1

    def commit(self, turn: Turn) -> int:
        """Append a finished turn and make it current. Returns its index."""
        if self.overlay_active:
            raise InvalidState("Cannot commit while an overlay is active")

        turn.freeze()
        self._turns.append(turn)
        self._head = len(self._turns) - 1
        logger.debug(f"History commit #{self._head}: {turn.query!r}")
        return self._head

    def seek(self, index: int) -> Turn:
        """Move the cursor to `index` and return that turn."""
        if self.overlay_active:
            raise InvalidState("Cannot navigate history while an overlay is active")
        if not 0 <= index < len(self._turns):
            raise NoSuchEntry(f"No history entry at index {index} (length {len(self._turns)})")

        self._head = index
        return self._turns[index]

    def previous(self) -> Turn:
        if self.overlay_active:
            raise InvalidState("Cannot navigate history while an overlay is active")
        if self._head <= 0:
            raise NoSuchEntry("Already at the oldest entry")
        return self.seek(self._head - 1)

    def next(self) -> Turn:
        if self.overlay_active:
            raise InvalidState("Cannot navigate history while an overlay is active")
        if self._head >= len(self._turns) - 1:
            raise NoSuchEntry("Already at the newest entry")
        return self.seek(self._head + 1)

    def push_overlay(self):
        """Show a transient screen; remembers the cursor."""
        if self.overlay_active:
            raise OverlayAlreadyActive("An overlay is already active")
        self._overlay_head = self._head

    def pop_overlay(self) -> int:
        """Dismiss the transient screen and restore the cursor."""
        if not self.overlay_active:
            raise InvalidState("No overlay is active")
        self._head = self._overlay_head
        self._overlay_head = None
        return self._head

    def clear(self):
        self._turns.clear()
        self._head = -1
        self._overlay_head = None
