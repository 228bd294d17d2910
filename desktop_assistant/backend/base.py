"""
Base module for the Conversation Backend.

This file defines the INTERFACE every assistant backend must implement.
The session only ever talks to BaseConversationBackend and TurnHandle, so
a backend can be swapped (local LLM, cloud assistant SDK, test fake)
without touching the conversation logic.

A turn works like this:
1. start_turn() opens a turn and returns a TurnHandle
2. For audio turns, the session streams microphone chunks with send_audio()
   and calls end_audio() when no more audio will come
3. The handle emits events (transcription, audio, response, ended, ...)
   until the turn is over
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class ResponsePayload:
    """
    Structured response returned by the backend.

    Attributes:
        text: The primary bare-text answer, if the response has one
        suggestions: Follow-up chips, each {"label": ..., "follow_up_query": ...}
        raw: Backend-specific data (e.g. screen markup), kept opaque
    """
    text: Optional[str] = None
    suggestions: list[dict] = field(default_factory=list)
    raw: Any = None


# ==================== Events ====================

@dataclass
class Transcription:
    """Live transcription of what the user is saying."""
    text: str
    is_final: bool = False


@dataclass
class AudioChunk:
    """Synthesized speech from the assistant (LINEAR16)."""
    data: bytes


@dataclass
class EndOfUtterance:
    """The backend decided the user has finished speaking."""


@dataclass
class ResponseReceived:
    """The structured response for this turn."""
    payload: ResponsePayload


@dataclass
class DeviceAction:
    """A device action request; opaque to the core."""
    action: Any


@dataclass
class Ended:
    """
    The turn is over.

    Attributes:
        error: Error description if the turn ended abnormally
        continue_expected: The assistant expects an immediate follow-up
    """
    error: Optional[str] = None
    continue_expected: bool = False


@dataclass
class BackendError:
    """A backend failure. code/message are mapped by the error classifier."""
    code: int
    message: str


BackendEvent = Union[
    Transcription, AudioChunk, EndOfUtterance, ResponseReceived,
    DeviceAction, Ended, BackendError,
]


# ==================== Interfaces ====================

class TurnHandle(ABC):
    """One in-flight turn with the backend."""

    @abstractmethod
    async def send_audio(self, chunk: bytes) -> None:
        """Stream a LINEAR16 microphone chunk to the backend."""
        pass

    @abstractmethod
    async def end_audio(self) -> None:
        """Signal that no more audio will be sent for this turn."""
        pass

    @abstractmethod
    def cancel(self) -> None:
        """Abandon the turn. Idempotent; events may stop at any point."""
        pass

    @abstractmethod
    def events(self) -> AsyncIterator[BackendEvent]:
        """
        Iterate over the events of this turn, in arrival order.

        The iteration finishes after Ended / BackendError or on cancel().
        """
        pass


class BaseConversationBackend(ABC):
    """
    Abstract base class for all conversation backends.

    Example:
        class MyBackend(BaseConversationBackend):
            async def start_turn(self, is_text_query, text=None, new_conversation=False):
                handle = QueuedTurnHandle()
                ...
                return handle
    """

    # False for backends that only answer typed queries
    supports_audio: bool = True

    @abstractmethod
    async def start_turn(
        self,
        is_text_query: bool,
        text: Optional[str] = None,
        new_conversation: bool = False,
    ) -> TurnHandle:
        """
        Open a new turn.

        Args:
            is_text_query: True for a typed query (no audio will be sent)
            text: The query text for text turns
            new_conversation: Forget previous context before this turn

        Returns:
            TurnHandle for streaming audio and receiving events
        """
        pass

    async def close(self):
        """Release backend resources."""
        pass


class QueuedTurnHandle(TurnHandle):
    """
    TurnHandle backed by an asyncio.Queue.

    Backends push events with emit(); events() yields them in order and
    stops after a terminal event (Ended / BackendError) or cancel().
    Audio sent by the session is collected in `audio_sent`.
    """

    _CLOSED = object()

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self.audio_sent: list[bytes] = []
        self.audio_ended = False
        self.cancelled = False

    def emit(self, event: BackendEvent):
        if not self.cancelled:
            self._queue.put_nowait(event)

    async def send_audio(self, chunk: bytes) -> None:
        if self.audio_ended or self.cancelled:
            return
        self.audio_sent.append(chunk)

    async def end_audio(self) -> None:
        self.audio_ended = True

    def cancel(self) -> None:
        if not self.cancelled:
            self.cancelled = True
            self._queue.put_nowait(self._CLOSED)

    async def events(self) -> AsyncIterator[BackendEvent]:
        while True:
            event = await self._queue.get()
            if event is self._CLOSED:
                return
            yield event
            if isinstance(event, (Ended, BackendError)):
                return
