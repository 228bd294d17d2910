"""Shared fakes: backend, audio devices and a recording presentation."""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

from desktop_assistant.assistant.session import ConversationSession
from desktop_assistant.audio import (
    AudioPipeline,
    BaseCaptureDevice,
    BasePlaybackDevice,
    DeviceError,
)
from desktop_assistant.backend import (
    BaseConversationBackend,
    Ended,
    QueuedTurnHandle,
    ResponsePayload,
    ResponseReceived,
)
from desktop_assistant.config import AssistantConfig
from desktop_assistant.presentation import BasePresentation

# 160 samples of a constant, clearly audible level
LOUD_FRAME = (4000).to_bytes(2, "little", signed=True) * 160
SILENT_FRAME = b"\x00\x00" * 160


class FakeCaptureDevice(BaseCaptureDevice):
    """Microphone that replays `frames` on every open()."""

    def __init__(self, frames=None, fail_open: bool = False):
        self.frames = list(frames or [])
        self.fail_open = fail_open
        self.opened = 0
        self.closed = 0
        self._queue: Optional[asyncio.Queue] = None

    def open(self, device=None):
        if self.fail_open:
            raise DeviceError("No microphone found")
        self.opened += 1
        self._queue = asyncio.Queue()
        for frame in self.frames:
            self._queue.put_nowait(frame)

    async def read(self):
        if self._queue is None:
            return None
        return await self._queue.get()

    def close(self):
        self.closed += 1
        if self._queue is not None:
            self._queue.put_nowait(None)
            self._queue = None


class FakePlaybackDevice(BasePlaybackDevice):
    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.written: list[bytes] = []
        self.aborted = 0
        self.closed = False

    def write(self, chunk: bytes):
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise DeviceError("Speaker unplugged")
        self.written.append(chunk)

    def abort(self):
        self.aborted += 1

    def close(self):
        self.closed = True


class FakeBackend(BaseConversationBackend):
    """
    Backend whose turns are driven by the test.

    `script(handle, is_text_query, text)` runs at start_turn and may emit
    events right away; otherwise tests emit on `last_handle`.
    """

    def __init__(
        self,
        script: Optional[Callable] = None,
        fail_start: Optional[Exception] = None,
        supports_audio: bool = True,
        handle_factory: Callable[[], QueuedTurnHandle] = QueuedTurnHandle,
    ):
        self.script = script
        self.fail_start = fail_start
        self.supports_audio = supports_audio
        self.handle_factory = handle_factory
        self.starts: list[tuple] = []
        self.handles: list[QueuedTurnHandle] = []
        self.closed = False

    async def start_turn(self, is_text_query, text=None, new_conversation=False):
        self.starts.append((is_text_query, text, new_conversation))
        if self.fail_start is not None:
            raise self.fail_start
        handle = self.handle_factory()
        self.handles.append(handle)
        if self.script is not None:
            self.script(handle, is_text_query, text)
        return handle

    @property
    def last_handle(self) -> QueuedTurnHandle:
        return self.handles[-1]

    async def close(self):
        self.closed = True


class FailingSendHandle(QueuedTurnHandle):
    """Turn handle whose uplink breaks on the first audio chunk."""

    def __init__(self, error: Exception):
        super().__init__()
        self.error = error

    async def send_audio(self, chunk: bytes):
        raise self.error


def answer_with(text: str, suggestions=None, continue_expected: bool = False):
    """Script that answers every turn immediately."""
    def script(handle, is_text_query, query):
        handle.emit(ResponseReceived(ResponsePayload(text=text, suggestions=suggestions or [])))
        handle.emit(Ended(continue_expected=continue_expected))
    return script


def echo_script(handle, is_text_query, query):
    handle.emit(ResponseReceived(ResponsePayload(text=f"You said: {query}")))
    handle.emit(Ended())


class RecordingPresentation(BasePresentation):
    def __init__(self):
        self.calls: list[tuple] = []

    def status_changed(self, state):
        self.calls.append(("status", state))

    def transcription_update(self, text, is_final):
        self.calls.append(("transcription", text, is_final))

    def result_ready(self, result, suggestions, query=None):
        self.calls.append(("result", result, suggestions, query))

    def amplitude_update(self, sample):
        self.calls.append(("amplitude", sample))

    def error_raised(self, category, detail):
        self.calls.append(("error", category, detail))

    def history_changed(self, head, length):
        self.calls.append(("history", head, length))

    def of(self, kind: str) -> list[tuple]:
        return [call[1:] for call in self.calls if call[0] == kind]

    @property
    def states(self):
        return [args[0] for args in self.of("status")]

    @property
    def results(self):
        return [args[0] for args in self.of("result")]

    @property
    def errors(self):
        return [args[0] for args in self.of("error")]


@dataclass
class Rig:
    session: ConversationSession
    backend: FakeBackend
    capture: FakeCaptureDevice
    playback: FakePlaybackDevice
    presentation: RecordingPresentation


def make_rig(
    script: Optional[Callable] = None,
    frames=None,
    config: Optional[AssistantConfig] = None,
    fail_open: bool = False,
    fail_playback: bool = False,
    backend: Optional[FakeBackend] = None,
) -> Rig:
    """Build a session on fakes. Call from inside the running loop."""
    backend = backend or FakeBackend(script)
    capture = FakeCaptureDevice(frames, fail_open=fail_open)
    playback = FakePlaybackDevice(fail=fail_playback)
    presentation = RecordingPresentation()
    # Pings would show up among the written chunks; tests opt in
    config = config or AssistantConfig(enable_ping_sound=False)
    audio = AudioPipeline(capture, playback, config.audio)
    session = ConversationSession(backend, audio, presentation, config)
    return Rig(session, backend, capture, playback, presentation)


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0):
    """Poll until predicate() is true."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.005)


async def settle(rounds: int = 20):
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
