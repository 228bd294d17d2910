"""
Conversation Session - Drives one assistant turn at a time.

This module owns the turn lifecycle:

    IDLE → STARTING → LISTENING → PROCESSING → RESPONDING → ENDED → IDLE
                        (audio)                              ↘ STARTING (follow-up)
    STARTING / LISTENING / PROCESSING / RESPONDING → ERROR → IDLE

Everything that happens asynchronously (backend events, playback drain,
device failures) is delivered into one queue as (generation, event) and
handled by a single control loop. The generation identifies the turn an
event belongs to: events from an abandoned turn are dropped on delivery
and again before handling, so a late backend reply can never touch the
state of a newer turn.

Features:
- Text and voice turns, one at a time (AlreadyInProgress otherwise)
- Microphone streaming with level meter updates
- Streaming playback of the assistant's voice
- Response classification and history commit
- Automatic mic reopening when the assistant expects an answer
- Error categorization, user-initiated retry
- History browsing and transient overlays (settings, error screens)
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Optional, Union

from ..audio.devices import DeviceError
from ..audio.pipeline import AudioPipeline
from ..backend.base import (
    AudioChunk,
    BackendError,
    BaseConversationBackend,
    DeviceAction,
    EndOfUtterance,
    Ended,
    ResponseReceived,
    Transcription,
    TurnHandle,
)
from ..config import AssistantConfig
from ..presentation.base import BasePresentation
from .classifier import Suggestion, classify, extract_suggestions
from .errors import (
    AlreadyInProgress,
    ErrorCategory,
    ErrorReport,
    InvalidState,
    classify_backend_error,
    exception_status_code,
)
from .history import HistoryNavigator
from .state import TRANSITIONS, SessionState, Turn

logger = logging.getLogger(__name__)


@dataclass
class PlaybackDrained:
    """Internal event: everything queued for playback has been played."""


@dataclass
class DeviceFailure:
    """Internal event: the microphone or speaker failed mid-turn."""
    detail: str
    playback: bool = False


class ConversationSession:
    """
    The single owner of conversation state.

    Usage:
        async with ConversationSession(backend, audio, presentation) as session:
            await session.begin_turn("what's the weather?")   # text turn
            await session.wait_until_idle()
            await session.begin_turn()                        # voice turn
    """

    def __init__(
        self,
        backend: BaseConversationBackend,
        audio: Optional[AudioPipeline] = None,
        presentation: Optional[BasePresentation] = None,
        config: Optional[AssistantConfig] = None,
        history: Optional[HistoryNavigator] = None,
    ):
        self.backend = backend
        self.audio = audio
        self.presentation = presentation or BasePresentation()
        self.history = history or HistoryNavigator()
        self._config = config or AssistantConfig()
        self._pending_config: Optional[AssistantConfig] = None

        # State
        self._state = SessionState.IDLE
        self._idle = asyncio.Event()
        self._idle.set()
        self._turn: Optional[Turn] = None
        self._handle: Optional[TurnHandle] = None
        self._ended: Optional[Ended] = None
        self._last_query: Optional[str] = None
        self._last_error: Optional[ErrorReport] = None
        self._mic_disabled = audio is None
        self._output_disabled = False

        # Generations: the counter goes up on every begin_turn, cancel and
        # failure. Events older than the current turn's floor are stale.
        self._generation = 0
        self._floor = 0

        # Event channel + control loop
        self._events: asyncio.Queue = asyncio.Queue()
        self._loop_task: Optional[asyncio.Task] = None
        self._capture_task: Optional[asyncio.Task] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._amplitude_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

        if self.audio is not None:
            self.audio.playback.on_error = self._on_playback_error

        logger.info("ConversationSession initialized")

    # ==================== Properties ====================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def config(self) -> AssistantConfig:
        return self._config

    @property
    def current_turn(self) -> Optional[Turn]:
        return self._turn

    @property
    def current_query(self) -> Optional[str]:
        """The query of the active turn, or the last query asked."""
        if self._turn is not None and self._turn.query:
            return self._turn.query
        return self._last_query

    @property
    def last_error(self) -> Optional[ErrorReport]:
        return self._last_error

    @property
    def microphone_available(self) -> bool:
        return not self._mic_disabled

    # ==================== Lifecycle ====================

    def start(self):
        """Start the control loop on the running event loop."""
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.get_running_loop().create_task(self.run())

    async def run(self):
        """Control loop: handle delivered events one at a time, in order."""
        while True:
            generation, event = await self._events.get()
            if not self._is_current(generation):
                logger.debug(f"Dropping stale {type(event).__name__} (generation {generation})")
                continue
            try:
                await self._handle_event(event)
            except Exception as e:
                logger.error(f"Session error while handling {type(event).__name__}: {e}", exc_info=True)
                await self._fail(ErrorCategory.BACKEND_UNEXPECTED, str(e))

    async def close(self):
        """Abandon the current turn and stop the control loop."""
        self._bump_generation(new_floor=True)
        self._stop_turn_io()
        if self.audio is not None:
            self.audio.close()

        tasks = list(self._tasks)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        logger.info("ConversationSession closed")

    async def __aenter__(self) -> "ConversationSession":
        self.start()
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def wait_until_idle(self, timeout: Optional[float] = None):
        await asyncio.wait_for(self._idle.wait(), timeout)

    # ==================== User intents ====================

    async def begin_turn(self, query: Optional[str] = None) -> Optional[Turn]:
        """
        Start a new turn.

        Args:
            query: Typed query for a text turn; None to listen on the mic

        Returns:
            The new Turn, or None if it could not start (the failure has
            been reported to the presentation)

        Raises:
            AlreadyInProgress: if a turn is active
            InvalidState: for a voice turn on a backend that only takes text
        """
        if self._state is not SessionState.IDLE:
            raise AlreadyInProgress(f"A turn is already in progress ({self._state.value})")
        if query is None and not self.backend.supports_audio:
            raise InvalidState(
                f"{type(self.backend).__name__} does not accept voice queries; type your question"
            )
        return await self._start_turn(query)

    async def cancel_listening(self) -> bool:
        """
        Stop listening (user tapped the mic).

        Audio already sent stays sent; the backend answers based on it.
        Returns False if the session was not listening.
        """
        if self._state is not SessionState.LISTENING:
            return False

        # Late microphone chunks belong to the old generation; the turn
        # itself moves to the new one so its response is still accepted.
        self._bump_generation()
        self._turn.generation = self._generation
        logger.info("🎤 Listening cancelled by user")
        self._ping("stop")
        await self._finish_listening()
        return True

    async def retry(self) -> Optional[Turn]:
        """Ask the last query again as a text turn."""
        query = self.current_query
        if not query:
            logger.warning("Nothing to retry")
            return None
        logger.info(f"🔁 Retrying: {query}")
        return await self.begin_turn(query)

    async def follow_up(self, suggestion: Union[Suggestion, int]) -> Optional[Turn]:
        """Ask a suggestion's follow-up query (Suggestion or index into the current one)."""
        if isinstance(suggestion, int):
            current = self.history.current
            if current is None or not 0 <= suggestion < len(current.suggestions):
                raise IndexError(f"No suggestion #{suggestion}")
            suggestion = current.suggestions[suggestion]
        return await self.begin_turn(suggestion.follow_up_query)

    async def previous(self) -> Turn:
        """Show the previous result (dismisses an overlay first)."""
        if self.history.overlay_active:
            return await self.dismiss_overlay()
        turn = self.history.previous()
        await self._replay(turn)
        return turn

    async def next(self) -> Turn:
        """Show the next result (dismisses an overlay first)."""
        if self.history.overlay_active:
            return await self.dismiss_overlay()
        turn = self.history.next()
        await self._replay(turn)
        return turn

    async def seek(self, index: int) -> Turn:
        turn = self.history.seek(index)
        await self._replay(turn)
        return turn

    async def open_settings(self):
        """Show the settings screen as an overlay (no history entry)."""
        self.history.push_overlay()
        await self._notify("history_changed", self.history.head, len(self.history))

    async def dismiss_overlay(self) -> Optional[Turn]:
        """Close the settings/error screen and go back to where we were."""
        self.history.pop_overlay()
        turn = self.history.current
        if turn is not None:
            await self._replay(turn)
        else:
            await self._notify("history_changed", self.history.head, len(self.history))
        return turn

    def update_config(self, config: AssistantConfig):
        """Stage new settings; they take effect at the next turn."""
        self._pending_config = config
        logger.info("Settings updated (applied at next turn)")

    def enable_microphone(self):
        """The microphone is available again; re-allow voice turns."""
        if self.audio is not None:
            self._mic_disabled = False

    # ==================== Turn start ====================

    async def _start_turn(self, query: Optional[str]) -> Optional[Turn]:
        is_text = query is not None

        if not is_text and self._mic_disabled:
            logger.warning("Voice turn requested but the microphone is disabled")
            if self._state is SessionState.ENDED:
                await self._set_state(SessionState.IDLE)
            await self._notify("error_raised", ErrorCategory.DEVICE_ERROR, "The microphone is not available")
            return None

        if self._pending_config is not None:
            self._config, self._pending_config = self._pending_config, None

        self._bump_generation(new_floor=True)
        self._stop_turn_io()
        if self.audio is not None:
            self.audio.playback.reset()

        turn = Turn(query=query, generation=self._generation, is_text_query=is_text)
        self._turn = turn
        self._ended = None
        if is_text:
            self._last_query = query

        await self._set_state(SessionState.STARTING)
        logger.info(f"💬 Turn #{turn.generation} started ({'text' if is_text else 'voice'})")

        try:
            handle = await self.backend.start_turn(
                is_text,
                query,
                new_conversation=self._config.force_new_conversation,
            )
        except Exception as e:
            logger.error(f"Backend failed to start turn: {e}")
            code = exception_status_code(e)
            await self._fail(classify_backend_error(code, str(e)), str(e), code)
            return None

        if turn is not self._turn:
            # Superseded while the backend was starting
            handle.cancel()
            return None

        self._handle = handle

        if is_text:
            await self._set_state(SessionState.PROCESSING)
        else:
            try:
                stream = self.audio.capture.start()
            except DeviceError as e:
                logger.error(f"❌ Microphone unavailable: {e}")
                self._mic_disabled = True
                await self._fail(ErrorCategory.DEVICE_ERROR, str(e))
                return None

            await self._set_state(SessionState.LISTENING)
            self._ping("start")
            self._capture_task = self._spawn(self._forward_capture(turn.generation, handle, stream))

        # Events are only consumed once the turn is past STARTING
        self._pump_task = self._spawn(self._pump_backend(turn, handle))
        return turn

    # ==================== Producers ====================

    async def _pump_backend(self, turn: Turn, handle: TurnHandle):
        """Forward backend events into the control loop."""
        try:
            async for event in handle.events():
                # Read the generation per event: cancel_listening moves the turn
                self._deliver(turn.generation, event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Backend stream error: {e}")
            self._deliver(turn.generation, BackendError(code=exception_status_code(e), message=str(e)))

    async def _forward_capture(self, generation: int, handle: TurnHandle, stream):
        """Send microphone chunks to the backend while this generation is current."""
        sent = 0
        try:
            while True:
                # Only a failing microphone counts as a device failure
                try:
                    chunk, amplitude = await stream.__anext__()
                except StopAsyncIteration:
                    break
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Capture error: {e}")
                    self._deliver(generation, DeviceFailure(detail=str(e)))
                    break

                if generation != self._generation:
                    break

                try:
                    await handle.send_audio(chunk)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Sending audio to the backend failed: {e}")
                    self._deliver(generation, BackendError(code=exception_status_code(e), message=str(e)))
                    break

                sent += 1
                self._push_amplitude(amplitude)
        finally:
            logger.debug(f"🎤 Forwarded {sent} chunks (generation {generation})")

    def _deliver(self, generation: int, event):
        if not self._is_current(generation):
            logger.debug(f"Dropping stale {type(event).__name__} on delivery (generation {generation})")
            return
        self._events.put_nowait((generation, event))

    def _on_playback_error(self, error: Exception):
        self._deliver(self._generation, DeviceFailure(detail=str(error), playback=True))

    # ==================== Event handling ====================

    async def _handle_event(self, event):
        if isinstance(event, Transcription):
            await self._on_transcription(event)
        elif isinstance(event, AudioChunk):
            self._on_audio_chunk(event)
        elif isinstance(event, EndOfUtterance):
            if self._state is SessionState.LISTENING:
                await self._finish_listening()
        elif isinstance(event, ResponseReceived):
            await self._on_response(event)
        elif isinstance(event, DeviceAction):
            logger.info(f"Device action (ignored): {event.action}")
        elif isinstance(event, Ended):
            await self._on_ended(event)
        elif isinstance(event, BackendError):
            logger.error(f"❌ Backend error {event.code}: {event.message}")
            category = classify_backend_error(event.code, event.message)
            await self._fail(category, event.message, event.code)
        elif isinstance(event, PlaybackDrained):
            await self._on_playback_drained()
        elif isinstance(event, DeviceFailure):
            await self._on_device_failure(event)
        else:
            logger.warning(f"Unknown event: {event!r}")

    async def _on_transcription(self, event: Transcription):
        await self._notify("transcription_update", event.text, event.is_final)
        turn = self._turn
        if event.is_final and event.text.strip() and turn is not None and not turn.committed:
            turn.query = event.text.strip()
            self._last_query = turn.query
            logger.info(f"📝 Transcription: {turn.query}")
            if not turn.is_text_query:
                self._ping("success")

    def _on_audio_chunk(self, event: AudioChunk):
        if self.audio is None or self._output_disabled or not self._config.enable_audio_output:
            return
        self.audio.playback.enqueue(event.data)

    async def _finish_listening(self):
        if self.audio is not None:
            self.audio.capture.stop()
        if self._handle is not None:
            self._spawn(self._handle.end_audio())
        await self._set_state(SessionState.PROCESSING)

    async def _on_response(self, event: ResponseReceived):
        if self._state is SessionState.LISTENING:
            await self._finish_listening()
        if self._state is not SessionState.PROCESSING:
            logger.warning(f"Ignoring response in state {self._state.value}")
            return

        turn = self._turn
        payload = event.payload
        turn.response_payload = payload
        turn.classification = classify(payload)
        turn.suggestions = extract_suggestions(payload)

        await self._set_state(SessionState.RESPONDING)
        await self._notify("result_ready", turn.classification, turn.suggestions, turn.query)

        # A fresh result replaces any transient screen
        if self.history.overlay_active:
            self.history.pop_overlay()
        self.history.commit(turn)
        await self._notify("history_changed", self.history.head, len(self.history))

    async def _on_ended(self, event: Ended):
        if event.error:
            await self._fail(ErrorCategory.BACKEND_UNEXPECTED, event.error)
            return

        self._ended = event
        if self._state is SessionState.LISTENING:
            await self._finish_listening()

        if self.audio is None:
            await self._finish_turn()
            return

        turn = self._turn
        self.audio.playback.on_idle(lambda: self._deliver(turn.generation, PlaybackDrained()))

    async def _on_playback_drained(self):
        if self._ended is None:
            return
        await self._finish_turn()

    async def _finish_turn(self):
        ended = self._ended
        await self._set_state(SessionState.ENDED)
        self._handle = None
        logger.info("✅ Conversation turn complete")

        reopen = (
            ended is not None
            and ended.continue_expected
            and self._config.enable_mic_on_continuous_conversation
            and not self._mic_disabled
            and self.backend.supports_audio
        )
        if reopen:
            logger.info("🔁 Assistant expects a follow-up, reopening the mic")
            await self._start_turn(None)
        else:
            await self._set_state(SessionState.IDLE)

    async def _on_device_failure(self, event: DeviceFailure):
        if event.playback:
            # Keep the turn going without sound
            self._output_disabled = True
            logger.error(f"❌ Speaker failure, audio output disabled: {event.detail}")
            await self._notify("error_raised", ErrorCategory.DEVICE_ERROR, event.detail)
            return

        self._mic_disabled = True
        await self._fail(ErrorCategory.DEVICE_ERROR, event.detail)

    # ==================== Failure ====================

    async def _fail(self, category: ErrorCategory, detail: str, code: Optional[int] = None):
        """Report a failure once and go back to IDLE."""
        self._bump_generation(new_floor=True)
        self._stop_turn_io()

        if SessionState.ERROR in TRANSITIONS[self._state]:
            await self._set_state(SessionState.ERROR)

        self._last_error = ErrorReport(category=category, detail=detail, code=code)
        logger.error(f"❌ {category.value}: {detail}")

        # The error screen is transient: it must not become a history entry
        if not self.history.overlay_active:
            self.history.push_overlay()
        await self._notify("error_raised", category, detail)
        await self._notify("history_changed", self.history.head, len(self.history))

        if self._state is not SessionState.IDLE:
            await self._set_state(SessionState.IDLE)

    # ==================== Helpers ====================

    def _is_current(self, generation: int) -> bool:
        return generation >= self._floor

    def _bump_generation(self, new_floor: bool = False):
        self._generation += 1
        if new_floor:
            self._floor = self._generation

    def _stop_turn_io(self):
        """Fire-and-forget stop of everything the previous turn started."""
        if self.audio is not None:
            self.audio.stop()
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        for task in (self._capture_task, self._pump_task):
            if task is not None and not task.done():
                task.cancel()
        self._capture_task = None
        self._pump_task = None

    async def _set_state(self, new_state: SessionState):
        """Set state and notify the presentation."""
        old_state = self._state
        if new_state is old_state:
            return
        if new_state not in TRANSITIONS[old_state]:
            raise InvalidState(f"Invalid transition {old_state.value} → {new_state.value}")

        self._state = new_state
        logger.info(f"Session state: {old_state.value} → {new_state.value}")

        if new_state is SessionState.IDLE:
            self._idle.set()
        else:
            self._idle.clear()

        await self._notify("status_changed", new_state)

    async def _replay(self, turn: Turn):
        """Show a turn from history again (never re-committed)."""
        await self._notify("result_ready", turn.classification, turn.suggestions, turn.query)
        await self._notify("history_changed", self.history.head, len(self.history))

    async def _notify(self, hook: str, *args):
        """Call a presentation hook, awaiting if async."""
        callback = getattr(self.presentation, hook)
        try:
            if inspect.iscoroutinefunction(callback):
                await callback(*args)
            else:
                callback(*args)
        except Exception as e:
            logger.error(f"Presentation error in {hook}: {e}")

    def _ping(self, kind: str):
        if self.audio is None or self._output_disabled or not self._config.enable_ping_sound:
            return
        self.audio.play_ping(kind)

    def _push_amplitude(self, sample: float):
        """Level meter side channel: never blocks, skips samples if busy."""
        callback = self.presentation.amplitude_update
        try:
            if inspect.iscoroutinefunction(callback):
                if self._amplitude_task is None or self._amplitude_task.done():
                    self._amplitude_task = self._spawn(callback(sample))
            else:
                callback(sample)
        except Exception as e:
            logger.debug(f"Amplitude update failed: {e}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background task failed: {task.exception()}")
