"""
Streaming playback of the assistant's voice.

Chunks are played in FIFO order as soon as they arrive; there is no
wait-for-the-whole-response buffering. Writes to the device run in the
default executor so the event loop never blocks on audio hardware.
"""

import asyncio
import logging
from collections import deque
from typing import Callable, Optional

from ..utils.audio_analysis import calculate_audio_duration_ms
from .devices import BasePlaybackDevice

logger = logging.getLogger(__name__)


class AudioPlayer:
    """
    FIFO audio player with stop and idle notification.

    - enqueue(chunk): queue audio; playback starts immediately
    - stop(): halt now and drop everything queued; later enqueues are
      ignored until reset() (the turn has moved on)
    - on_idle(callback): called exactly once when the queue is drained
      and nothing is playing
    """

    def __init__(self, device: BasePlaybackDevice, sample_rate: int = 24000):
        self.device = device
        self.sample_rate = sample_rate

        self._queue: deque[bytes] = deque()
        self._playing = False
        self._stopped = False
        self._worker: Optional[asyncio.Task] = None
        self._idle_callbacks: list[Callable[[], None]] = []
        self._played_bytes = 0

        # Called with the exception when the device fails mid-stream
        self.on_error: Optional[Callable[[Exception], None]] = None

    @property
    def is_idle(self) -> bool:
        return not self._queue and not self._playing

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    @property
    def queued_chunks(self) -> int:
        return len(self._queue)

    def enqueue(self, chunk: bytes) -> bool:
        """Queue a chunk for playback. Returns False if it was dropped."""
        if self._stopped:
            logger.debug(f"Playback stopped, dropping {len(chunk)} bytes")
            return False
        if not chunk:
            return False

        self._queue.append(chunk)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._drain())
        return True

    def stop(self):
        """Stop playback immediately and clear the queue. Idempotent."""
        was_active = not self.is_idle
        self._stopped = True
        self._queue.clear()

        if was_active:
            try:
                self.device.abort()
            except Exception as e:
                logger.debug(f"Playback abort failed: {e}")
            logger.info("🔇 Playback stopped")

        if self.is_idle:
            self._notify_idle()

    def reset(self):
        """Accept audio again (called when a new turn starts)."""
        self._stopped = False
        self._played_bytes = 0

    def on_idle(self, callback: Callable[[], None]):
        """Register a one-shot callback for the next idle moment."""
        self._idle_callbacks.append(callback)
        if self.is_idle:
            asyncio.get_running_loop().call_soon(self._fire_if_idle)

    def close(self):
        self.stop()
        self._idle_callbacks.clear()
        try:
            self.device.close()
        except Exception as e:
            logger.debug(f"Playback device close failed: {e}")

    async def _drain(self):
        loop = asyncio.get_running_loop()

        try:
            while self._queue and not self._stopped:
                chunk = self._queue.popleft()
                self._playing = True
                try:
                    await loop.run_in_executor(None, self.device.write, chunk)
                    self._played_bytes += len(chunk)
                except Exception as e:
                    if not self._stopped:
                        logger.error(f"Playback error: {e}")
                        self._queue.clear()
                        if self.on_error:
                            self.on_error(e)
                finally:
                    self._playing = False

            if self._played_bytes:
                duration_ms = calculate_audio_duration_ms(self._played_bytes, self.sample_rate)
                logger.info(f"🔊 Playback drained ({duration_ms}ms played)")
                self._played_bytes = 0
        finally:
            # Waiters must hear about idle even if the loop above failed
            if self.is_idle:
                self._notify_idle()

    def _fire_if_idle(self):
        if self.is_idle:
            self._notify_idle()

    def _notify_idle(self):
        callbacks, self._idle_callbacks = self._idle_callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Idle callback error: {e}")
