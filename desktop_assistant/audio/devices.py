"""
Audio devices - Microphone and speaker access.

This file defines the INTERFACE for capture and playback devices, plus the
sounddevice implementations used by the desktop client. The rest of the
audio pipeline only talks to BaseCaptureDevice / BasePlaybackDevice, so
tests (or another audio backend) can plug in their own devices.

Audio format on both sides is LINEAR16 mono (16-bit signed little-endian).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, Union

import numpy as np

try:
    import sounddevice as sd
    SOUNDDEVICE_AVAILABLE = True
except (ImportError, OSError):
    # OSError: the package is installed but the PortAudio library is missing
    SOUNDDEVICE_AVAILABLE = False

from ..config import AudioConfig
from ..utils.audio_analysis import float_to_pcm16

logger = logging.getLogger(__name__)

DeviceSelector = Optional[Union[int, str]]


class DeviceError(Exception):
    """A capture or playback device could not be opened or failed mid-stream."""


class BaseCaptureDevice(ABC):
    """
    Abstract microphone.

    open() starts delivering frames; read() returns the next frame, or None
    once the device has been closed. close() must unblock a pending read().
    """

    @abstractmethod
    def open(self, device: DeviceSelector = None) -> None:
        """Open the device. Raises DeviceError if it is unavailable."""
        pass

    @abstractmethod
    async def read(self) -> Optional[bytes]:
        """Wait for the next LINEAR16 frame (None when closed)."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the device. Must be idempotent."""
        pass


class BasePlaybackDevice(ABC):
    """
    Abstract speaker.

    write() blocks until the chunk has been handed to the hardware; it is
    always called off the event loop. abort() stops output immediately and
    may be called from the event loop while a write() is in progress.
    """

    @abstractmethod
    def write(self, chunk: bytes) -> None:
        pass

    @abstractmethod
    def abort(self) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class SoundDeviceCapture(BaseCaptureDevice):
    """
    Microphone capture through a sounddevice InputStream.

    PortAudio calls our callback from its own thread; frames are converted
    to LINEAR16 and handed over to the event loop with call_soon_threadsafe.
    """

    def __init__(self, config: Optional[AudioConfig] = None):
        self.config = config or AudioConfig()
        self._stream = None
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def open(self, device: DeviceSelector = None) -> None:
        if not SOUNDDEVICE_AVAILABLE:
            raise DeviceError("sounddevice/PortAudio is not available")

        self.close()

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def audio_callback(indata, frames, time_info, status):
            if status:
                logger.warning(f"Audio status: {status}")
            chunk = float_to_pcm16(indata[:, 0].astype(np.float32))
            try:
                loop.call_soon_threadsafe(queue.put_nowait, chunk)
            except RuntimeError:
                # Loop already closed during shutdown
                pass

        try:
            stream = sd.InputStream(
                samplerate=self.config.sample_rate_in,
                channels=self.config.channels,
                dtype=np.float32,
                blocksize=self.config.chunk_samples,
                device=device,
                callback=audio_callback,
            )
            stream.start()
        except Exception as e:
            raise DeviceError(f"Microphone unavailable: {e}") from e

        self._stream = stream
        self._queue = queue
        self._loop = loop
        logger.info(f"🎤 Audio stream started (device={device if device is not None else 'default'})")

    async def read(self) -> Optional[bytes]:
        if self._queue is None:
            return None
        return await self._queue.get()

    def close(self) -> None:
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except Exception as e:
                logger.debug(f"Input stream close failed: {e}")
            self._stream = None
            logger.info("🎤 Audio stream stopped")

        if self._queue is not None:
            # Wake up a pending read()
            self._queue.put_nowait(None)
            self._queue = None


class SoundDevicePlayback(BasePlaybackDevice):
    """Speaker output through a sounddevice OutputStream, opened lazily."""

    def __init__(self, config: Optional[AudioConfig] = None):
        self.config = config or AudioConfig()
        self._stream = None

    def _ensure_stream(self):
        if not SOUNDDEVICE_AVAILABLE:
            raise DeviceError("sounddevice/PortAudio is not available")

        if self._stream is None:
            try:
                self._stream = sd.OutputStream(
                    samplerate=self.config.sample_rate_out,
                    channels=self.config.channels,
                    dtype="int16",
                    device=self.config.device,
                )
            except Exception as e:
                raise DeviceError(f"Speaker unavailable: {e}") from e

        if not self._stream.active:
            self._stream.start()
        return self._stream

    def write(self, chunk: bytes) -> None:
        usable = len(chunk) - (len(chunk) % 2)
        audio = np.frombuffer(chunk[:usable], dtype=np.int16)
        channels = self.config.channels
        audio = audio[:audio.size - audio.size % channels].reshape(-1, channels)
        if audio.size == 0:
            return
        self._ensure_stream().write(audio)

    def abort(self) -> None:
        if self._stream is not None and self._stream.active:
            try:
                self._stream.abort()
            except Exception as e:
                logger.debug(f"Stream abort failed: {e}")

    def close(self) -> None:
        if self._stream is not None:
            try:
                self._stream.close()
            except Exception as e:
                logger.debug(f"Output stream close failed: {e}")
            self._stream = None
