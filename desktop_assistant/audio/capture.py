"""
Microphone Capture - Restartable stream of audio chunks.

Every call to start() opens the device and returns a fresh async stream of
(chunk, amplitude) pairs. stop() closes the device and ends the stream; it
is idempotent and safe to call when capture was never started.

Features:
- One amplitude sample per chunk for the level meter
- Single-slot amplitude buffer (newest overwrites oldest)
- Device failures surface as DeviceError
"""

import logging
from enum import Enum
from typing import AsyncIterator, Optional

from ..config import AudioConfig
from ..utils.audio_analysis import chunk_amplitude
from .devices import BaseCaptureDevice

logger = logging.getLogger(__name__)


class CaptureState(Enum):
    """Microphone state."""
    STOPPED = "stopped"
    CAPTURING = "capturing"


class AmplitudeSlot:
    """
    Single-slot buffer for the latest amplitude sample.

    The presentation layer can poll it at its own pace; a missed sample
    is simply overwritten by the next one.
    """

    def __init__(self):
        self._value: Optional[float] = None
        self.dropped = 0

    def put(self, sample: float):
        if self._value is not None:
            self.dropped += 1
        self._value = sample

    def take(self) -> Optional[float]:
        """Return and clear the pending sample, if any."""
        value, self._value = self._value, None
        return value

    def peek(self) -> Optional[float]:
        return self._value

    def clear(self):
        self._value = None


class MicrophoneCapture:
    """
    Capture side of the audio pipeline.

    Usage:
        capture = MicrophoneCapture(SoundDeviceCapture(config), config)
        async for chunk, amplitude in capture.start():
            await handle.send_audio(chunk)
        # ... from elsewhere ...
        capture.stop()
    """

    def __init__(
        self,
        device: BaseCaptureDevice,
        config: Optional[AudioConfig] = None,
        amplitude: Optional[AmplitudeSlot] = None,
    ):
        self.device = device
        self.config = config or AudioConfig()
        self.amplitude = amplitude or AmplitudeSlot()

        self._state = CaptureState.STOPPED
        # Bumped on every start() so an old stream can never yield again
        self._epoch = 0

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_capturing(self) -> bool:
        return self._state == CaptureState.CAPTURING

    def start(self) -> AsyncIterator[tuple[bytes, float]]:
        """
        Open the microphone and return a fresh chunk stream.

        Raises:
            DeviceError: if the device cannot be opened
        """
        self.stop()

        self._epoch += 1
        self.device.open(self.config.device)
        self._state = CaptureState.CAPTURING
        self.amplitude.clear()

        logger.info("🎤 Capture started")
        return self._stream(self._epoch)

    def stop(self):
        """Stop capture. Idempotent."""
        if self._state == CaptureState.STOPPED:
            return

        self._state = CaptureState.STOPPED
        self._epoch += 1
        try:
            self.device.close()
        except Exception as e:
            logger.warning(f"Capture device close failed: {e}")
        logger.info("🎤 Capture stopped")

    async def _stream(self, epoch: int):
        chunks = 0
        while self._epoch == epoch:
            frame = await self.device.read()
            if frame is None or self._epoch != epoch:
                break

            amplitude = chunk_amplitude(
                frame,
                normalize_divisor=self.config.amplitude_divisor,
                threshold=self.config.amplitude_threshold,
            )
            self.amplitude.put(amplitude)
            chunks += 1
            yield frame, amplitude

        logger.debug(f"Capture stream #{epoch} finished after {chunks} chunks")
