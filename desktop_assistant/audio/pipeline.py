"""
Audio Pipeline - Capture and playback sharing one lifecycle.

The pipeline owns the microphone capture, the response player and the
amplitude side channel. It depends on nothing else in the assistant; the
conversation session drives it.
"""

import logging
from typing import Optional

from ..config import AudioConfig
from ..utils.audio_analysis import make_tone
from .capture import AmplitudeSlot, MicrophoneCapture
from .devices import (
    BaseCaptureDevice,
    BasePlaybackDevice,
    SoundDeviceCapture,
    SoundDevicePlayback,
)
from .playback import AudioPlayer

logger = logging.getLogger(__name__)

# Feedback tones: (frequency Hz, duration ms)
PING_TONES = {
    "start": (880, 120),
    "stop": (660, 120),
    "success": (1320, 90),
}


class AudioPipeline:
    """
    Capture + playback.

    Attributes:
        capture: MicrophoneCapture (start() / stop())
        playback: AudioPlayer (enqueue() / stop() / on_idle())
        amplitude: latest microphone level, single slot
    """

    def __init__(
        self,
        capture_device: BaseCaptureDevice,
        playback_device: BasePlaybackDevice,
        config: Optional[AudioConfig] = None,
    ):
        self.config = config or AudioConfig()
        self.amplitude = AmplitudeSlot()
        self.capture = MicrophoneCapture(capture_device, self.config, self.amplitude)
        self.playback = AudioPlayer(playback_device, sample_rate=self.config.sample_rate_out)

        logger.info(
            f"AudioPipeline initialized (in={self.config.sample_rate_in}Hz, "
            f"out={self.config.sample_rate_out}Hz)"
        )

    def latest_amplitude(self) -> Optional[float]:
        """Poll the newest amplitude sample (None if nothing new)."""
        return self.amplitude.take()

    def play_ping(self, kind: str) -> bool:
        """Queue a short feedback tone on the speaker ("start", "stop", "success")."""
        if kind not in PING_TONES:
            raise ValueError(f"Unknown ping: {kind}")
        frequency, duration_ms = PING_TONES[kind]
        tone = make_tone(frequency, duration_ms, self.config.sample_rate_out)
        return self.playback.enqueue(tone)

    def stop(self):
        """Stop both capture and playback. Fire-and-forget, idempotent."""
        self.capture.stop()
        self.playback.stop()

    def close(self):
        self.capture.stop()
        self.playback.close()


def create_audio_pipeline(config: Optional[AudioConfig] = None) -> AudioPipeline:
    """Create an AudioPipeline on the default sounddevice input/output."""
    config = config or AudioConfig()
    return AudioPipeline(
        SoundDeviceCapture(config),
        SoundDevicePlayback(config),
        config,
    )
