"""
Audio Module - Microphone capture and response playback.
"""

from .devices import (
    BaseCaptureDevice,
    BasePlaybackDevice,
    DeviceError,
    SOUNDDEVICE_AVAILABLE,
    SoundDeviceCapture,
    SoundDevicePlayback,
)
from .capture import AmplitudeSlot, CaptureState, MicrophoneCapture
from .playback import AudioPlayer
from .pipeline import AudioPipeline, create_audio_pipeline

__all__ = [
    "BaseCaptureDevice",
    "BasePlaybackDevice",
    "DeviceError",
    "SOUNDDEVICE_AVAILABLE",
    "SoundDeviceCapture",
    "SoundDevicePlayback",
    "AmplitudeSlot",
    "CaptureState",
    "MicrophoneCapture",
    "AudioPlayer",
    "AudioPipeline",
    "create_audio_pipeline",
]
