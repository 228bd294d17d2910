"""
Audio Analysis Utilities for the microphone level meter.

Provides fast amplitude extraction from raw LINEAR16 chunks so the
presentation layer can animate the listening indicator.
"""

import logging

import numpy as np

logger = logging.getLogger(__name__)

INT16_MAX = 32767.0


def chunk_amplitude(
    audio_bytes: bytes,
    normalize_divisor: float = 8000.0,
    threshold: float = 0.05
) -> float:
    """
    Compute a normalized amplitude for one capture chunk.

    Args:
        audio_bytes: Raw PCM bytes (16-bit signed, little-endian)
        normalize_divisor: Divisor for RMS normalization (lower = more sensitive)
        threshold: Minimum amplitude (values below are set to 0)

    Returns:
        Amplitude in [0.0, 1.0]
    """
    # Drop a trailing odd byte instead of failing on it
    usable = len(audio_bytes) - (len(audio_bytes) % 2)
    samples = np.frombuffer(audio_bytes[:usable], dtype=np.int16).astype(np.float32)

    if len(samples) == 0:
        return 0.0

    # Calculate RMS (Root Mean Square)
    rms = np.sqrt(np.mean(samples ** 2))

    normalized = min(1.0, rms / normalize_divisor)

    # Apply threshold to filter silence
    if normalized < threshold:
        normalized = 0.0

    return round(float(normalized), 3)


def float_to_pcm16(audio_float: np.ndarray) -> bytes:
    """Convert float32 samples in [-1, 1] to LINEAR16 bytes."""
    clipped = np.clip(audio_float, -1.0, 1.0)
    return (clipped * INT16_MAX).astype(np.int16).tobytes()


def calculate_audio_duration_ms(num_bytes: int, sample_rate: int) -> int:
    """
    Calculate audio duration in milliseconds.

    Args:
        num_bytes: Size of the LINEAR16 audio in bytes (2 bytes per sample)
        sample_rate: Sample rate in Hz

    Returns:
        Duration in milliseconds
    """
    num_samples = num_bytes // 2  # 16-bit = 2 bytes per sample
    duration_sec = num_samples / sample_rate
    return int(duration_sec * 1000)


def make_tone(
    frequency: float,
    duration_ms: int,
    sample_rate: int,
    volume: float = 0.3,
    fade_ms: int = 10
) -> bytes:
    """
    Generate a short sine tone as LINEAR16 bytes (used for ping sounds).

    The tone fades in and out so it does not click on the speaker.
    """
    num_samples = int(sample_rate * duration_ms / 1000)
    t = np.arange(num_samples, dtype=np.float32) / sample_rate
    tone = volume * np.sin(2 * np.pi * frequency * t)

    fade = min(int(sample_rate * fade_ms / 1000), num_samples // 2)
    if fade > 0:
        ramp = np.linspace(0.0, 1.0, fade, dtype=np.float32)
        tone[:fade] *= ramp
        tone[-fade:] *= ramp[::-1]

    return float_to_pcm16(tone.astype(np.float32))
