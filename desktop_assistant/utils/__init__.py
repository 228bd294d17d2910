"""
Utility modules for the desktop assistant.
"""

from .audio_analysis import chunk_amplitude, float_to_pcm16, calculate_audio_duration_ms, make_tone

__all__ = [
    "chunk_amplitude",
    "float_to_pcm16",
    "calculate_audio_duration_ms",
    "make_tone",
]
