"""
Desktop Assistant - Voice and text assistant client.

Turn-based conversation with a streaming backend: microphone capture,
spoken replies, result cards and back/forward history.
"""

__version__ = "0.1.0"
