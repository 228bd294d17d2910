# Backend Module - Conversation backend interface and implementations
from .base import (
    BaseConversationBackend,
    TurnHandle,
    QueuedTurnHandle,
    ResponsePayload,
    BackendEvent,
    Transcription,
    AudioChunk,
    EndOfUtterance,
    ResponseReceived,
    DeviceAction,
    Ended,
    BackendError,
)
from .ollama_backend import OllamaBackend

__all__ = [
    "BaseConversationBackend",
    "TurnHandle",
    "QueuedTurnHandle",
    "ResponsePayload",
    "BackendEvent",
    "Transcription",
    "AudioChunk",
    "EndOfUtterance",
    "ResponseReceived",
    "DeviceAction",
    "Ended",
    "BackendError",
    "OllamaBackend",
]
