"""
Configuration for the desktop assistant.

Settings are read once from config/config.yaml and turned into plain
dataclasses. The Session and the Audio Pipeline receive a snapshot at
construction time; a new snapshot is only picked up at the next turn.
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional, Union

import yaml

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "config.yaml"


@dataclass
class AudioConfig:
    """Configuration for microphone capture and response playback."""
    sample_rate_in: int = 16000   # LINEAR16 capture rate sent to the backend
    sample_rate_out: int = 24000  # LINEAR16 rate of the backend's audio
    channels: int = 1
    chunk_ms: int = 100           # Capture block size
    device: Optional[Union[int, str]] = None  # None = default device

    # Amplitude meter (same approach as lip-sync volume analysis)
    amplitude_divisor: float = 8000.0
    amplitude_threshold: float = 0.05

    @property
    def chunk_samples(self) -> int:
        return int(self.sample_rate_in * self.chunk_ms / 1000)


@dataclass
class BackendConfig:
    """Configuration for the conversation backend."""
    provider: str = "ollama"
    base_url: str = "http://localhost:11434"
    model: str = "llama3.2:3b"
    language: str = "en-US"
    timeout: float = 60.0
    system_prompt: str = "You are a helpful desktop assistant. Answer briefly."


@dataclass
class AssistantConfig:
    """
    Snapshot of all assistant settings.

    Mirrors the settings screen of the desktop client: conversation
    behaviour flags plus the audio and backend sections.
    """
    force_new_conversation: bool = False
    enable_audio_output: bool = True
    enable_mic_on_continuous_conversation: bool = True
    enable_ping_sound: bool = True

    audio: AudioConfig = field(default_factory=AudioConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "AssistantConfig":
        """Build a config from a (possibly partial) dict, ignoring unknown keys."""
        data = data or {}
        conversation = data.get("conversation", {}) or {}

        kwargs = {}
        for f in fields(cls):
            if f.name in ("audio", "backend"):
                continue
            if f.name in conversation:
                kwargs[f.name] = bool(conversation[f.name])

        kwargs["audio"] = _build(AudioConfig, data.get("audio"))
        kwargs["backend"] = _build(BackendConfig, data.get("backend"))
        return cls(**kwargs)


def _build(cls, section: Optional[dict]):
    known = {f.name for f in fields(cls)}
    section = section or {}
    unknown = set(section) - known
    if unknown:
        logger.warning(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**{k: v for k, v in section.items() if k in known})


def load_config(config_path: Optional[Path] = None) -> AssistantConfig:
    """
    Load configuration from a YAML file.

    A missing file is not an error: defaults are used so the assistant can
    start without any setup.
    """
    config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.info(f"No config file at {config_path}, using defaults")
        return AssistantConfig()

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    logger.info(f"Loaded config from {config_path}")
    return AssistantConfig.from_dict(data)
