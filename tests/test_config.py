"""Tests for configuration."""

from desktop_assistant.config import (
    DEFAULT_CONFIG_PATH,
    AssistantConfig,
    AudioConfig,
    load_config,
)


def test_default_settings():
    c = AssistantConfig()
    assert not c.force_new_conversation
    assert c.enable_audio_output
    assert c.enable_mic_on_continuous_conversation
    assert c.enable_ping_sound
    assert c.audio.sample_rate_in == 16000
    assert c.audio.sample_rate_out == 24000
    assert c.backend.provider == "ollama"
    assert c.backend.language == "en-US"


def test_chunk_samples():
    assert AudioConfig(sample_rate_in=16000, chunk_ms=100).chunk_samples == 1600


def test_from_partial_dict():
    c = AssistantConfig.from_dict({
        "conversation": {"force_new_conversation": True},
        "audio": {"chunk_ms": 50, "device": "USB Mic"},
        "backend": {"model": "qwen2.5:7b", "unknown_key": 1},
    })
    assert c.force_new_conversation
    assert c.enable_audio_output
    assert c.audio.chunk_ms == 50
    assert c.audio.device == "USB Mic"
    assert c.backend.model == "qwen2.5:7b"


def test_from_empty_dict():
    assert AssistantConfig.from_dict(None) == AssistantConfig()


def test_load_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "conversation:\n"
        "  enable_audio_output: false\n"
        "  enable_ping_sound: false\n"
        "backend:\n"
        "  base_url: http://gpu-box:11434\n",
        encoding="utf-8",
    )
    c = load_config(path)
    assert not c.enable_audio_output
    assert not c.enable_ping_sound
    assert c.backend.base_url == "http://gpu-box:11434"


def test_missing_file_uses_defaults(tmp_path):
    assert load_config(tmp_path / "nope.yaml") == AssistantConfig()


def test_shipped_config_loads():
    c = load_config(DEFAULT_CONFIG_PATH)
    assert c.audio.device is None
    assert c.backend.model == "llama3.2:3b"
