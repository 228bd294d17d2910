"""Tests for microphone capture, playback and amplitude analysis."""

import asyncio

import numpy as np
import pytest

from conftest import LOUD_FRAME, SILENT_FRAME, FakeCaptureDevice, FakePlaybackDevice, settle, wait_for
from desktop_assistant.audio import (
    AmplitudeSlot,
    AudioPipeline,
    AudioPlayer,
    CaptureState,
    DeviceError,
    MicrophoneCapture,
)
from desktop_assistant.utils.audio_analysis import (
    calculate_audio_duration_ms,
    chunk_amplitude,
    float_to_pcm16,
    make_tone,
)


class TestAmplitude:
    def test_silence_is_zero(self):
        assert chunk_amplitude(SILENT_FRAME) == 0.0

    def test_loud_chunk(self):
        assert chunk_amplitude(LOUD_FRAME) == 0.5

    def test_clipped_to_one(self):
        frame = (32000).to_bytes(2, "little", signed=True) * 10
        assert chunk_amplitude(frame) == 1.0

    def test_below_threshold_is_zero(self):
        frame = (100).to_bytes(2, "little", signed=True) * 10
        assert chunk_amplitude(frame) == 0.0

    def test_empty_and_odd_length(self):
        assert chunk_amplitude(b"") == 0.0
        assert chunk_amplitude(b"\x01") == 0.0

    def test_float_to_pcm16(self):
        pcm = float_to_pcm16(np.array([0.0, 1.0, -1.0, 2.0], dtype=np.float32))
        assert np.frombuffer(pcm, dtype=np.int16).tolist() == [0, 32767, -32767, 32767]

    def test_duration(self):
        # 16000 samples of 16-bit audio
        assert calculate_audio_duration_ms(32000, 16000) == 1000

    def test_make_tone(self):
        tone = make_tone(880, 100, 24000)
        samples = np.frombuffer(tone, dtype=np.int16)
        assert len(samples) == 2400
        # Fades in and out, peaks near the requested volume
        assert samples[0] == 0
        assert abs(int(samples[-1])) < 100
        assert 0.25 * 32767 < np.abs(samples).max() <= 0.3 * 32767 + 1


class TestAmplitudeSlot:
    def test_newest_overwrites(self):
        slot = AmplitudeSlot()
        slot.put(0.1)
        slot.put(0.7)
        assert slot.dropped == 1
        assert slot.take() == 0.7
        assert slot.take() is None

    def test_peek_does_not_consume(self):
        slot = AmplitudeSlot()
        slot.put(0.3)
        assert slot.peek() == 0.3
        assert slot.take() == 0.3


class TestMicrophoneCapture:
    def test_stream_yields_frames_with_amplitude(self):
        async def scenario():
            device = FakeCaptureDevice([LOUD_FRAME, SILENT_FRAME])
            capture = MicrophoneCapture(device)
            stream = capture.start()
            received = []
            async for frame, amplitude in stream:
                received.append((frame, amplitude))
                if len(received) == 2:
                    capture.stop()
            return capture, device, received

        capture, device, received = asyncio.run(scenario())
        assert received == [(LOUD_FRAME, 0.5), (SILENT_FRAME, 0.0)]
        assert capture.state == CaptureState.STOPPED
        assert device.closed == 1
        assert capture.amplitude.take() == 0.0

    def test_stop_is_idempotent(self):
        device = FakeCaptureDevice()
        capture = MicrophoneCapture(device)
        capture.stop()
        capture.stop()
        assert device.closed == 0

    def test_restart_gives_fresh_stream(self):
        async def scenario():
            device = FakeCaptureDevice([LOUD_FRAME])
            capture = MicrophoneCapture(device)
            first = capture.start()
            second = capture.start()
            old = [item async for item in first]
            frame, _ = await second.__anext__()
            capture.stop()
            return old, frame, device

        old, frame, device = asyncio.run(scenario())
        assert old == []
        assert frame == LOUD_FRAME
        assert device.opened == 2

    def test_open_failure(self):
        capture = MicrophoneCapture(FakeCaptureDevice(fail_open=True))
        with pytest.raises(DeviceError):
            capture.start()
        assert not capture.is_capturing


class TestAudioPlayer:
    def test_plays_in_order_and_goes_idle(self):
        async def scenario():
            device = FakePlaybackDevice()
            player = AudioPlayer(device)
            idle = asyncio.Event()
            for i in range(3):
                assert player.enqueue(bytes([i, 0]) * 10)
            player.on_idle(idle.set)
            await asyncio.wait_for(idle.wait(), 2)
            return device, player

        device, player = asyncio.run(scenario())
        assert device.written == [bytes([i, 0]) * 10 for i in range(3)]
        assert player.is_idle

    def test_on_idle_when_already_idle(self):
        async def scenario():
            player = AudioPlayer(FakePlaybackDevice())
            calls = []
            player.on_idle(lambda: calls.append("idle"))
            await settle()
            # One-shot
            player.stop()
            await settle()
            return calls

        assert asyncio.run(scenario()) == ["idle"]

    def test_stop_clears_queue_and_rejects_audio(self):
        async def scenario():
            device = FakePlaybackDevice(delay=0.05)
            player = AudioPlayer(device)
            for _ in range(5):
                player.enqueue(b"\x01\x00" * 10)
            await wait_for(lambda: player.queued_chunks < 5)
            player.stop()
            rejected = not player.enqueue(b"\x02\x00")
            await wait_for(lambda: player.is_idle)
            player.reset()
            accepted = player.enqueue(b"\x03\x00")
            await wait_for(lambda: player.is_idle)
            return device, rejected, accepted

        device, rejected, accepted = asyncio.run(scenario())
        assert rejected
        assert accepted
        assert device.aborted == 1
        assert len(device.written) < 5
        assert device.written[-1] == b"\x03\x00"

    def test_device_failure_reported(self):
        async def scenario():
            player = AudioPlayer(FakePlaybackDevice(fail=True))
            errors = []
            player.on_error = errors.append
            player.enqueue(b"\x01\x00")
            player.enqueue(b"\x02\x00")
            await wait_for(lambda: player.is_idle)
            return errors

        errors = asyncio.run(scenario())
        assert len(errors) == 1
        assert isinstance(errors[0], DeviceError)

    def test_idle_fires_even_if_drain_bookkeeping_fails(self, monkeypatch):
        def broken(*args):
            raise TypeError("bad duration")

        monkeypatch.setattr("desktop_assistant.audio.playback.calculate_audio_duration_ms", broken)

        async def scenario():
            device = FakePlaybackDevice()
            player = AudioPlayer(device)
            idle = asyncio.Event()
            player.enqueue(b"\x01\x00" * 10)
            player.on_idle(idle.set)
            await asyncio.wait_for(idle.wait(), 2)
            with pytest.raises(TypeError):
                await player._worker
            return device

        device = asyncio.run(scenario())
        assert device.written == [b"\x01\x00" * 10]


class TestAudioPipeline:
    def test_stop_and_latest_amplitude(self):
        async def scenario():
            capture_device = FakeCaptureDevice([LOUD_FRAME])
            pipeline = AudioPipeline(capture_device, FakePlaybackDevice())
            stream = pipeline.capture.start()
            await stream.__anext__()
            amplitude = pipeline.latest_amplitude()
            pipeline.stop()
            return pipeline, amplitude

        pipeline, amplitude = asyncio.run(scenario())
        assert amplitude == 0.5
        assert pipeline.latest_amplitude() is None
        assert not pipeline.capture.is_capturing
        assert pipeline.playback.is_stopped

    def test_play_ping(self):
        async def scenario():
            device = FakePlaybackDevice()
            pipeline = AudioPipeline(FakeCaptureDevice(), device)
            assert pipeline.play_ping("start")
            await wait_for(lambda: pipeline.playback.is_idle)
            return device

        device = asyncio.run(scenario())
        assert len(device.written) == 1
        # 120ms at 24kHz, 2 bytes per sample
        assert len(device.written[0]) == 5760

    def test_unknown_ping(self):
        pipeline = AudioPipeline(FakeCaptureDevice(), FakePlaybackDevice())
        with pytest.raises(ValueError):
            pipeline.play_ping("beep")
