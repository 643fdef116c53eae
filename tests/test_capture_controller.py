"""
Tests for the audio capture state machine.
"""

import asyncio

import pytest

from voice_gate.capture.controller import (
    AudioCaptureController,
    CaptureError,
    CaptureState,
    PermissionDenied
)
from voice_gate.config import settings
from voice_gate.models.internal_models import EncodedAudio

# Binary fractions keep the progress arithmetic exact: 4 ticks per recording
TICK = 1 / 64
DURATION = 1 / 16


def make_controller(source, **kwargs):
    kwargs.setdefault("recording_seconds", DURATION)
    kwargs.setdefault("tick_interval", TICK)
    return AudioCaptureController(source, **kwargs)


async def wait_for_state(controller, state, attempts=50):
    for _ in range(attempts):
        if controller.state == state:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"controller never reached {state}, stuck in {controller.state}")


class TestPermission:
    """Test cases for acquiring the audio input."""

    @pytest.mark.asyncio
    async def test_access_granted(self, fake_source):
        controller = make_controller(fake_source)

        assert await controller.request_access() is True
        assert controller.state == CaptureState.IDLE
        assert controller.device_held

    @pytest.mark.asyncio
    async def test_denial_notifies_once_and_is_terminal(self, source_factory):
        source = source_factory(deny=True)
        notices = []
        controller = make_controller(source, on_permission_denied=notices.append)

        assert await controller.request_access() is False
        assert await controller.request_access() is False

        assert controller.state == CaptureState.PERMISSION_DENIED
        assert source.acquired == 1
        assert len(notices) == 1
        assert isinstance(notices[0], PermissionError)

    @pytest.mark.asyncio
    async def test_start_after_denial_raises(self, source_factory):
        controller = make_controller(source_factory(deny=True))
        await controller.request_access()

        with pytest.raises(PermissionDenied):
            await controller.start_capture()

    @pytest.mark.asyncio
    async def test_denied_state_survives_close(self, source_factory):
        controller = make_controller(source_factory(deny=True))
        await controller.request_access()

        await controller.close()

        assert controller.state == CaptureState.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_start_without_access_raises(self, fake_source):
        controller = make_controller(fake_source)

        with pytest.raises(CaptureError, match="uninitialized"):
            await controller.start_capture()
        assert fake_source.started == 0


class TestRecording:
    """Test cases for timed recordings."""

    @pytest.mark.asyncio
    async def test_record_emits_one_clip(self, fake_source):
        controller = make_controller(fake_source)
        captured = []
        controller.add_capture_listener(captured.append)
        await controller.request_access()

        audio = await asyncio.wait_for(controller.record(), 2)

        assert isinstance(audio, EncodedAudio)
        assert audio.mime_type == "audio/wav"
        assert audio.data == b"\x01\x02\x03\x04"
        assert captured == [audio]
        assert controller.state == CaptureState.IDLE
        assert fake_source.stopped == 1

    @pytest.mark.asyncio
    async def test_progress_reaches_exactly_100(self, fake_source):
        controller = make_controller(fake_source)
        progress = []
        controller.add_progress_listener(progress.append)
        await controller.request_access()

        await asyncio.wait_for(controller.record(), 2)

        assert progress == [25.0, 50.0, 75.0, 100.0]
        assert all(0.0 <= value <= 100.0 for value in progress)

    @pytest.mark.asyncio
    async def test_progress_is_clamped_for_uneven_durations(self, fake_source):
        """Three ticks of 1/64s overshoot a slightly shorter recording; the last report is 100."""
        controller = make_controller(fake_source, recording_seconds=3 / 64 - 1 / 1024)
        progress = []
        controller.add_progress_listener(progress.append)
        await controller.request_access()

        await asyncio.wait_for(controller.record(), 2)

        assert progress[-1] == 100.0
        assert max(progress) == 100.0

    @pytest.mark.asyncio
    async def test_start_while_recording_is_noop(self, fake_source):
        controller = make_controller(fake_source)
        await controller.request_access()

        assert await controller.start_capture(10) is True
        assert await controller.start_capture(10) is False

        assert fake_source.started == 1
        await controller.close()

    @pytest.mark.asyncio
    async def test_stop_before_start_is_noop(self, fake_source):
        controller = make_controller(fake_source)
        captured = []
        controller.add_capture_listener(captured.append)
        await controller.request_access()

        assert await controller.stop_capture() is None

        assert captured == []
        assert fake_source.stopped == 0
        assert controller.state == CaptureState.IDLE

    @pytest.mark.asyncio
    async def test_manual_stop_emits_once(self, fake_source):
        controller = make_controller(fake_source)
        captured = []
        controller.add_capture_listener(captured.append)
        await controller.request_access()

        await controller.start_capture(10)
        audio = await controller.stop_capture()
        again = await controller.stop_capture()

        assert audio is not None
        assert again is None
        assert captured == [audio]
        assert controller.progress == 0.0

    @pytest.mark.asyncio
    async def test_listener_failure_does_not_break_recording(self, fake_source):
        controller = make_controller(fake_source)
        captured = []

        def broken(audio):
            raise RuntimeError("listener bug")

        controller.add_capture_listener(broken)
        controller.add_capture_listener(captured.append)
        await controller.request_access()

        audio = await asyncio.wait_for(controller.record(), 2)

        assert captured == [audio]

    @pytest.mark.asyncio
    async def test_no_chunks_raises(self, source_factory):
        controller = make_controller(source_factory(chunks=[]))
        captured = []
        controller.add_capture_listener(captured.append)
        await controller.request_access()

        with pytest.raises(CaptureError, match="No audio data captured"):
            await asyncio.wait_for(controller.record(), 2)

        assert captured == []
        assert controller.state == CaptureState.IDLE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("duration", [0, -1.5])
    async def test_invalid_duration_raises(self, fake_source, duration):
        controller = make_controller(fake_source)
        await controller.request_access()

        with pytest.raises(ValueError, match="positive"):
            await controller.start_capture(duration)
        assert controller.state == CaptureState.IDLE

    @pytest.mark.asyncio
    async def test_record_while_recording_raises(self, fake_source):
        controller = make_controller(fake_source)
        await controller.request_access()
        await controller.start_capture(10)

        with pytest.raises(CaptureError, match="already in progress"):
            await controller.record()
        await controller.close()

    @pytest.mark.asyncio
    async def test_cancelling_record_aborts(self, fake_source):
        controller = make_controller(fake_source)
        await controller.request_access()

        task = asyncio.create_task(controller.record(10))
        await wait_for_state(controller, CaptureState.RECORDING)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert controller.state == CaptureState.IDLE
        assert fake_source.stopped == 1
        assert controller.device_held


class TestDeviceFailure:
    """Test cases for device errors and release guarantees."""

    @pytest.mark.asyncio
    async def test_failure_mid_recording_enters_error(self, fake_source):
        controller = make_controller(fake_source)
        captured = []
        controller.add_capture_listener(captured.append)
        await controller.request_access()

        task = asyncio.create_task(controller.record(10))
        await wait_for_state(controller, CaptureState.RECORDING)
        fake_source.fail(OSError("device unplugged"))

        with pytest.raises(CaptureError, match="device unplugged"):
            await asyncio.wait_for(task, 2)

        assert controller.state == CaptureState.ERROR
        assert fake_source.released == 1
        assert not controller.device_held
        assert captured == []

    @pytest.mark.asyncio
    async def test_access_can_be_requested_again_after_error(self, fake_source):
        controller = make_controller(fake_source)
        await controller.request_access()
        task = asyncio.create_task(controller.record(10))
        await wait_for_state(controller, CaptureState.RECORDING)
        fake_source.fail(OSError("device unplugged"))
        with pytest.raises(CaptureError):
            await asyncio.wait_for(task, 2)

        assert await controller.request_access() is True
        assert controller.state == CaptureState.IDLE
        assert fake_source.acquired == 2

    @pytest.mark.asyncio
    async def test_start_failure_releases_device(self, fake_source):
        async def refuse(on_chunk, on_error):
            raise OSError("stream refused")

        fake_source.start = refuse
        controller = make_controller(fake_source)
        await controller.request_access()

        with pytest.raises(CaptureError, match="stream refused"):
            await controller.start_capture()

        assert controller.state == CaptureState.ERROR
        assert fake_source.released == 1

    @pytest.mark.asyncio
    async def test_close_releases_device(self, fake_source):
        controller = make_controller(fake_source)
        await controller.request_access()
        await controller.start_capture(10)

        await controller.close()
        await controller.close()

        assert fake_source.stopped == 1
        assert fake_source.released == 1
        assert controller.state == CaptureState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_context_manager_releases_on_exception(self, fake_source):
        controller = make_controller(fake_source)

        with pytest.raises(RuntimeError):
            async with controller:
                await controller.start_capture(10)
                raise RuntimeError("caller failed")

        assert fake_source.released == 1
        assert not controller.device_held

    @pytest.mark.asyncio
    async def test_release_failure_still_fails_pending_record(self, fake_source):
        """A device that errors on release must not leave record() waiting."""
        async def broken_release():
            fake_source.released += 1
            raise RuntimeError("stream close failed")

        fake_source.release = broken_release
        controller = make_controller(fake_source)
        await controller.request_access()

        task = asyncio.create_task(controller.record(10))
        await wait_for_state(controller, CaptureState.RECORDING)
        fake_source.fail(OSError("device unplugged"))

        with pytest.raises(CaptureError, match="device unplugged"):
            await asyncio.wait_for(task, 2)

        assert controller.state == CaptureState.ERROR
        assert fake_source.released == 1
        assert not controller.device_held


class TestListeners:
    """Test cases for listener failures."""

    @pytest.mark.asyncio
    async def test_raising_progress_listener_does_not_stall_recording(self, fake_source):
        controller = make_controller(fake_source)
        progress = []

        def broken(value):
            raise RuntimeError("progress display failed")

        controller.add_progress_listener(broken)
        controller.add_progress_listener(progress.append)
        await controller.request_access()

        audio = await asyncio.wait_for(controller.record(), 2)

        assert audio.data == b"\x01\x02\x03\x04"
        assert progress[-1] == 100.0
        assert controller.state == CaptureState.IDLE

    @pytest.mark.asyncio
    async def test_broken_pipe_in_progress_listener(self, fake_source):
        controller = make_controller(fake_source)

        def closed_stdout(value):
            raise BrokenPipeError("stdout closed")

        controller.add_progress_listener(closed_stdout)
        await controller.request_access()

        audio = await asyncio.wait_for(controller.record(), 2)

        assert audio is not None
        assert fake_source.stopped == 1


class TestConfiguration:
    """Test cases for controller construction."""

    @pytest.mark.parametrize("kwargs", [
        {"recording_seconds": 0},
        {"recording_seconds": -1.0},
        {"tick_interval": 0},
    ])
    def test_explicit_non_positive_values_rejected(self, fake_source, kwargs):
        with pytest.raises(ValueError, match="must be positive"):
            make_controller(fake_source, **kwargs)

    def test_defaults_come_from_settings(self, fake_source, monkeypatch):
        monkeypatch.setattr(settings, "recording_seconds", 3.0)
        monkeypatch.setattr(settings, "progress_tick_seconds", 0.5)

        controller = AudioCaptureController(fake_source)

        assert controller.recording_seconds == 3.0
        assert controller.tick_interval == 0.5
