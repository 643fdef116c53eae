"""
Audio capture state machine.

States::

    UNINITIALIZED -> PERMISSION_REQUESTED -> IDLE | PERMISSION_DENIED
    IDLE -> RECORDING -> FINALIZING -> IDLE
    RECORDING -> ERROR (device failure; device released)

PERMISSION_DENIED is terminal for the controller's lifetime. From ERROR the
device may be requested again.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional

from voice_gate.capture.sources import AudioSource
from voice_gate.config import settings
from voice_gate.models.internal_models import EncodedAudio
from voice_gate.utils.audio_utils import AudioProcessingError

logger = logging.getLogger(__name__)

AudioCapturedListener = Callable[[EncodedAudio], None]
ProgressListener = Callable[[float], None]
DenialNotifier = Callable[[BaseException], None]


class CaptureError(Exception):
    """Raised when a recording cannot be started or does not produce audio."""
    pass


class PermissionDenied(CaptureError):
    """Raised when the audio input was refused for this session."""
    pass


class CaptureState(str, Enum):
    UNINITIALIZED = "uninitialized"
    PERMISSION_REQUESTED = "permission_requested"
    PERMISSION_DENIED = "permission_denied"
    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"
    ERROR = "error"


class AudioCaptureController:
    """
    Drives one exclusive audio source through timed recordings.

    A recording runs for ``duration_seconds`` unless stopped earlier. A
    progress tick fires every ``tick_interval`` seconds reporting the elapsed
    share of the duration as a percentage; reaching 100 stops the recording.
    Each completed recording is delivered to the AudioCaptured listeners as
    one EncodedAudio value.

    Usable as an async context manager: access is requested on entry and the
    device is released on every exit path.
    """

    def __init__(
        self,
        source: AudioSource,
        recording_seconds: Optional[float] = None,
        tick_interval: Optional[float] = None,
        on_permission_denied: Optional[DenialNotifier] = None
    ):
        """
        Args:
            source: Audio source capability to drive
            recording_seconds: Default recording length; falls back to settings
            tick_interval: Progress tick period in seconds; falls back to settings
            on_permission_denied: Called once with the error when access is refused

        Raises:
            ValueError: If the recording length or tick interval is not positive
        """
        self.source = source
        if recording_seconds is None:
            recording_seconds = settings.recording_seconds
        if tick_interval is None:
            tick_interval = settings.progress_tick_seconds
        if recording_seconds <= 0 or tick_interval <= 0:
            raise ValueError(
                f"Recording length and tick interval must be positive, got {recording_seconds} and {tick_interval}"
            )
        self.recording_seconds = recording_seconds
        self.tick_interval = tick_interval
        self.on_permission_denied = on_permission_denied

        self.state = CaptureState.UNINITIALIZED
        self.progress = 0.0

        self._chunks: List[bytes] = []
        self._device_held = False
        self._tick_task: Optional[asyncio.Task] = None
        self._failure_task: Optional[asyncio.Task] = None
        self._waiter: Optional[asyncio.Future] = None
        self._capture_listeners: List[AudioCapturedListener] = []
        self._progress_listeners: List[ProgressListener] = []

    @property
    def device_held(self) -> bool:
        return self._device_held

    @property
    def is_recording(self) -> bool:
        return self.state == CaptureState.RECORDING

    def add_capture_listener(self, listener: AudioCapturedListener) -> None:
        self._capture_listeners.append(listener)

    def add_progress_listener(self, listener: ProgressListener) -> None:
        self._progress_listeners.append(listener)

    async def request_access(self) -> bool:
        """
        Acquire the audio input.

        Returns:
            True once access is held, False if it was refused. A refusal is
            reported to the denial notifier once and never re-requested.
        """
        if self.state == CaptureState.PERMISSION_DENIED:
            return False
        if self.state not in (CaptureState.UNINITIALIZED, CaptureState.ERROR):
            return True

        self.state = CaptureState.PERMISSION_REQUESTED
        try:
            await self.source.acquire()
        except OSError as e:
            logger.error(f"Audio input access denied: {e}")
            self.state = CaptureState.PERMISSION_DENIED
            if self.on_permission_denied is not None:
                self.on_permission_denied(e)
            return False

        self._device_held = True
        self.state = CaptureState.IDLE
        logger.info("Audio input access granted")
        return True

    async def start_capture(self, duration_seconds: Optional[float] = None) -> bool:
        """
        Begin a recording.

        Returns:
            True if a recording started, False if one is already running

        Raises:
            PermissionDenied: If access was refused
            CaptureError: If access was never acquired, the controller is in
                ERROR, or the source fails to start
            ValueError: If the duration is not positive
        """
        if self.state in (CaptureState.RECORDING, CaptureState.FINALIZING):
            logger.debug("Ignoring start request: recording already in progress")
            return False
        if self.state == CaptureState.PERMISSION_DENIED:
            raise PermissionDenied("Microphone access is required. Grant permission and restart.")
        if self.state != CaptureState.IDLE:
            raise CaptureError(f"Cannot start recording from state '{self.state.value}'")

        duration = self.recording_seconds if duration_seconds is None else duration_seconds
        if duration <= 0:
            raise ValueError(f"Recording duration must be positive, got {duration}")

        self._chunks = []
        self.progress = 0.0
        self.state = CaptureState.RECORDING

        try:
            await self.source.start(self._on_chunk, self._on_source_error)
        except OSError as e:
            logger.error(f"Failed to start recording: {e}")
            await self._enter_error(notify_waiter=False)
            raise CaptureError(f"Failed to start recording: {e}")

        self._tick_task = asyncio.create_task(self._run_progress(duration))
        logger.info(f"Recording started for {duration}s")
        return True

    async def stop_capture(self) -> Optional[EncodedAudio]:
        """
        Finish the current recording and emit it.

        Returns:
            The captured audio, or None if nothing was recording or no audio arrived
        """
        if self.state != CaptureState.RECORDING:
            return None

        self.state = CaptureState.FINALIZING
        self._cancel_tick()

        try:
            await self.source.stop()
        except OSError as e:
            logger.error(f"Audio device failed while stopping: {e}")
            await self._enter_error()
            return None

        if self.state != CaptureState.FINALIZING:
            return None

        chunks, self._chunks = self._chunks, []
        self.progress = 0.0

        if not chunks:
            logger.warning("Recording finished without any audio data")
            self.state = CaptureState.IDLE
            self._fail_waiter(CaptureError("No audio data captured"))
            return None

        try:
            audio = EncodedAudio(mime_type=self.source.mime_type, data=self.source.encode(chunks))
        except (AudioProcessingError, ValueError) as e:
            logger.error(f"Failed to encode recording: {e}")
            self.state = CaptureState.IDLE
            self._fail_waiter(CaptureError(f"Failed to encode recording: {e}"))
            return None

        logger.info(f"Recording captured: {len(audio.data)} bytes of {audio.mime_type}")
        for listener in list(self._capture_listeners):
            try:
                listener(audio)
            except Exception:
                logger.exception("AudioCaptured listener failed")

        self.state = CaptureState.IDLE
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(audio)
        return audio

    async def record(self, duration_seconds: Optional[float] = None) -> EncodedAudio:
        """
        Record one clip and wait for it to complete.

        Cancelling the caller aborts the recording.

        Raises:
            CaptureError: If a recording is already running or no audio is produced
            PermissionDenied: If access was refused
        """
        if self.state in (CaptureState.RECORDING, CaptureState.FINALIZING):
            raise CaptureError("A recording is already in progress")

        waiter = asyncio.get_running_loop().create_future()
        self._waiter = waiter
        try:
            await self.start_capture(duration_seconds)
            return await waiter
        except asyncio.CancelledError:
            await self._abort()
            raise
        finally:
            if self._waiter is waiter:
                self._waiter = None
            if not waiter.done():
                waiter.cancel()

    async def close(self) -> None:
        """Stop any recording and release the device. Safe to call repeatedly."""
        self._cancel_tick()
        if self.state == CaptureState.RECORDING:
            try:
                await self.source.stop()
            except OSError as e:
                logger.warning(f"Error stopping recording during close: {e}")
        self._chunks = []
        self.progress = 0.0
        await self._release()
        self._fail_waiter(CaptureError("Capture controller closed"))
        if self.state != CaptureState.PERMISSION_DENIED:
            self.state = CaptureState.UNINITIALIZED

    async def __aenter__(self):
        await self.request_access()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _on_chunk(self, chunk: bytes) -> None:
        if self.state in (CaptureState.RECORDING, CaptureState.FINALIZING) and chunk:
            self._chunks.append(chunk)

    def _on_source_error(self, error: BaseException) -> None:
        if self.state != CaptureState.RECORDING:
            return
        logger.error(f"Audio device failed during recording: {error}")
        self._failure_task = asyncio.ensure_future(
            self._enter_error(CaptureError(f"Audio device failed during recording: {error}"))
        )

    async def _run_progress(self, duration: float) -> None:
        ticks = 0
        while self.state == CaptureState.RECORDING:
            await asyncio.sleep(self.tick_interval)
            ticks += 1
            self.progress = min(ticks * self.tick_interval / duration * 100.0, 100.0)
            for listener in list(self._progress_listeners):
                try:
                    listener(self.progress)
                except Exception:
                    logger.exception("Progress listener failed")
            if self.progress >= 100.0:
                await self.stop_capture()
                return

    def _cancel_tick(self) -> None:
        task, self._tick_task = self._tick_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def _fail_waiter(self, error: CaptureError) -> None:
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_exception(error)

    async def _enter_error(self, error: Optional[CaptureError] = None, notify_waiter: bool = True) -> None:
        if self.state == CaptureState.ERROR:
            return
        self._cancel_tick()
        self._chunks = []
        self.progress = 0.0
        self.state = CaptureState.ERROR
        try:
            await self._release()
        finally:
            if notify_waiter:
                self._fail_waiter(error or CaptureError("Audio device failed"))

    async def _abort(self) -> None:
        self._cancel_tick()
        if self.state == CaptureState.RECORDING:
            try:
                await self.source.stop()
            except OSError as e:
                logger.warning(f"Error stopping aborted recording: {e}")
                await self._enter_error(notify_waiter=False)
                return
            self.state = CaptureState.IDLE
        self._chunks = []
        self.progress = 0.0
        logger.info("Recording aborted")

    async def _release(self) -> None:
        if not self._device_held:
            return
        try:
            await self.source.release()
        except Exception as e:
            logger.warning(f"Error releasing audio device: {e}")
        finally:
            self._device_held = False
