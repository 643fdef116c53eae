"""
Microphone audio source backed by sounddevice.

Records 16-bit PCM from the default (or a named) input device and packages the
recording as WAV.
"""

import asyncio
import logging
from typing import List, Optional, Union

import sounddevice as sd

from voice_gate.capture.sources import AudioSource, ChunkCallback, ErrorCallback
from voice_gate.utils.audio_utils import pcm_to_wav

logger = logging.getLogger(__name__)


class MicrophoneSource(AudioSource):
    """Exclusive microphone input; the stream is opened on acquire and kept until release."""

    mime_type = "audio/wav"

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        block_duration: float = 0.1,
        device: Optional[Union[int, str]] = None
    ):
        """
        Args:
            sample_rate: Sample rate in Hz
            channels: Number of input channels
            block_duration: Seconds of audio per delivered chunk
            device: sounddevice device index or name (default input if None)
        """
        self.sample_rate = sample_rate
        self.channels = channels
        self.block_size = int(sample_rate * block_duration)
        self.device = device

        self._stream: Optional[sd.RawInputStream] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_chunk: Optional[ChunkCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._recording = False
        self._stop_requested = False

    def _callback(self, indata, frames: int, time_info, status) -> None:
        # Runs on the PortAudio thread
        if status:
            logger.debug(f"Input stream status: {status}")
        if self._recording and self._loop is not None and self._on_chunk is not None:
            self._loop.call_soon_threadsafe(self._on_chunk, bytes(indata))

    def _finished(self) -> None:
        # PortAudio ended the stream without us asking: device lost
        if self._recording and not self._stop_requested and self._loop is not None and self._on_error is not None:
            error = OSError("Microphone stream stopped unexpectedly")
            self._loop.call_soon_threadsafe(self._on_error, error)

    async def acquire(self) -> None:
        if self._stream is not None:
            return
        self._loop = asyncio.get_running_loop()
        try:
            self._stream = sd.RawInputStream(
                samplerate=self.sample_rate,
                blocksize=self.block_size,
                device=self.device,
                channels=self.channels,
                dtype="int16",
                callback=self._callback,
                finished_callback=self._finished,
            )
        except sd.PortAudioError as e:
            logger.error(f"Error accessing microphone: {e}")
            raise PermissionError(f"Microphone access denied: {e}")
        logger.info(f"Microphone acquired ({self.sample_rate}Hz, {self.channels} channel(s))")

    async def start(self, on_chunk: ChunkCallback, on_error: ErrorCallback) -> None:
        if self._stream is None:
            raise OSError("Microphone not acquired")
        self._on_chunk = on_chunk
        self._on_error = on_error
        self._recording = True
        self._stop_requested = False
        try:
            self._stream.start()
        except sd.PortAudioError as e:
            self._recording = False
            raise OSError(f"Failed to start microphone stream: {e}")

    async def stop(self) -> None:
        if self._stream is None or not self._recording:
            return
        self._stop_requested = True
        try:
            # Blocks until PortAudio has handed over the buffered blocks
            await asyncio.to_thread(self._stream.stop)
        except sd.PortAudioError as e:
            raise OSError(f"Failed to stop microphone stream: {e}")
        finally:
            self._recording = False
        # Let chunks queued by the audio thread land before returning
        await asyncio.sleep(0)

    async def release(self) -> None:
        stream, self._stream = self._stream, None
        self._recording = False
        self._on_chunk = None
        self._on_error = None
        if stream is None:
            return
        try:
            stream.abort()
        except sd.PortAudioError as e:
            logger.warning(f"Error aborting microphone stream: {e}")
        try:
            stream.close()
        except sd.PortAudioError as e:
            logger.warning(f"Error closing microphone stream: {e}")
        logger.info("Microphone released")

    def encode(self, chunks: List[bytes]) -> bytes:
        return pcm_to_wav(b"".join(chunks), sample_rate=self.sample_rate, channels=self.channels)
