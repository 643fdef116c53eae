"""
WebSocket audio source for remotely streamed microphones.

The stream is expected to send JSON messages of the form
``{"audio": "<base64 16-bit PCM>"}``; anything else is ignored.
"""

import asyncio
import base64
import binascii
import json
import logging
from typing import List, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from voice_gate.capture.sources import AudioSource, ChunkCallback, ErrorCallback
from voice_gate.utils.audio_utils import pcm_to_wav

logger = logging.getLogger(__name__)


class WebSocketAudioSource(AudioSource):
    """
    Audio source reading PCM chunks from a WebSocket.

    The connection is the exclusive resource: it is opened on acquire and
    closed on release. Chunks arriving outside a recording are dropped.
    """

    mime_type = "audio/wav"

    def __init__(
        self,
        listen_url: str,
        sample_rate: int = 16000,
        channels: int = 1,
        sample_width: int = 2,
        connection_timeout: float = 10.0
    ):
        """
        Args:
            listen_url: WebSocket URL to connect to
            sample_rate: Sample rate of the streamed PCM in Hz
            channels: Number of channels in the streamed PCM
            sample_width: Sample width in bytes
            connection_timeout: WebSocket connection timeout in seconds
        """
        self.listen_url = listen_url
        self.sample_rate = sample_rate
        self.channels = channels
        self.sample_width = sample_width
        self.connection_timeout = connection_timeout

        self.websocket = None
        self._reader: Optional[asyncio.Task] = None
        self._on_chunk: Optional[ChunkCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._recording = False

    @property
    def is_connected(self) -> bool:
        return self.websocket is not None

    async def acquire(self) -> None:
        """
        Open the WebSocket connection.

        Raises:
            ConnectionError: If the connection fails or times out
        """
        if self.websocket is not None:
            return
        try:
            logger.info(f"Connecting to audio stream: {self.listen_url}")
            self.websocket = await asyncio.wait_for(
                websockets.connect(
                    self.listen_url,
                    ping_interval=20,
                    ping_timeout=10,
                    close_timeout=10
                ),
                timeout=self.connection_timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Timeout connecting to audio stream: {self.listen_url}")
            raise ConnectionError(f"Connection timeout after {self.connection_timeout}s")
        except (WebSocketException, OSError) as e:
            logger.error(f"WebSocket error connecting to audio stream: {e}")
            raise ConnectionError(f"WebSocket connection failed: {e}")

        self._reader = asyncio.create_task(self._read_messages())
        logger.info("Connected to audio stream")

    def _decode_message(self, message) -> Optional[bytes]:
        if isinstance(message, bytes):
            return message
        try:
            data = json.loads(message)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse WebSocket message as JSON: {e}")
            return None
        if not isinstance(data, dict) or 'audio' not in data:
            logger.debug("Received message without audio data")
            return None
        try:
            return base64.b64decode(data['audio'])
        except (binascii.Error, TypeError) as e:
            logger.warning(f"Discarding undecodable audio chunk: {e}")
            return None

    async def _read_messages(self) -> None:
        try:
            async for message in self.websocket:
                chunk = self._decode_message(message)
                if chunk and self._recording and self._on_chunk is not None:
                    self._on_chunk(chunk)
        except ConnectionClosed as e:
            logger.warning(f"Audio stream closed: {e}")
            self._report(e)
            return
        except WebSocketException as e:
            logger.error(f"WebSocket error on audio stream: {e}")
            self._report(e)
            return
        # Clean end of stream while recording is still a lost device
        self._report(ConnectionError("Audio stream ended"))

    def _report(self, error: BaseException) -> None:
        if self._recording and self._on_error is not None:
            self._on_error(error)

    async def start(self, on_chunk: ChunkCallback, on_error: ErrorCallback) -> None:
        if self.websocket is None or self._reader is None or self._reader.done():
            raise ConnectionError("Audio stream is not connected")
        self._on_chunk = on_chunk
        self._on_error = on_error
        self._recording = True

    async def stop(self) -> None:
        self._recording = False
        self._on_chunk = None
        self._on_error = None
        await asyncio.sleep(0)

    async def release(self) -> None:
        self._recording = False
        self._on_chunk = None
        self._on_error = None

        reader, self._reader = self._reader, None
        if reader is not None and not reader.done():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        websocket, self.websocket = self.websocket, None
        if websocket is not None:
            try:
                logger.info("Closing audio stream connection")
                await websocket.close()
            except WebSocketException as e:
                logger.warning(f"Error closing WebSocket connection: {e}")

    def encode(self, chunks: List[bytes]) -> bytes:
        return pcm_to_wav(
            b"".join(chunks),
            sample_rate=self.sample_rate,
            channels=self.channels,
            sample_width=self.sample_width
        )
