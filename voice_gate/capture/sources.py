"""Audio source capability used by the capture controller."""

from typing import Callable, List

ChunkCallback = Callable[[bytes], None]
ErrorCallback = Callable[[BaseException], None]


class AudioSource:
    """
    Capability interface over an exclusive audio input.

    ``acquire`` takes the device and raises ``OSError`` (typically
    ``PermissionError`` or ``ConnectionError``) when access is refused.
    ``start``/``stop`` bracket one recording; chunks and failures are reported
    through the callbacks on the event loop thread. ``stop`` returns only after
    pending chunks have been delivered. ``release`` must be safe to call at
    any time, including twice.
    """

    mime_type: str = "application/octet-stream"

    async def acquire(self) -> None:
        raise NotImplementedError

    async def release(self) -> None:
        raise NotImplementedError

    async def start(self, on_chunk: ChunkCallback, on_error: ErrorCallback) -> None:
        raise NotImplementedError

    async def stop(self) -> None:
        raise NotImplementedError

    def encode(self, chunks: List[bytes]) -> bytes:
        """Join recorded chunks into one clip of ``mime_type``."""
        raise NotImplementedError
