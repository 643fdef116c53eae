"""
Shared fixtures and fakes for the voice-gate test suite.
"""

from typing import List, Optional

import pytest

from voice_gate.capture.sources import AudioSource


class FakeSource(AudioSource):
    """In-memory audio source that pushes canned chunks when a recording starts."""

    mime_type = "audio/wav"

    def __init__(self, chunks: Optional[List[bytes]] = None, deny: bool = False):
        self.chunks = [b"\x01\x02", b"\x03\x04"] if chunks is None else chunks
        self.deny = deny
        self.acquired = 0
        self.released = 0
        self.started = 0
        self.stopped = 0
        self.on_error = None

    async def acquire(self) -> None:
        self.acquired += 1
        if self.deny:
            raise PermissionError("microphone access refused")

    async def release(self) -> None:
        self.released += 1

    async def start(self, on_chunk, on_error) -> None:
        self.started += 1
        self.on_error = on_error
        for chunk in self.chunks:
            on_chunk(chunk)

    async def stop(self) -> None:
        self.stopped += 1

    def encode(self, chunks: List[bytes]) -> bytes:
        return b"".join(chunks)

    def fail(self, error: BaseException) -> None:
        self.on_error(error)


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def source_factory():
    """Build FakeSource instances with custom chunks or a refusal."""
    return FakeSource
