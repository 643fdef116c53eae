"""Internal data models for the voice authentication pipeline."""

import base64
import binascii
import re
from dataclasses import dataclass

_DATA_URI_PATTERN = re.compile(r'^data:(?P<mime>[\w.+-]+/[\w.+-]+(?:;[\w.+-]+=[\w.+-]+)*);base64,(?P<payload>.*)$', re.DOTALL)


@dataclass(frozen=True)
class EncodedAudio:
    """One completed recording, tagged with its MIME type."""

    mime_type: str
    data: bytes

    def __post_init__(self):
        """Reject empty clips and untyped payloads."""
        if not self.mime_type or '/' not in self.mime_type:
            raise ValueError(f"Invalid MIME type: {self.mime_type!r}")
        if not self.data:
            raise ValueError("Encoded audio payload is empty")

    def to_data_uri(self) -> str:
        """Render as ``data:<mime>;base64,<payload>``."""
        payload = base64.b64encode(self.data).decode('ascii')
        return f"data:{self.mime_type};base64,{payload}"

    @classmethod
    def from_data_uri(cls, uri: str) -> "EncodedAudio":
        """
        Parse a base64 data URI back into an EncodedAudio value.

        Raises:
            ValueError: If the URI is not a base64 data URI or the payload is empty
        """
        match = _DATA_URI_PATTERN.match(uri.strip()) if uri else None
        if match is None:
            raise ValueError("Audio buffer must be a data URI of the form 'data:<mimetype>;base64,<encoded_data>'")

        try:
            data = base64.b64decode(match.group('payload'), validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 payload in data URI: {e}")

        return cls(mime_type=match.group('mime'), data=data)

    def __repr__(self) -> str:
        return f"EncodedAudio(mime_type={self.mime_type!r}, size={len(self.data)})"


@dataclass(frozen=True)
class AuthenticationResult:
    """Outcome of comparing a fresh voiceprint against the stored one."""

    score: float
    is_authenticated: bool
