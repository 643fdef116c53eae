"""
Tests for internal and API models.
"""

import base64

import pytest
from pydantic import ValidationError

from voice_gate.models.api_models import VoiceEmbeddingRequest
from voice_gate.models.internal_models import EncodedAudio


class TestEncodedAudio:
    """Test cases for EncodedAudio."""

    def test_to_data_uri(self):
        audio = EncodedAudio(mime_type="audio/webm", data=b"\x1a\x45\xdf\xa3")

        assert audio.to_data_uri() == "data:audio/webm;base64," + base64.b64encode(b"\x1a\x45\xdf\xa3").decode()

    def test_from_data_uri(self):
        uri = "data:audio/wav;base64," + base64.b64encode(b"RIFFdata").decode()

        audio = EncodedAudio.from_data_uri(uri)

        assert audio.mime_type == "audio/wav"
        assert audio.data == b"RIFFdata"

    def test_from_data_uri_with_codec_parameter(self):
        uri = "data:audio/webm;codecs=opus;base64," + base64.b64encode(b"abc").decode()

        audio = EncodedAudio.from_data_uri(uri)

        assert audio.mime_type == "audio/webm;codecs=opus"
        assert audio.data == b"abc"

    @pytest.mark.parametrize("uri", [
        "",
        "audio/wav;base64,AAAA",
        "data:audio/wav,AAAA",
        "data:;base64,AAAA",
        "data:audio/wav;base64,***",
        "data:audio/wav;base64,",
    ])
    def test_from_data_uri_rejects_malformed(self, uri):
        with pytest.raises(ValueError):
            EncodedAudio.from_data_uri(uri)

    def test_empty_payload_rejected(self):
        with pytest.raises(ValueError, match="empty"):
            EncodedAudio(mime_type="audio/wav", data=b"")

    def test_invalid_mime_rejected(self):
        with pytest.raises(ValueError, match="Invalid MIME type"):
            EncodedAudio(mime_type="wav", data=b"abc")

    def test_is_immutable(self):
        audio = EncodedAudio(mime_type="audio/wav", data=b"abc")

        with pytest.raises(AttributeError):
            audio.data = b"other"


class TestVoiceEmbeddingRequest:
    """Test cases for the extraction request model."""

    def test_accepts_data_uri(self):
        request = VoiceEmbeddingRequest(audioBuffer="data:audio/webm;base64,AAAA")

        assert request.audioBuffer.startswith("data:audio/webm")

    def test_rejects_plain_url(self):
        with pytest.raises(ValidationError, match="base64 data URI"):
            VoiceEmbeddingRequest(audioBuffer="https://example.com/audio.wav")
