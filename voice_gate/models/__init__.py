"""Data models for the voice authentication pipeline."""

from .api_models import (
    VoiceEmbeddingRequest,
    VoiceEmbeddingResponse,
    VoiceSimilarityRequest,
    VoiceSimilarityResponse,
    HealthResponse,
    ErrorResponse,
    ErrorDetail
)
from .internal_models import (
    EncodedAudio,
    AuthenticationResult
)

__all__ = [
    "VoiceEmbeddingRequest",
    "VoiceEmbeddingResponse",
    "VoiceSimilarityRequest",
    "VoiceSimilarityResponse",
    "HealthResponse",
    "ErrorResponse",
    "ErrorDetail",
    "EncodedAudio",
    "AuthenticationResult"
]
