"""Pydantic models for API requests and responses."""

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class VoiceEmbeddingRequest(BaseModel):
    """Request model for the embedding extraction endpoint."""

    audioBuffer: str = Field(
        ...,
        min_length=1,
        description="The audio clip as a data URI: 'data:<mimetype>;base64,<encoded_data>'"
    )

    @field_validator('audioBuffer')
    @classmethod
    def validate_audio_buffer(cls, v):
        """Validate data URI prefix."""
        if not v.startswith('data:') or ';base64,' not in v:
            raise ValueError('audioBuffer must be a base64 data URI with a MIME type')
        return v


class VoiceEmbeddingResponse(BaseModel):
    """Response model for the embedding extraction endpoint."""

    embedding: List[float] = Field(..., description="The voice embedding vector")

    model_config = ConfigDict(json_schema_extra={
        "example": {"embedding": [0.1, 0.2, 0.3, 0.4]}
    })


class VoiceSimilarityRequest(BaseModel):
    """Request model for the similarity check endpoint."""

    recordedEmbedding: List[float] = Field(..., description="Embedding extracted from the fresh recording")
    storedEmbedding: List[float] = Field(..., description="Embedding saved at enrollment")


class VoiceSimilarityResponse(BaseModel):
    """Response model for the similarity check endpoint."""

    similarityScore: float = Field(..., description="Cosine similarity between the two embeddings")
    isAuthenticated: bool = Field(..., description="Whether the score clears the configured threshold")

    model_config = ConfigDict(json_schema_extra={
        "example": {"similarityScore": 0.93, "isAuthenticated": True}
    })


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str = Field(..., description="Service health status")
    timestamp: datetime = Field(..., description="Health check timestamp")
    version: str = Field(..., description="Service version")


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error type or category")
    message: str = Field(..., description="Human-readable error message")
    correlation_id: str = Field(..., description="Request correlation ID for tracing")
    timestamp: datetime = Field(..., description="Error timestamp")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "error": "ExtractionFailure",
            "message": "Embedding provider unreachable",
            "correlation_id": "req_123456789",
            "timestamp": "2024-01-01T12:00:00Z"
        }
    })


class ErrorDetail(BaseModel):
    """Body of an HTTPException raised by the voice endpoints."""

    detail: ErrorResponse
