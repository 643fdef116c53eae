"""
Voice inference API endpoints: embedding extraction and similarity check.
"""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from voice_gate.clients.extraction_client import EmbeddingExtractor, ExtractionFailure
from voice_gate.middleware import get_correlation_id
from voice_gate.models.api_models import (
    ErrorDetail,
    ErrorResponse,
    VoiceEmbeddingRequest,
    VoiceEmbeddingResponse,
    VoiceSimilarityRequest,
    VoiceSimilarityResponse
)
from voice_gate.models.internal_models import EncodedAudio
from voice_gate.observability import trace_function
from voice_gate.services.decision import DecisionEngine
from voice_gate.services.embedding_service import get_embedding_extractor
from voice_gate.services.similarity import DimensionMismatch, cosine_similarity

logger = structlog.get_logger()
router = APIRouter(prefix="/api/v1", tags=["voice"])


def get_extractor() -> EmbeddingExtractor:
    return get_embedding_extractor()


def get_decision_engine() -> DecisionEngine:
    return DecisionEngine()


def error_detail(error_type: str, message: str, correlation_id: str) -> dict:
    """Build the standard error body."""
    return ErrorResponse(
        error=error_type,
        message=message,
        correlation_id=correlation_id,
        timestamp=datetime.utcnow()
    ).model_dump(mode="json")


@router.post(
    "/voice-embedding",
    response_model=VoiceEmbeddingResponse,
    responses={422: {"model": ErrorDetail}, 502: {"model": ErrorDetail}}
)
@trace_function("voice_embedding_endpoint")
async def extract_voice_embedding(
    request: VoiceEmbeddingRequest,
    http_request: Request,
    extractor: EmbeddingExtractor = Depends(get_extractor)
) -> VoiceEmbeddingResponse:
    """
    Extract a voice embedding from a data-URI encoded clip.

    Raises:
        HTTPException: 422 for a malformed payload, 502 when extraction fails
    """
    correlation_id = get_correlation_id(http_request)

    try:
        audio = EncodedAudio.from_data_uri(request.audioBuffer)
    except ValueError as e:
        logger.warning("Malformed audio buffer", error=str(e), correlation_id=correlation_id)
        raise HTTPException(status_code=422, detail=error_detail("MalformedAudio", str(e), correlation_id))

    logger.info(
        "Embedding extraction requested",
        mime_type=audio.mime_type,
        audio_bytes=len(audio.data),
        correlation_id=correlation_id
    )

    try:
        embedding = await extractor.extract(audio)
    except ExtractionFailure as e:
        logger.error("Embedding extraction failed", error=str(e), correlation_id=correlation_id)
        raise HTTPException(status_code=502, detail=error_detail("ExtractionFailure", str(e), correlation_id))

    logger.info("Embedding extracted", dimensions=len(embedding), correlation_id=correlation_id)
    return VoiceEmbeddingResponse(embedding=embedding)


@router.post(
    "/voice-similarity",
    response_model=VoiceSimilarityResponse,
    responses={422: {"model": ErrorDetail}}
)
@trace_function("voice_similarity_endpoint")
async def check_voice_similarity(
    request: VoiceSimilarityRequest,
    http_request: Request,
    decision_engine: DecisionEngine = Depends(get_decision_engine)
) -> VoiceSimilarityResponse:
    """
    Compare a fresh embedding against a stored one.

    Raises:
        HTTPException: 422 when the embeddings differ in length
    """
    correlation_id = get_correlation_id(http_request)

    try:
        score = cosine_similarity(request.recordedEmbedding, request.storedEmbedding)
    except DimensionMismatch as e:
        logger.error("Similarity check rejected", error=str(e), correlation_id=correlation_id)
        raise HTTPException(status_code=422, detail=error_detail("DimensionMismatch", str(e), correlation_id))

    result = decision_engine.decide(score)
    logger.info(
        "Similarity check completed",
        similarity_score=result.score,
        is_authenticated=result.is_authenticated,
        correlation_id=correlation_id
    )
    return VoiceSimilarityResponse(similarityScore=result.score, isAuthenticated=result.is_authenticated)
