"""Client modules for external service integrations."""

from voice_gate.clients.extraction_client import (
    EmbeddingExtractor,
    ExtractionFailure,
    RemoteEmbeddingClient,
    build_extractor,
    validate_embedding
)

__all__ = [
    "EmbeddingExtractor",
    "ExtractionFailure",
    "RemoteEmbeddingClient",
    "build_extractor",
    "validate_embedding"
]
