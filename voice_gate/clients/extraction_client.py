"""
Embedding extraction clients.

Extraction is treated as an opaque, asynchronous and possibly non-deterministic
capability: callers must not assume a fixed dimensionality or reproducible
output across calls or providers.
"""

import logging
import math
from typing import Any, List, Optional

import httpx

from voice_gate.config import Settings, settings as default_settings
from voice_gate.models.internal_models import EncodedAudio

logger = logging.getLogger(__name__)


class ExtractionFailure(Exception):
    """Raised when the provider fails or returns no usable embedding."""
    pass


class EmbeddingExtractor:
    """Interface for anything that turns one audio clip into one embedding."""

    async def extract(self, audio: EncodedAudio) -> List[float]:
        raise NotImplementedError

    async def aclose(self) -> None:
        pass


def validate_embedding(payload: Any) -> List[float]:
    """
    Coerce a provider payload into a usable embedding.

    Args:
        payload: Decoded ``embedding`` field from the provider

    Returns:
        The embedding as a list of finite floats

    Raises:
        ExtractionFailure: If the payload is missing, empty, non-numeric or non-finite
    """
    if payload is None:
        raise ExtractionFailure("Provider response contained no embedding")
    if not isinstance(payload, (list, tuple)):
        raise ExtractionFailure(f"Embedding must be a sequence of numbers, got {type(payload).__name__}")
    if not payload:
        raise ExtractionFailure("Provider returned an empty embedding")

    try:
        values = [float(x) for x in payload if not isinstance(x, bool)]
    except (TypeError, ValueError) as e:
        raise ExtractionFailure(f"Embedding contains non-numeric values: {e}")

    if len(values) != len(payload):
        raise ExtractionFailure("Embedding contains non-numeric values")
    if not all(math.isfinite(x) for x in values):
        raise ExtractionFailure("Embedding contains NaN or infinite values")

    return values


class RemoteEmbeddingClient(EmbeddingExtractor):
    """
    HTTP client for a remote extraction provider.

    Sends ``{"audioBuffer": "<data uri>"}`` and expects ``{"embedding": [...]}``.
    The whole call is bounded by ``timeout`` seconds.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the remote extraction client.

        Args:
            url: Extraction endpoint URL
            timeout: Deadline for one extraction call, in seconds
            api_key: Optional bearer token sent with each request
            client: Optional pre-built httpx client (owned by the caller)
        """
        self.url = url
        self.timeout = timeout
        self.api_key = api_key
        self._client = client
        self._owns_client = client is None

        logger.info(f"Initialized remote extraction client for URL: {url}")

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the underlying httpx client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def extract(self, audio: EncodedAudio) -> List[float]:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            logger.info(f"Requesting embedding for {len(audio.data)} bytes of {audio.mime_type}")
            response = await self.client.post(
                self.url,
                json={"audioBuffer": audio.to_data_uri()},
                headers=headers,
                timeout=self.timeout
            )
            response.raise_for_status()
            body = response.json()

        except httpx.TimeoutException as e:
            logger.error(f"Timeout waiting for embedding from {self.url}: {e}")
            raise ExtractionFailure(f"Embedding provider timed out after {self.timeout}s")
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error from embedding provider {self.url}: {e}")
            raise ExtractionFailure(f"Embedding provider returned HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error(f"Embedding provider unreachable at {self.url}: {e}")
            raise ExtractionFailure(f"Embedding provider unreachable: {e}")
        except ValueError as e:
            logger.error(f"Embedding provider returned invalid JSON: {e}")
            raise ExtractionFailure(f"Invalid response from embedding provider: {e}")

        if not isinstance(body, dict):
            raise ExtractionFailure("Provider response is not a JSON object")

        embedding = validate_embedding(body.get("embedding"))
        logger.info(f"Received embedding with {len(embedding)} dimensions")
        return embedding

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


def build_extractor(config: Optional[Settings] = None) -> EmbeddingExtractor:
    """
    Build the extraction backend named by the configuration.

    Args:
        config: Settings to read; defaults to the global settings

    Returns:
        EmbeddingExtractor: remote HTTP client or local SpeechBrain extractor
    """
    config = config or default_settings

    if config.extraction_backend == "speechbrain":
        from voice_gate.services.embedding_service import SpeechBrainEmbeddingExtractor
        return SpeechBrainEmbeddingExtractor(model_cache_dir=config.model_cache_dir)

    return RemoteEmbeddingClient(
        url=config.extraction_url,
        timeout=config.extraction_timeout,
        api_key=config.extraction_api_key
    )
