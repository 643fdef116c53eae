"""
Local speaker-embedding extraction using the SpeechBrain ECAPA-TDNN model.

Unlike a generative provider, this extractor is deterministic for a given clip,
which makes it the drop-in replacement behind the EmbeddingExtractor interface.
"""

import asyncio
import io
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

import numpy as np
import torch
import torchaudio
from speechbrain.inference import EncoderClassifier

from voice_gate.clients.extraction_client import EmbeddingExtractor, ExtractionFailure, validate_embedding
from voice_gate.config import settings
from voice_gate.models.internal_models import EncodedAudio
from voice_gate.utils.audio_utils import (
    AudioProcessingError,
    convert_to_16khz_mono,
    suffix_for_mime,
    validate_audio_format
)

logger = logging.getLogger(__name__)

MODEL_SOURCE = "speechbrain/spkrec-ecapa-voxceleb"
MIN_AUDIO_SECONDS = 0.5


class SpeechBrainEmbeddingExtractor(EmbeddingExtractor):
    """Extractor generating speaker embeddings with SpeechBrain ECAPA-TDNN on CPU."""

    def __init__(self, model_cache_dir: Optional[str] = None):
        """
        Initialize the extractor.

        Args:
            model_cache_dir: Directory to cache the model files. If None, uses system temp dir.
        """
        self.model_cache_dir = model_cache_dir or os.path.join(tempfile.gettempdir(), "speechbrain_models")
        self.model: Optional[EncoderClassifier] = None
        self._model_loaded = False

        torch.set_num_threads(1)
        Path(self.model_cache_dir).mkdir(parents=True, exist_ok=True)

    def _load_model(self) -> None:
        """Load the ECAPA-TDNN model once, CPU only."""
        if self._model_loaded:
            return

        try:
            logger.info("Loading SpeechBrain ECAPA-TDNN model...")
            self.model = EncoderClassifier.from_hparams(
                source=MODEL_SOURCE,
                savedir=self.model_cache_dir,
                run_opts={"device": "cpu"}
            )
            self._model_loaded = True
            logger.info("SpeechBrain ECAPA-TDNN model loaded successfully")

        except Exception as e:
            logger.error(f"Failed to load SpeechBrain model: {e}")
            raise ExtractionFailure(f"Model loading failed: {e}")

    def _prepare_wav(self, audio: EncodedAudio) -> bytes:
        """Return the clip as 16kHz mono WAV, converting with ffmpeg when needed."""
        is_valid, _ = validate_audio_format(audio.data)
        if is_valid:
            return audio.data
        return convert_to_16khz_mono(audio.data, input_format=suffix_for_mime(audio.mime_type))

    def generate_embedding(self, audio: EncodedAudio) -> np.ndarray:
        """
        Generate a speaker embedding from an encoded clip.

        Raises:
            ExtractionFailure: If decoding, model loading or inference fails
        """
        self._load_model()

        try:
            wav_bytes = self._prepare_wav(audio)
            waveform, sample_rate = torchaudio.load(io.BytesIO(wav_bytes))
        except AudioProcessingError as e:
            raise ExtractionFailure(f"Failed to decode audio: {e}")
        except Exception as e:
            logger.error(f"Failed to load waveform: {e}")
            raise ExtractionFailure(f"Failed to decode audio: {e}")

        if waveform.shape[1] < sample_rate * MIN_AUDIO_SECONDS:
            raise ExtractionFailure(f"Audio too short (minimum {MIN_AUDIO_SECONDS} seconds required)")

        if waveform.shape[0] > 1:
            waveform = torch.mean(waveform, dim=0, keepdim=True)

        if sample_rate != 16000:
            waveform = torchaudio.transforms.Resample(sample_rate, 16000)(waveform)

        try:
            with torch.no_grad():
                embeddings = self.model.encode_batch(waveform)
                embedding = embeddings.squeeze().cpu().numpy()
        except Exception as e:
            logger.error(f"Embedding inference failed: {e}")
            raise ExtractionFailure(f"Embedding generation failed: {e}")

        logger.debug(f"Generated embedding with shape: {embedding.shape}")
        return embedding

    async def extract(self, audio: EncodedAudio) -> List[float]:
        embedding = await asyncio.to_thread(self.generate_embedding, audio)
        return validate_embedding(np.atleast_1d(embedding).tolist())

    def get_model_info(self) -> dict:
        return {
            "model_loaded": self._model_loaded,
            "model_cache_dir": self.model_cache_dir,
            "device": "cpu",
            "model_name": MODEL_SOURCE
        }


# Global instance for reuse across requests
_embedding_extractor: Optional[SpeechBrainEmbeddingExtractor] = None


def get_embedding_extractor() -> SpeechBrainEmbeddingExtractor:
    """
    Get the global SpeechBrain extractor instance.

    Returns:
        SpeechBrainEmbeddingExtractor: The shared extractor, created on first use
    """
    global _embedding_extractor
    if _embedding_extractor is None:
        _embedding_extractor = SpeechBrainEmbeddingExtractor(model_cache_dir=settings.model_cache_dir)
    return _embedding_extractor
