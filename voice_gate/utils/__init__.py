# Utilities module

from .audio_utils import (
    AudioProcessingError,
    convert_to_16khz_mono,
    pcm_to_wav,
    suffix_for_mime,
    validate_audio_format,
)

__all__ = [
    "AudioProcessingError",
    "convert_to_16khz_mono",
    "pcm_to_wav",
    "suffix_for_mime",
    "validate_audio_format",
]
