"""
Audio processing utilities for voice authentication.

This module provides functions for:
- PCM to WAV conversion for captured microphone and stream chunks
- Converting recorded clips (webm, ogg, wav, ...) to 16kHz mono WAV using ffmpeg
- Inspecting WAV headers for format
"""

import logging
import struct
import tempfile
from typing import Optional, Tuple

import ffmpeg

logger = logging.getLogger(__name__)

# Container suffixes ffmpeg can probe from, keyed by MIME subtype
_MIME_SUFFIXES = {
    "wav": "wav",
    "x-wav": "wav",
    "wave": "wav",
    "webm": "webm",
    "ogg": "ogg",
    "mpeg": "mp3",
    "mp4": "m4a",
    "flac": "flac",
}


class AudioProcessingError(Exception):
    """Raised when audio processing operations fail."""
    pass


def suffix_for_mime(mime_type: str) -> str:
    """Map an audio MIME type (parameters allowed) to a file suffix."""
    subtype = mime_type.split(";", 1)[0].split("/", 1)[-1].strip().lower()
    return _MIME_SUFFIXES.get(subtype, "audio")


def pcm_to_wav(pcm_data: bytes, sample_rate: int = 16000, channels: int = 1,
               sample_width: int = 2) -> bytes:
    """
    Convert PCM audio data to WAV format.

    Args:
        pcm_data: Raw PCM audio data
        sample_rate: Sample rate in Hz (default: 16000)
        channels: Number of audio channels (default: 1 for mono)
        sample_width: Sample width in bytes (default: 2 for 16-bit)

    Returns:
        WAV formatted audio data as bytes

    Raises:
        AudioProcessingError: If conversion fails
    """
    if not pcm_data:
        raise AudioProcessingError("PCM data is empty")

    data_size = len(pcm_data)
    byte_rate = sample_rate * channels * sample_width
    block_align = channels * sample_width

    try:
        wav_header = struct.pack(
            '<4sI4s4sIHHIIHH4sI',
            b'RIFF',
            data_size + 36,    # 44 byte header minus the 8 byte RIFF preamble
            b'WAVE',
            b'fmt ',
            16,                # fmt chunk size for PCM
            1,                 # PCM format tag
            channels,
            sample_rate,
            byte_rate,
            block_align,
            sample_width * 8,
            b'data',
            data_size
        )
    except struct.error as e:
        logger.error(f"Error creating WAV header: {e}")
        raise AudioProcessingError(f"Failed to create WAV header: {e}")

    logger.debug(f"Wrapped {data_size} bytes PCM into WAV")
    return wav_header + pcm_data


def convert_to_16khz_mono(audio_data: bytes, input_format: Optional[str] = None) -> bytes:
    """
    Convert audio to 16kHz mono WAV format using ffmpeg.

    Args:
        audio_data: Input audio data as bytes
        input_format: Input suffix hint (e.g., 'webm', 'wav'). If None, ffmpeg will auto-detect.

    Returns:
        Converted audio data as 16kHz mono WAV bytes

    Raises:
        AudioProcessingError: If conversion fails
    """
    if not audio_data:
        raise AudioProcessingError("Audio data is empty")

    try:
        with tempfile.NamedTemporaryFile(suffix=f'.{input_format or "audio"}') as input_file, \
             tempfile.NamedTemporaryFile(suffix='.wav') as output_file:

            input_file.write(audio_data)
            input_file.flush()

            stream = ffmpeg.input(input_file.name)
            stream = ffmpeg.output(
                stream,
                output_file.name,
                acodec='pcm_s16le',
                ac=1,
                ar=16000,
                f='wav'
            )
            ffmpeg.run(stream, overwrite_output=True, quiet=True)

            output_file.seek(0)
            converted_data = output_file.read()

    except ffmpeg.Error as e:
        error_msg = e.stderr.decode() if e.stderr else str(e)
        logger.error(f"ffmpeg conversion failed: {error_msg}")
        raise AudioProcessingError(f"Audio conversion failed: {error_msg}")
    except OSError as e:
        logger.error(f"Unable to run ffmpeg: {e}")
        raise AudioProcessingError(f"Audio conversion failed: {e}")

    if not converted_data:
        raise AudioProcessingError("ffmpeg conversion produced empty output")

    logger.info(f"Converted {len(audio_data)} bytes to {len(converted_data)} bytes (16kHz mono WAV)")
    return converted_data


def _read_wav_format(audio_data: bytes) -> Tuple[int, int, int]:
    channels = struct.unpack('<H', audio_data[22:24])[0]
    sample_rate = struct.unpack('<I', audio_data[24:28])[0]
    bits_per_sample = struct.unpack('<H', audio_data[34:36])[0]
    return channels, sample_rate, bits_per_sample


def validate_audio_format(audio_data: bytes) -> Tuple[bool, str]:
    """
    Validate if audio data is in expected format (16kHz mono 16-bit WAV).

    Returns:
        Tuple of (is_valid, description)
    """
    if len(audio_data) < 44:
        return False, "Audio data too short to contain WAV header"

    if audio_data[:4] != b'RIFF' or audio_data[8:12] != b'WAVE':
        return False, "Not a valid WAV file"

    try:
        channels, sample_rate, bits_per_sample = _read_wav_format(audio_data)
    except struct.error as e:
        return False, f"Error parsing WAV header: {e}"

    if channels != 1:
        return False, f"Expected mono (1 channel), got {channels} channels"
    if sample_rate != 16000:
        return False, f"Expected 16kHz sample rate, got {sample_rate}Hz"
    if bits_per_sample != 16:
        return False, f"Expected 16-bit samples, got {bits_per_sample}-bit"

    return True, "Valid 16kHz mono WAV format"
