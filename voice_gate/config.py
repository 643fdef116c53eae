"""Configuration management for the voice authentication client and service."""

import os
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Ignore extra environment variables
    )

    # Server configuration
    port: int = 8000
    host: str = "0.0.0.0"

    # Voice authentication settings
    voice_threshold: float = 0.85
    recording_seconds: float = 5.0
    progress_tick_seconds: float = 1.0
    sample_rate: int = 16000

    # Embedding extraction
    extraction_backend: str = "remote"
    extraction_url: str = "http://localhost:8000/api/v1/voice-embedding"
    extraction_api_key: Optional[str] = None
    extraction_timeout: float = 30.0
    model_cache_dir: Optional[str] = None

    # Local credential persistence
    credential_path: str = os.path.join(os.path.expanduser("~"), ".voice_gate", "credentials.json")
    clear_credential_on_logout: bool = True

    # Observability
    otlp_endpoint: Optional[str] = None
    enable_console_export: bool = False

    # Logging configuration
    log_level: str = "INFO"

    @field_validator('voice_threshold')
    @classmethod
    def validate_voice_threshold(cls, v):
        if not -1.0 <= v <= 1.0:
            raise ValueError('VOICE_THRESHOLD must be between -1.0 and 1.0')
        return v

    @field_validator('recording_seconds', 'progress_tick_seconds', 'extraction_timeout')
    @classmethod
    def validate_positive_duration(cls, v):
        if v <= 0:
            raise ValueError('Durations must be greater than zero')
        return v

    @field_validator('extraction_backend')
    @classmethod
    def validate_extraction_backend(cls, v):
        v = v.lower()
        if v not in ("remote", "speechbrain"):
            raise ValueError('EXTRACTION_BACKEND must be "remote" or "speechbrain"')
        return v


# Global settings instance
settings = Settings()
