"""Audio capture: state machine and audio source capabilities."""

from voice_gate.capture.controller import (
    AudioCaptureController,
    CaptureError,
    CaptureState,
    PermissionDenied
)
from voice_gate.capture.sources import AudioSource
from voice_gate.capture.websocket_source import WebSocketAudioSource

__all__ = [
    "AudioCaptureController",
    "CaptureError",
    "CaptureState",
    "PermissionDenied",
    "AudioSource",
    "WebSocketAudioSource"
]
