#!/usr/bin/env python3
"""
voice-gate CLI - enroll, log in and log out with your voice
"""

import argparse
import asyncio
import sys
from typing import Optional

from voice_gate.capture.controller import AudioCaptureController, CaptureError, CaptureState, PermissionDenied
from voice_gate.capture.sources import AudioSource
from voice_gate.capture.websocket_source import WebSocketAudioSource
from voice_gate.clients.extraction_client import EmbeddingExtractor, ExtractionFailure, build_extractor
from voice_gate.config import Settings, settings as default_settings
from voice_gate.observability import configure_logging
from voice_gate.services.auth_service import AuthenticationOrchestrator, EmptyCredential
from voice_gate.services.credential_store import CredentialStore, JsonFileBackend
from voice_gate.services.decision import DecisionEngine
from voice_gate.services.similarity import DimensionMismatch

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NOT_ENROLLED = 2


def build_store(config: Settings, path: Optional[str] = None) -> CredentialStore:
    return CredentialStore(JsonFileBackend(path or config.credential_path))


def build_source(args, config: Settings) -> AudioSource:
    """Microphone by default; a WebSocket stream when --stream-url is given."""
    if args.stream_url:
        return WebSocketAudioSource(args.stream_url, sample_rate=config.sample_rate)

    # sounddevice needs PortAudio at import time; only load it when recording locally
    from voice_gate.capture.microphone import MicrophoneSource
    return MicrophoneSource(sample_rate=config.sample_rate, device=args.device)


def notify_denied(error: BaseException) -> None:
    print("Microphone Access Denied", file=sys.stderr)
    print("Please allow microphone access for this terminal and run the command again.", file=sys.stderr)


def show_progress(progress: float) -> None:
    print(f"\rRecording... {progress:5.1f}%", end="", flush=True)
    if progress >= 100.0:
        print()


async def run_attempt(args, config: Settings, store: CredentialStore, enroll: bool) -> int:
    """Open the audio source, run one enrollment or login, and release everything."""
    seconds = args.seconds or config.recording_seconds
    extractor = build_extractor(config)
    controller = AudioCaptureController(
        build_source(args, config),
        recording_seconds=seconds,
        tick_interval=config.progress_tick_seconds,
        on_permission_denied=notify_denied
    )
    controller.add_progress_listener(show_progress)
    orchestrator = AuthenticationOrchestrator(
        controller, extractor, store,
        decision_engine=DecisionEngine(config.voice_threshold),
        clear_credential_on_logout=config.clear_credential_on_logout
    )

    try:
        async with controller:
            if controller.state == CaptureState.PERMISSION_DENIED:
                return EXIT_FAILED

            print(f"Speak now: recording for {seconds:g} seconds.")
            if enroll:
                return await _enroll(orchestrator)
            return await _login(orchestrator)
    finally:
        await extractor.aclose()


async def _enroll(orchestrator: AuthenticationOrchestrator) -> int:
    try:
        await orchestrator.enroll()
    except (PermissionDenied, CaptureError, ExtractionFailure) as e:
        print(f"Registration Failed: Failed to create voiceprint. Please try again. ({e})", file=sys.stderr)
        return EXIT_FAILED

    print("Registration Successful! Your voiceprint has been saved.")
    return EXIT_OK


async def _login(orchestrator: AuthenticationOrchestrator) -> int:
    try:
        result = await orchestrator.login()
    except EmptyCredential:
        print("No voiceprint found. Please enroll first: voice-gate enroll", file=sys.stderr)
        return EXIT_NOT_ENROLLED
    except (PermissionDenied, CaptureError, ExtractionFailure) as e:
        print(f"Login Failed: An unexpected error occurred. Please try again. ({e})", file=sys.stderr)
        return EXIT_FAILED
    except DimensionMismatch as e:
        print(f"Login Failed: stored voiceprint is incompatible with this provider ({e}).", file=sys.stderr)
        return EXIT_FAILED

    print(f"Similarity Score: {result.score * 100:.2f}%")
    if result.is_authenticated:
        print("Login Successful: Welcome back!")
        return EXIT_OK

    print("Authentication Failed: Voice not recognized. Please try again.", file=sys.stderr)
    return EXIT_FAILED


def enroll_command(args, config: Settings) -> int:
    """Record a clip and save it as the voiceprint."""
    store = build_store(config, args.credential_path)
    return asyncio.run(run_attempt(args, config, store, enroll=True))


def login_command(args, config: Settings) -> int:
    """Record a clip and compare it with the saved voiceprint."""
    store = build_store(config, args.credential_path)
    if not store.has_credential:
        print("No voiceprint found. Please enroll first: voice-gate enroll", file=sys.stderr)
        return EXIT_NOT_ENROLLED
    return asyncio.run(run_attempt(args, config, store, enroll=False))


def logout_command(args, config: Settings) -> int:
    store = build_store(config, args.credential_path)
    # Logout never records or extracts
    orchestrator = AuthenticationOrchestrator(
        None, EmbeddingExtractor(), store,
        clear_credential_on_logout=config.clear_credential_on_logout
    )
    orchestrator.logout()
    if orchestrator.clear_credential_on_logout:
        print("Logged out. Your voiceprint was removed; enroll again to log back in.")
    else:
        print("Logged out.")
    return EXIT_OK


def status_command(args, config: Settings) -> int:
    store = build_store(config, args.credential_path)
    print(f"Enrolled:      {'yes' if store.has_credential else 'no'}")
    print(f"Authenticated: {'yes' if store.is_authenticated else 'no'}")
    preview = store.preview()
    if preview:
        print(f"Voiceprint:    [{preview}]")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voice-gate",
        description="Voice authentication: enroll a voiceprint, then log in by speaking.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  voice-gate enroll
  voice-gate login --seconds 3
  voice-gate login --stream-url ws://localhost:9000/listen
  voice-gate status
  voice-gate logout
"""
    )
    parser.add_argument("--credential-path", help="Credential file (default: CREDENTIAL_PATH setting)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, handler, help_text in (
        ("enroll", enroll_command, "Record and save your voiceprint"),
        ("login", login_command, "Authenticate against the saved voiceprint"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--seconds", type=float, help="Recording length in seconds")
        sub.add_argument("--device", help="Input device index or name")
        sub.add_argument("--stream-url", help="Read audio from a WebSocket stream instead of the microphone")
        sub.set_defaults(func=handler)

    sub = subparsers.add_parser("logout", help="End the session")
    sub.set_defaults(func=logout_command)

    sub = subparsers.add_parser("status", help="Show enrollment and session state")
    sub.set_defaults(func=status_command)

    return parser


def main(argv=None, config: Optional[Settings] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = config or default_settings

    configure_logging("DEBUG" if args.verbose else "WARNING", json_output=False)

    if getattr(args, "device", None) is not None and args.device.isdigit():
        args.device = int(args.device)
    if getattr(args, "seconds", None) is not None and args.seconds <= 0:
        parser.error("--seconds must be positive")

    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
