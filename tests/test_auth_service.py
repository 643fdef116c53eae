"""
Tests for the authentication orchestrator.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from voice_gate.capture.controller import AudioCaptureController, CaptureError
from voice_gate.clients.extraction_client import ExtractionFailure
from voice_gate.models.internal_models import EncodedAudio
from voice_gate.services.auth_service import (
    AttemptInProgress,
    AuthenticationError,
    AuthenticationOrchestrator,
    EmptyCredential
)
from voice_gate.services.credential_store import CredentialStore, InMemoryBackend
from voice_gate.services.decision import DecisionEngine
from voice_gate.services.similarity import DimensionMismatch


class TestAuthenticationOrchestrator:
    """Test cases for AuthenticationOrchestrator."""

    @pytest.fixture
    def sample_audio(self):
        return EncodedAudio(mime_type="audio/webm", data=b"recorded-clip")

    @pytest.fixture
    def mock_capture(self, sample_audio):
        """Create a mock capture controller returning one clip per recording."""
        capture = Mock()
        capture.record = AsyncMock(return_value=sample_audio)
        return capture

    @pytest.fixture
    def mock_extractor(self):
        extractor = Mock()
        extractor.extract = AsyncMock(return_value=[0.1, 0.2, 0.3, 0.4])
        return extractor

    @pytest.fixture
    def store(self):
        return CredentialStore(InMemoryBackend())

    @pytest.fixture
    def orchestrator(self, mock_capture, mock_extractor, store):
        return AuthenticationOrchestrator(
            mock_capture,
            mock_extractor,
            store,
            decision_engine=DecisionEngine(0.85),
            clear_credential_on_logout=True
        )

    @pytest.mark.asyncio
    async def test_enroll_then_login_same_embedding(self, orchestrator, store, mock_extractor, sample_audio):
        """Enrolling and logging in with the same embedding scores 1.0 and authenticates."""
        enrolled = await orchestrator.enroll()

        assert enrolled == [0.1, 0.2, 0.3, 0.4]
        assert store.load() == [0.1, 0.2, 0.3, 0.4]
        assert store.is_authenticated

        store.clear_session()
        result = await orchestrator.login()

        assert result.score == pytest.approx(1.0)
        assert result.is_authenticated is True
        assert store.is_authenticated
        mock_extractor.extract.assert_awaited_with(sample_audio)

    @pytest.mark.asyncio
    async def test_login_rejects_orthogonal_voiceprint(self, orchestrator, store, mock_extractor):
        store.save([1.0, 0.0])
        mock_extractor.extract.return_value = [0.0, 1.0]

        result = await orchestrator.login()

        assert result.score == 0.0
        assert result.is_authenticated is False
        assert not store.is_authenticated

    @pytest.mark.asyncio
    async def test_score_at_threshold_is_rejected(self, mock_capture, mock_extractor, store):
        orchestrator = AuthenticationOrchestrator(
            mock_capture, mock_extractor, store,
            decision_engine=DecisionEngine(0.85),
            scorer=lambda a, b: 0.85
        )
        store.save([0.1, 0.2, 0.3, 0.4])

        result = await orchestrator.login()

        assert result.score == 0.85
        assert result.is_authenticated is False

    @pytest.mark.asyncio
    async def test_login_without_credential_never_records(self, orchestrator, mock_capture, mock_extractor):
        with pytest.raises(EmptyCredential):
            await orchestrator.login()

        mock_capture.record.assert_not_awaited()
        mock_extractor.extract.assert_not_awaited()
        assert not orchestrator.is_busy

    @pytest.mark.asyncio
    async def test_empty_credential_is_authentication_error(self, orchestrator):
        with pytest.raises(AuthenticationError):
            await orchestrator.login()

    @pytest.mark.asyncio
    async def test_extraction_failure_leaves_store_unchanged(self, orchestrator, store, mock_extractor):
        store.save([0.5, 0.5])
        mock_extractor.extract.side_effect = ExtractionFailure("provider down")

        with pytest.raises(ExtractionFailure):
            await orchestrator.enroll()

        assert store.load() == [0.5, 0.5]
        assert not store.is_authenticated
        assert not orchestrator.is_busy

    @pytest.mark.asyncio
    async def test_login_extraction_failure_does_not_authenticate(self, orchestrator, store, mock_extractor):
        store.save([0.5, 0.5])
        mock_extractor.extract.side_effect = ExtractionFailure("provider down")

        with pytest.raises(ExtractionFailure):
            await orchestrator.login()

        assert not store.is_authenticated

    @pytest.mark.asyncio
    async def test_dimension_mismatch_propagates(self, orchestrator, store, mock_extractor):
        store.save([0.1, 0.2, 0.3])
        mock_extractor.extract.return_value = [0.1, 0.2, 0.3, 0.4]

        with pytest.raises(DimensionMismatch):
            await orchestrator.login()

        assert not store.is_authenticated

    @pytest.mark.asyncio
    async def test_capture_failure_skips_extraction(self, orchestrator, mock_capture, mock_extractor, store):
        mock_capture.record.side_effect = CaptureError("No audio data captured")

        with pytest.raises(CaptureError):
            await orchestrator.enroll()

        mock_extractor.extract.assert_not_awaited()
        assert store.load() is None

    @pytest.mark.asyncio
    async def test_concurrent_attempt_rejected(self, orchestrator, mock_extractor, store):
        """A second attempt while the first awaits extraction raises AttemptInProgress."""
        release = asyncio.Event()

        async def slow_extract(audio):
            await release.wait()
            return [0.1, 0.2]

        mock_extractor.extract.side_effect = slow_extract
        first = asyncio.create_task(orchestrator.enroll())
        await asyncio.sleep(0)

        assert orchestrator.is_busy
        with pytest.raises(AttemptInProgress):
            await orchestrator.login()

        release.set()
        assert await first == [0.1, 0.2]
        assert not orchestrator.is_busy
        assert store.load() == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_enroll_audio_without_capture(self, mock_extractor, store, sample_audio):
        orchestrator = AuthenticationOrchestrator(None, mock_extractor, store)

        await orchestrator.enroll_audio(sample_audio)
        result = await orchestrator.login_audio(sample_audio)

        assert result.is_authenticated

    @pytest.mark.asyncio
    async def test_record_without_capture_raises(self, mock_extractor, store):
        orchestrator = AuthenticationOrchestrator(None, mock_extractor, store)

        with pytest.raises(AuthenticationError, match="No capture controller"):
            await orchestrator.enroll()

    def test_logout_clears_credential(self, orchestrator, store):
        store.save([0.1, 0.2])
        store.mark_authenticated()

        orchestrator.logout()

        assert store.load() is None
        assert not store.is_authenticated

    def test_logout_can_keep_credential(self, mock_capture, mock_extractor, store):
        orchestrator = AuthenticationOrchestrator(
            mock_capture, mock_extractor, store, clear_credential_on_logout=False
        )
        store.save([0.1, 0.2])
        store.mark_authenticated()

        orchestrator.logout()

        assert store.load() == [0.1, 0.2]
        assert not store.is_authenticated

    @pytest.mark.asyncio
    async def test_with_real_capture_controller(self, source_factory, mock_extractor, store):
        """Enrollment drives a real controller: record, extract, persist, release."""
        source = source_factory()
        controller = AudioCaptureController(source, recording_seconds=1 / 16, tick_interval=1 / 64)
        orchestrator = AuthenticationOrchestrator(controller, mock_extractor, store)

        async with controller:
            await asyncio.wait_for(orchestrator.enroll(), 2)

        captured = mock_extractor.extract.await_args.args[0]
        assert captured.data == b"\x01\x02\x03\x04"
        assert store.load() == [0.1, 0.2, 0.3, 0.4]
        assert source.released == 1
