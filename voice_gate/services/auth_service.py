"""
Authentication orchestration for voice enrollment and login.

This module composes the pipeline stages:
- Capture a clip from the audio capture controller
- Extract an embedding through the configured extractor
- Score it against the stored voiceprint and apply the threshold policy
- Persist the voiceprint and session flag in the credential store
"""

import logging
import time
from typing import Callable, List, Optional, Sequence

from voice_gate.capture.controller import AudioCaptureController
from voice_gate.clients.extraction_client import EmbeddingExtractor, ExtractionFailure
from voice_gate.config import settings
from voice_gate.models.internal_models import AuthenticationResult, EncodedAudio
from voice_gate.observability import record_enrollment_metrics, record_login_metrics
from voice_gate.services.credential_store import CredentialStore
from voice_gate.services.decision import DecisionEngine
from voice_gate.services.similarity import cosine_similarity

logger = logging.getLogger(__name__)

Scorer = Callable[[Sequence[float], Sequence[float]], float]


class AuthenticationError(Exception):
    """Base exception for orchestration errors."""
    pass


class EmptyCredential(AuthenticationError):
    """Raised when a login is attempted with no enrolled voiceprint."""
    pass


class AttemptInProgress(AuthenticationError):
    """Raised when an attempt starts while another is still running."""
    pass


class AuthenticationOrchestrator:
    """
    Runs enrollment and login attempts, one at a time.

    Stages within an attempt run strictly in order: extraction starts only once
    capture has completed, and the decision only once extraction has.
    """

    def __init__(
        self,
        capture: Optional[AudioCaptureController],
        extractor: EmbeddingExtractor,
        store: CredentialStore,
        decision_engine: Optional[DecisionEngine] = None,
        scorer: Scorer = cosine_similarity,
        clear_credential_on_logout: Optional[bool] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            capture: Capture controller; may be None when clips arrive pre-recorded
            extractor: Embedding extraction backend
            store: Credential store holding the voiceprint and session flag
            decision_engine: Threshold policy. If None, uses the configured threshold.
            scorer: Similarity function
            clear_credential_on_logout: Whether logout also deletes the voiceprint.
                If None, uses the configured value.
        """
        self.capture = capture
        self.extractor = extractor
        self.store = store
        self.decision_engine = decision_engine or DecisionEngine()
        self.scorer = scorer
        if clear_credential_on_logout is None:
            clear_credential_on_logout = settings.clear_credential_on_logout
        self.clear_credential_on_logout = clear_credential_on_logout
        self._busy = False

        logger.info(f"Authentication orchestrator initialized with threshold: {self.decision_engine.threshold}")

    @property
    def is_busy(self) -> bool:
        return self._busy

    def _begin(self) -> None:
        if self._busy:
            raise AttemptInProgress("An authentication attempt is already in progress")
        self._busy = True

    async def _capture(self, duration_seconds: Optional[float]) -> EncodedAudio:
        if self.capture is None:
            raise AuthenticationError("No capture controller configured")
        return await self.capture.record(duration_seconds)

    async def enroll(self, duration_seconds: Optional[float] = None) -> List[float]:
        """
        Record a clip and enroll it as the voiceprint.

        Returns:
            The stored embedding

        Raises:
            AttemptInProgress: If another attempt is running
            CaptureError: If recording fails
            ExtractionFailure: If no embedding could be extracted
        """
        self._begin()
        try:
            audio = await self._capture(duration_seconds)
            return await self._enroll(audio)
        finally:
            self._busy = False

    async def enroll_audio(self, audio: EncodedAudio) -> List[float]:
        """Enroll from an already recorded clip."""
        self._begin()
        try:
            return await self._enroll(audio)
        finally:
            self._busy = False

    async def _enroll(self, audio: EncodedAudio) -> List[float]:
        start_time = time.time()
        logger.info("Starting enrollment")

        try:
            embedding = await self.extractor.extract(audio)
        except ExtractionFailure as e:
            logger.error(f"Enrollment failed during extraction: {e}")
            record_enrollment_metrics(success=False, processing_time=time.time() - start_time)
            raise

        self.store.save(embedding)
        self.store.mark_authenticated()
        record_enrollment_metrics(success=True, processing_time=time.time() - start_time)

        logger.info(f"Enrollment completed: voiceprint with {len(embedding)} dimensions saved")
        return embedding

    async def login(self, duration_seconds: Optional[float] = None) -> AuthenticationResult:
        """
        Record a clip and compare it against the stored voiceprint.

        The stored voiceprint is checked before recording starts.

        Returns:
            AuthenticationResult; a rejection is a result, not an exception

        Raises:
            EmptyCredential: If no voiceprint is enrolled
            AttemptInProgress: If another attempt is running
            CaptureError: If recording fails
            ExtractionFailure: If no embedding could be extracted
            DimensionMismatch: If the fresh and stored embeddings differ in length
        """
        self._begin()
        try:
            stored = self._load_credential()
            audio = await self._capture(duration_seconds)
            return await self._login(audio, stored)
        finally:
            self._busy = False

    async def login_audio(self, audio: EncodedAudio) -> AuthenticationResult:
        """Log in from an already recorded clip."""
        self._begin()
        try:
            stored = self._load_credential()
            return await self._login(audio, stored)
        finally:
            self._busy = False

    def _load_credential(self) -> List[float]:
        stored = self.store.load()
        if stored is None:
            logger.warning("Login attempted without an enrolled voiceprint")
            raise EmptyCredential("No voiceprint found. Please enroll first.")
        return stored

    async def _login(self, audio: EncodedAudio, stored: List[float]) -> AuthenticationResult:
        start_time = time.time()
        logger.info("Starting login")

        try:
            recorded = await self.extractor.extract(audio)
        except ExtractionFailure as e:
            logger.error(f"Login failed during extraction: {e}")
            record_login_metrics(success=False, processing_time=time.time() - start_time, similarity_score=None)
            raise

        score = self.scorer(recorded, stored)
        result = self.decision_engine.decide(score)
        record_login_metrics(
            success=result.is_authenticated,
            processing_time=time.time() - start_time,
            similarity_score=score
        )

        if result.is_authenticated:
            self.store.mark_authenticated()
            logger.info(f"Voice login successful: similarity={score:.4f}")
        else:
            logger.info(
                f"Voice login rejected: similarity {score:.4f} not above threshold {self.decision_engine.threshold}"
            )

        return result

    def logout(self) -> None:
        """End the session; also deletes the voiceprint unless configured otherwise."""
        if self.clear_credential_on_logout:
            self.store.clear()
        else:
            self.store.clear_session()
        logger.info(f"Logged out (voiceprint cleared: {self.clear_credential_on_logout})")
