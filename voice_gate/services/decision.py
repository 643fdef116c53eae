"""Threshold policy turning a similarity score into an authentication decision."""

import logging
from typing import Optional

from voice_gate.config import settings
from voice_gate.models.internal_models import AuthenticationResult

logger = logging.getLogger(__name__)


class DecisionEngine:
    """Strict threshold check: a score equal to the threshold is rejected."""

    def __init__(self, threshold: Optional[float] = None):
        if threshold is None:
            threshold = settings.voice_threshold
        if not -1.0 <= threshold <= 1.0:
            raise ValueError(f"Threshold must be between -1.0 and 1.0, got: {threshold}")
        self.threshold = threshold

    def decide(self, score: float) -> AuthenticationResult:
        is_authenticated = score > self.threshold
        logger.debug(f"Decision: score={score:.4f}, threshold={self.threshold}, authenticated={is_authenticated}")
        return AuthenticationResult(score=score, is_authenticated=is_authenticated)
