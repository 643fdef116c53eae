"""
Cosine similarity scoring for voice embeddings.
"""

import logging
from typing import Sequence

import numpy as np

logger = logging.getLogger(__name__)


class DimensionMismatch(ValueError):
    """Raised when two embeddings being compared differ in length."""
    pass


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Compute cosine similarity between two embeddings.

    A zero-magnitude vector on either side scores 0.0 rather than raising, so a
    null embedding is treated as maximally dissimilar.

    Args:
        a: First embedding vector
        b: Second embedding vector

    Returns:
        float: Cosine similarity score, nominally between -1 and 1

    Raises:
        DimensionMismatch: If the embeddings have different lengths
    """
    if len(a) != len(b):
        raise DimensionMismatch(f"Embedding dimensions don't match: {len(a)} vs {len(b)}")

    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)

    if norm_a == 0 or norm_b == 0:
        logger.debug("Zero-norm embedding in similarity check, scoring 0.0")
        return 0.0

    similarity = np.dot(vec_a, vec_b) / (norm_a * norm_b)

    # Rounding can push parallel vectors a hair past 1
    similarity = np.clip(similarity, -1.0, 1.0)

    logger.debug(f"Computed cosine similarity: {similarity}")
    return float(similarity)
