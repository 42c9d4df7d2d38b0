"""Descriptor distance, similarity and best-match selection.

These pure functions power the identity step of a check-in. Descriptors are
always 128 ``float32`` values; comparing vectors of any other length is an
error rather than a silent fallback.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np

from .config import MatchingConfig
from .errors import DescriptorLengthError
from .types import DESCRIPTOR_LENGTH

logger = logging.getLogger(__name__)


class ConfidenceTier(str, Enum):
    HIGH = "high"
    STANDARD = "standard"


def _checked(vector: np.ndarray) -> np.ndarray:
    array = np.asarray(vector, dtype=np.float32)
    if array.ndim != 1 or array.shape[0] != DESCRIPTOR_LENGTH:
        raise DescriptorLengthError(int(array.size), DESCRIPTOR_LENGTH)
    return array


def round_half_up(value: float, places: int = 2) -> float:
    """Round ``value`` half-up to ``places`` decimals."""

    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


def descriptor_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Euclidean distance between two 128-length descriptors."""

    first = _checked(a).astype(np.float64)
    second = _checked(b).astype(np.float64)
    return float(np.linalg.norm(first - second))


def descriptor_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Similarity in [0, 1] defined as ``max(0, 1 - distance)``, rounded to 2 places."""

    return round_half_up(max(0.0, 1.0 - descriptor_distance(a, b)))


@dataclass(frozen=True)
class DescriptorMatch:
    """Best candidate for a query descriptor."""

    index: int
    similarity: float
    tier: ConfidenceTier


def confidence_tier(similarity: float, config: MatchingConfig) -> ConfidenceTier:
    if similarity >= config.high_confidence_threshold:
        return ConfidenceTier.HIGH
    return ConfidenceTier.STANDARD


def best_similarity(query: np.ndarray, candidates: Sequence[np.ndarray]) -> Optional[DescriptorMatch]:
    """Return the highest-similarity candidate regardless of any threshold.

    Ties resolve to the first candidate scanned.
    """

    best_index: Optional[int] = None
    best_value = -1.0
    for index, candidate in enumerate(candidates):
        similarity = descriptor_similarity(query, candidate)
        if similarity > best_value:
            best_index = index
            best_value = similarity

    if best_index is None:
        return None
    return DescriptorMatch(index=best_index, similarity=best_value, tier=ConfidenceTier.STANDARD)


def find_best_match(
    query: np.ndarray,
    candidates: Sequence[np.ndarray],
    threshold: Optional[float] = None,
    config: Optional[MatchingConfig] = None,
) -> Optional[DescriptorMatch]:
    """Return the best enrolled candidate whose similarity reaches ``threshold``.

    Args:
        query: Probe descriptor.
        candidates: Enrolled descriptors in storage order.
        threshold: Minimum similarity; defaults to the configured threshold.
        config: Matching configuration supplying defaults and the
            high-confidence boundary used for the reported tier.

    Returns:
        ``DescriptorMatch`` for the best candidate, or ``None`` when there are
        no candidates or the best similarity is below ``threshold``.
    """

    config = config or MatchingConfig()
    if threshold is None:
        threshold = config.similarity_threshold

    best = best_similarity(query, candidates)
    if best is None:
        return None
    if best.similarity < threshold:
        logger.debug("Best similarity %.2f below threshold %.2f", best.similarity, threshold)
        return None

    return DescriptorMatch(
        index=best.index,
        similarity=best.similarity,
        tier=confidence_tier(best.similarity, config),
    )


class DescriptorMatcher:
    """Configured facade over the matching functions."""

    def __init__(self, config: Optional[MatchingConfig] = None) -> None:
        self.config = config or MatchingConfig()

    @property
    def threshold(self) -> float:
        return self.config.similarity_threshold

    def best_candidate(self, query: np.ndarray, candidates: Sequence[np.ndarray]) -> Optional[DescriptorMatch]:
        return best_similarity(query, candidates)

    def match(self, query: np.ndarray, candidates: Sequence[np.ndarray]) -> Optional[DescriptorMatch]:
        return find_best_match(query, candidates, config=self.config)

    def evaluate(
        self, query: np.ndarray, candidates: Sequence[np.ndarray]
    ) -> Tuple[Optional[DescriptorMatch], Optional[DescriptorMatch]]:
        """Return the best candidate and, when it reaches the threshold, the accepted match."""

        best = best_similarity(query, candidates)
        if best is None or best.similarity < self.threshold:
            return best, None
        return best, DescriptorMatch(
            index=best.index,
            similarity=best.similarity,
            tier=confidence_tier(best.similarity, self.config),
        )


__all__ = [
    "ConfidenceTier",
    "DescriptorMatch",
    "DescriptorMatcher",
    "best_similarity",
    "confidence_tier",
    "descriptor_distance",
    "descriptor_similarity",
    "find_best_match",
    "round_half_up",
]
