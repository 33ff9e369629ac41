"""Similarity scoring between image content descriptions."""

from __future__ import annotations

from typing import Iterator, Sequence, Tuple

import numpy as np

from ..config import ClusterConfig
from ..io.models import UNKNOWN_CONTENT, ContentFeatures, ImageRecord

# Value a pair is pulled toward as confidence drops.
NEUTRAL_SIMILARITY: float = 0.5

Edge = Tuple[int, int, float]


def jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    """Return the Jaccard overlap of two tag sets; two empty sets score 0."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def base_similarity(
    fA: ContentFeatures, fB: ContentFeatures, config: ClusterConfig | None = None
) -> float:
    """Return the undamped similarity of two descriptions.

    The category term counts only when both categories are known; otherwise the
    attribute overlap stands alone.
    """
    config = config or ClusterConfig()
    overlap = jaccard(fA.attributes, fB.attributes)
    if fA.is_unknown or fB.is_unknown:
        return overlap
    category_match = 1.0 if fA.category == fB.category else 0.0
    total = config.category_weight + config.attribute_weight
    score = (config.category_weight * category_match + config.attribute_weight * overlap) / total
    return float(max(0.0, min(1.0, score)))


def combined_similarity(
    fA: ContentFeatures | None,
    fB: ContentFeatures | None,
    config: ClusterConfig | None = None,
) -> float:
    """Return the confidence-damped similarity of two descriptions in [0, 1].

    The pair confidence is the lower of the two; at confidence 0 every pair
    scores ``NEUTRAL_SIMILARITY``.
    """
    fA = fA or UNKNOWN_CONTENT
    fB = fB or UNKNOWN_CONTENT
    confidence = min(fA.confidence, fB.confidence)
    raw = base_similarity(fA, fB, config)
    score = confidence * raw + (1.0 - confidence) * NEUTRAL_SIMILARITY
    return float(max(0.0, min(1.0, score)))


def record_similarity(
    a: ImageRecord, b: ImageRecord, config: ClusterConfig | None = None
) -> float:
    if a.image_url == b.image_url:
        return 1.0
    return combined_similarity(a.content, b.content, config)


def similarity_matrix(
    images: Sequence[ImageRecord], config: ClusterConfig | None = None
) -> np.ndarray:
    """Return the symmetric n x n similarity matrix with a unit diagonal."""
    size = len(images)
    matrix = np.eye(size, dtype=float)
    for i in range(size):
        for j in range(i + 1, size):
            score = record_similarity(images[i], images[j], config)
            matrix[i, j] = matrix[j, i] = score
    return matrix


def pairwise_scores(
    images: Sequence[ImageRecord], config: ClusterConfig | None = None
) -> Iterator[Edge]:
    """Yield ``(i, j, score)`` for every pair at or above the link threshold."""
    config = config or ClusterConfig()
    matrix = similarity_matrix(images, config)
    linked = np.triu(matrix >= config.similarity_threshold, k=1)
    for i, j in np.argwhere(linked):
        yield (int(i), int(j), float(matrix[i, j]))
