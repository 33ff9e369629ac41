"""Weighted quality scoring for product images."""

from __future__ import annotations

import logging
import math
from typing import Iterable, Mapping, Sequence, Tuple

from ..config import METRIC_NAMES, QualityConfig
from ..errors import InvalidInput
from ..io.models import Grade, QualityAssessment

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT = 1.0

GRADE_THRESHOLDS: Tuple[Tuple[float, Grade], ...] = (
    (0.85, Grade.A),
    (0.7, Grade.B),
    (0.55, Grade.C),
    (0.4, Grade.D),
)

RECOMMENDATIONS: dict[str, str] = {
    "resolution": "increase resolution",
    "sharpness": "improve focus and sharpness",
    "noise": "reduce image noise",
    "color_quality": "improve color accuracy",
    "lighting": "improve lighting",
    "compression": "reduce compression artifacts",
}

_METRIC_ALIASES = {
    "colorQuality": "color_quality",
    "color": "color_quality",
}


def clamp_unit(value: float) -> float:
    """Return *value* clamped into the unit interval; NaN becomes 0."""
    number = float(value)
    if math.isnan(number):
        return 0.0
    return max(0.0, min(1.0, number))


def grade_for(score: float) -> Grade:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return Grade.F


def normalize_metrics(raw_metrics: Mapping[str, float]) -> dict[str, float]:
    """Return the recognised metrics of *raw_metrics*, clamped and in canonical order."""
    present: dict[str, float] = {}
    for key, value in raw_metrics.items():
        name = _METRIC_ALIASES.get(key, key)
        if name not in RECOMMENDATIONS:
            logger.debug("Ignoring unknown quality metric %r", key)
            continue
        if value is None:
            continue
        try:
            present[name] = clamp_unit(value)
        except (TypeError, ValueError):
            logger.debug("Ignoring non-numeric value for metric %r", key)
    return {name: present[name] for name in METRIC_NAMES if name in present}


def resolve_weights(weights: Mapping[str, float] | None) -> dict[str, float]:
    resolved = {name: DEFAULT_WEIGHT for name in METRIC_NAMES}
    for key, weight in (weights or {}).items():
        name = _METRIC_ALIASES.get(key, key)
        if name in resolved and weight is not None:
            resolved[name] = max(0.0, float(weight))
    return resolved


def assess(
    raw_metrics: Mapping[str, float],
    weights: Mapping[str, float] | None = None,
) -> QualityAssessment:
    """Combine per-metric scores into a weighted overall score and grade.

    Out-of-range metrics are clamped. Metrics missing from *raw_metrics* do not
    contribute to either side of the weighted mean. If every weight of the
    supplied metrics is zero the plain mean is used instead.
    """
    components = normalize_metrics(raw_metrics or {})
    if not components:
        raise InvalidInput("quality assessment requires at least one metric")

    resolved = resolve_weights(weights)
    total_weight = sum(resolved[name] for name in components)
    if total_weight > 0:
        weighted = sum(value * resolved[name] for name, value in components.items())
        score = weighted / total_weight
    else:
        score = sum(components.values()) / len(components)
    score = round(clamp_unit(score), 4)

    # min() keeps the first metric in canonical order on ties.
    weakest = min(components, key=lambda name: components[name])
    return QualityAssessment(
        components=components,
        overall_score=score,
        grade=grade_for(score),
        recommendation=RECOMMENDATIONS[weakest],
    )


def assess_batch(
    raw_metrics: Iterable[Mapping[str, float]],
    config: QualityConfig | None = None,
) -> list[QualityAssessment]:
    weights = config.weight_factors if config is not None else None
    return [assess(metrics, weights) for metrics in raw_metrics]


def rank_by_quality(assessed: Sequence[Tuple[str, QualityAssessment]]) -> list[str]:
    """Return image URLs ordered by descending overall score (stable on ties)."""
    ordered = sorted(assessed, key=lambda item: -item[1].overall_score)
    return [url for url, _ in ordered]


def filter_by_quality(
    assessed: Sequence[Tuple[str, QualityAssessment]],
    min_score: float = 0.7,
    min_resolution: float = 0.6,
) -> list[str]:
    """Return URLs meeting both the overall and the resolution score floors."""
    return [
        url
        for url, assessment in assessed
        if assessment.overall_score >= min_score
        and assessment.components.get("resolution", 0.0) >= min_resolution
    ]
