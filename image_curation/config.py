"""Configuration for the curation stages and the vision service client."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from .errors import InvalidInput
from .io.models import PageSection

METRIC_NAMES: tuple[str, ...] = (
    "resolution",
    "sharpness",
    "noise",
    "color_quality",
    "lighting",
    "compression",
)

DEFAULT_SIMILARITY_THRESHOLD: float = 0.8
DEFAULT_MAX_WORKERS: int = 4

VISION_BASE_URL = "https://api.openai.com"
VISION_MODEL = "gpt-4o-mini"
VISION_TIMEOUT_S = 20.0


def _check_unit(name: str, value: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"{name} must be a number, got {value!r}") from exc
    if math.isnan(number) or not 0.0 <= number <= 1.0:
        raise InvalidInput(f"{name} must lie in [0, 1], got {value!r}")
    return number


@dataclass(frozen=True)
class QualityConfig:
    """Per-metric weights; metrics without an entry weigh 1.0."""

    weight_factors: Mapping[str, float] | None = None

    def __post_init__(self) -> None:
        if self.weight_factors is None:
            return
        for name, weight in self.weight_factors.items():
            if not isinstance(weight, (int, float)) or isinstance(weight, bool):
                raise InvalidInput(f"weight for {name!r} must be numeric")


@dataclass(frozen=True)
class ClusterConfig:
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    category_weight: float = 0.5
    attribute_weight: float = 0.5

    def __post_init__(self) -> None:
        _check_unit("similarity_threshold", self.similarity_threshold)
        _check_unit("category_weight", self.category_weight)
        _check_unit("attribute_weight", self.attribute_weight)
        if self.category_weight + self.attribute_weight <= 0:
            raise InvalidInput("category_weight and attribute_weight cannot both be 0")


@dataclass(frozen=True)
class DiversityOptions:
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    category_cap: int | None = None

    def __post_init__(self) -> None:
        _check_unit("similarity_threshold", self.similarity_threshold)
        if self.category_cap is not None:
            if isinstance(self.category_cap, bool) or not isinstance(self.category_cap, int):
                raise InvalidInput("category_cap must be an integer")
            if self.category_cap < 0:
                raise InvalidInput("category_cap cannot be negative")

    def cluster_config(self) -> ClusterConfig:
        return ClusterConfig(similarity_threshold=self.similarity_threshold)


@dataclass(frozen=True)
class AllocationConfig:
    """Suitability weights and category affinities for section allocation.

    Candidates whose affinity for a section is below *min_affinity* are not
    eligible for that section.
    """

    affinity_weight: float = 0.5
    quality_weight: float = 0.35
    size_weight: float = 0.15
    exact_affinity: float = 1.0
    unknown_affinity: float = 0.5
    mismatch_affinity: float = 0.1
    min_affinity: float = 0.5

    def __post_init__(self) -> None:
        for name in (
            "affinity_weight",
            "quality_weight",
            "size_weight",
            "exact_affinity",
            "unknown_affinity",
            "mismatch_affinity",
            "min_affinity",
        ):
            _check_unit(name, getattr(self, name))


@dataclass(frozen=True)
class SectionRequest:
    count: int
    prefer_large: bool = False


@dataclass(frozen=True)
class SectionRequirements:
    """Requested image count per section, in declaration order."""

    section_counts: Mapping[PageSection, int] = field(default_factory=dict)
    prefer_large_images: frozenset[PageSection] = frozenset()

    def __post_init__(self) -> None:
        for section, count in self.section_counts.items():
            if not isinstance(section, PageSection):
                raise InvalidInput(f"unknown page section {section!r}")
            if isinstance(count, bool) or not isinstance(count, int) or count < 0:
                raise InvalidInput(f"count for {section.value} must be a non-negative integer")
        object.__setattr__(self, "prefer_large_images", frozenset(self.prefer_large_images))

    def requests(self) -> dict[PageSection, SectionRequest]:
        return {
            section: SectionRequest(count, section in self.prefer_large_images)
            for section, count in self.section_counts.items()
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SectionRequirements":
        """Build requirements from ``{"sectionCounts": {...}, "preferLargeImages": [...]}``."""
        raw_counts = payload.get("sectionCounts", payload.get("section_counts")) or {}
        if not isinstance(raw_counts, Mapping):
            raise InvalidInput("sectionCounts must be an object")
        counts = {parse_section(name): count for name, count in raw_counts.items()}
        raw_large = payload.get("preferLargeImages", payload.get("prefer_large_images")) or []
        if isinstance(raw_large, str) or not isinstance(raw_large, Iterable):
            raise InvalidInput("preferLargeImages must be a list of section names")
        return cls(
            section_counts=counts,
            prefer_large_images=frozenset(parse_section(name) for name in raw_large),
        )


def parse_section(name: Any) -> PageSection:
    if isinstance(name, PageSection):
        return name
    try:
        return PageSection(str(name).strip().lower())
    except ValueError as exc:
        raise InvalidInput(f"unknown page section {name!r}") from exc


@dataclass(frozen=True)
class AnalyzerSettings:
    """Connection settings for the external vision service."""

    api_key: str | None = None
    base_url: str = VISION_BASE_URL
    model: str = VISION_MODEL
    timeout_s: float = VISION_TIMEOUT_S
    max_workers: int = DEFAULT_MAX_WORKERS

    @classmethod
    def from_env(cls) -> "AnalyzerSettings":
        return cls(
            api_key=os.getenv("VISION_API_KEY") or None,
            base_url=os.getenv("VISION_BASE_URL", VISION_BASE_URL).rstrip("/"),
            model=os.getenv("VISION_MODEL", VISION_MODEL),
            timeout_s=_env_float("VISION_TIMEOUT_S", VISION_TIMEOUT_S),
            max_workers=max(1, int(_env_float("VISION_MAX_WORKERS", DEFAULT_MAX_WORKERS))),
        )


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return float(default)
