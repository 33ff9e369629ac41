"""Data models shared across the image curation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Tuple


class Grade(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


class ContentCategory(str, Enum):
    """Semantic role reported by the content analysis service."""

    MAIN = "main"
    DETAIL = "detail"
    LIFESTYLE = "lifestyle"
    SPECIFICATION = "specification"
    OTHER = "other"
    UNKNOWN = "unknown"


class PageSection(str, Enum):
    """Product page section an image can be placed in."""

    MAIN = "main"
    DETAIL = "detail"
    LIFESTYLE = "lifestyle"
    SPECIFICATION = "specification"


# Exact section <-> category correspondence used for affinity scoring.
SECTION_CATEGORY: Mapping[PageSection, ContentCategory] = {
    PageSection.MAIN: ContentCategory.MAIN,
    PageSection.DETAIL: ContentCategory.DETAIL,
    PageSection.LIFESTYLE: ContentCategory.LIFESTYLE,
    PageSection.SPECIFICATION: ContentCategory.SPECIFICATION,
}


@dataclass(frozen=True, slots=True)
class QualityAssessment:
    """Weighted quality verdict for a single image."""

    components: Mapping[str, float]
    overall_score: float
    grade: Grade
    recommendation: str


@dataclass(frozen=True, slots=True)
class ContentFeatures:
    """Comparable view of the external content analysis for one image."""

    category: ContentCategory = ContentCategory.UNKNOWN
    attributes: frozenset[str] = frozenset()
    confidence: float = 0.0

    @property
    def is_unknown(self) -> bool:
        return self.category is ContentCategory.UNKNOWN


UNKNOWN_CONTENT = ContentFeatures()


@dataclass(frozen=True, slots=True)
class ImageRecord:
    """Unit flowing through every stage; *image_url* is the identity key."""

    image_url: str
    quality: QualityAssessment | None = None
    content: ContentFeatures | None = None
    width: int | None = None
    height: int | None = None

    @property
    def quality_score(self) -> float:
        return self.quality.overall_score if self.quality is not None else 0.0

    @property
    def category(self) -> ContentCategory:
        return self.content.category if self.content is not None else ContentCategory.UNKNOWN

    @property
    def confidence(self) -> float:
        return self.content.confidence if self.content is not None else 0.0

    @property
    def area(self) -> int | None:
        if not self.width or not self.height:
            return None
        return int(self.width) * int(self.height)


@dataclass(frozen=True, slots=True)
class SimilarityGroup:
    """Images judged mutually redundant, in input batch order.

    *positions* holds the batch index of each member and lines up with
    *members*.
    """

    members: Tuple[ImageRecord, ...]
    positions: Tuple[int, ...]

    def __len__(self) -> int:
        return len(self.members)

    @property
    def urls(self) -> Tuple[str, ...]:
        return tuple(member.image_url for member in self.members)


@dataclass(frozen=True, slots=True)
class DiversityResult:
    """One representative per group, plus category-bucketed recommendations."""

    diverse_set: Tuple[ImageRecord, ...] = ()
    by_category: Mapping[ContentCategory, Tuple[ImageRecord, ...]] = field(
        default_factory=dict
    )
    groups: Tuple[SimilarityGroup, ...] = ()


@dataclass(frozen=True, slots=True)
class SectionAssignment:
    """Outcome of placing a diverse set into page sections."""

    by_section: Mapping[PageSection, Tuple[ImageRecord, ...]] = field(
        default_factory=dict
    )
    unassigned: Tuple[ImageRecord, ...] = ()
    shortfalls: Mapping[PageSection, int] = field(default_factory=dict)

    @property
    def delivered(self) -> int:
        return sum(len(images) for images in self.by_section.values())


@dataclass(frozen=True, slots=True)
class LayoutRecommendation:
    layout: str
    columns: int | None = None
