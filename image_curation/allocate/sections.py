"""Assign diverse images to product page sections under capacity limits."""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Mapping, Sequence, Tuple, Union

from ..config import AllocationConfig, SectionRequest, SectionRequirements
from ..io.models import (
    SECTION_CATEGORY,
    ContentCategory,
    DiversityResult,
    ImageRecord,
    PageSection,
    SectionAssignment,
)

logger = logging.getLogger(__name__)

Requirements = Union[Mapping[PageSection, SectionRequest], SectionRequirements]


def category_affinity(
    section: PageSection,
    category: ContentCategory,
    config: AllocationConfig | None = None,
) -> float:
    config = config or AllocationConfig()
    if category is ContentCategory.UNKNOWN:
        return config.unknown_affinity
    if SECTION_CATEGORY.get(section) is category:
        return config.exact_affinity
    return config.mismatch_affinity


def large_image_urls(candidates: Sequence[ImageRecord]) -> frozenset[str]:
    """Return the URLs whose pixel area lies in the top half of *candidates*.

    Images without known dimensions never qualify. Ties at the cut-off are
    included.
    """
    areas = sorted(
        (area for area in (image.area for image in candidates) if area), reverse=True
    )
    if not areas:
        return frozenset()
    cutoff = areas[math.ceil(len(areas) / 2) - 1]
    return frozenset(
        image.image_url for image in candidates if image.area and image.area >= cutoff
    )


def suitability(
    section: PageSection,
    image: ImageRecord,
    prefer_large: bool,
    large_urls: frozenset[str],
    config: AllocationConfig | None = None,
) -> float:
    """Weighted mix of category affinity, quality and size preference."""
    config = config or AllocationConfig()
    size_bonus = 1.0 if prefer_large and image.image_url in large_urls else 0.0
    return (
        category_affinity(section, image.category, config) * config.affinity_weight
        + image.quality_score * config.quality_weight
        + size_bonus * config.size_weight
    )


def priority_order(requests: Mapping[PageSection, SectionRequest]) -> List[PageSection]:
    """Sections by descending requested count; ties keep declaration order."""
    declared = list(requests)
    return sorted(declared, key=lambda section: (-requests[section].count, declared.index(section)))


def allocate(
    diversity: DiversityResult,
    requirements: Requirements,
    config: AllocationConfig | None = None,
) -> SectionAssignment:
    """Greedily fill each section from the diverse set.

    Every image lands in at most one section. Sections that cannot be filled
    report the gap in ``shortfalls``; images left over are ``unassigned``.
    """
    config = config or AllocationConfig()
    requests = (
        requirements.requests()
        if isinstance(requirements, SectionRequirements)
        else dict(requirements)
    )
    candidates = diversity.diverse_set
    large_urls = large_image_urls(candidates)

    taken = [False] * len(candidates)
    by_section: Dict[PageSection, Tuple[ImageRecord, ...]] = {}
    shortfalls: Dict[PageSection, int] = {}

    for section in priority_order(requests):
        request = requests[section]
        ranked = sorted(
            (
                (suitability(section, image, request.prefer_large, large_urls, config), position)
                for position, image in enumerate(candidates)
                if not taken[position]
                and category_affinity(section, image.category, config) >= config.min_affinity
            ),
            key=lambda item: (-item[0], item[1]),
        )
        chosen = [position for _, position in ranked[: request.count]]
        for position in chosen:
            taken[position] = True
        by_section[section] = tuple(candidates[position] for position in chosen)
        if len(chosen) < request.count:
            shortfalls[section] = request.count - len(chosen)
            logger.info(
                "Section %s short by %d image(s)", section.value, shortfalls[section]
            )

    # Report sections in declaration order rather than processing order.
    ordered = {section: by_section[section] for section in requests}
    unassigned = tuple(image for position, image in enumerate(candidates) if not taken[position])
    return SectionAssignment(by_section=ordered, unassigned=unassigned, shortfalls=shortfalls)
