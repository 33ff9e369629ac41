"""Layout suggestions for the images placed in a section."""

from __future__ import annotations

from typing import Dict, Sequence

from ..io.models import ImageRecord, LayoutRecommendation, PageSection, SectionAssignment


def recommend_layout(section: PageSection, images: Sequence[ImageRecord]) -> LayoutRecommendation:
    count = len(images)
    if count <= 1:
        return LayoutRecommendation("single")
    if section is PageSection.MAIN or section is PageSection.LIFESTYLE:
        return LayoutRecommendation("slider")
    if section is PageSection.DETAIL:
        return LayoutRecommendation("mosaic")
    if count <= 3:
        return LayoutRecommendation("grid", columns=count)
    return LayoutRecommendation("slider")


def recommend_layouts(assignment: SectionAssignment) -> Dict[PageSection, LayoutRecommendation]:
    """Layouts for every section that received at least one image."""
    return {
        section: recommend_layout(section, images)
        for section, images in assignment.by_section.items()
        if images
    }
