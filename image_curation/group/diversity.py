"""Pick one representative per redundancy group and bucket them by category."""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

from ..errors import InvalidInput
from ..io.models import (
    ContentCategory,
    DiversityResult,
    ImageRecord,
    SimilarityGroup,
)

logger = logging.getLogger(__name__)


def select_representative(group: SimilarityGroup) -> Tuple[ImageRecord, int]:
    """Return the best member of *group* and its batch position.

    Ordering: highest quality score, then highest content confidence, then
    earliest batch position.
    """
    if not group.members:
        raise InvalidInput("similarity group has no members")
    best_index = min(
        range(len(group.members)),
        key=lambda k: (
            -group.members[k].quality_score,
            -group.members[k].confidence,
            group.positions[k],
        ),
    )
    return group.members[best_index], group.positions[best_index]


def select(
    groups: Sequence[SimilarityGroup], category_cap: int | None = None
) -> DiversityResult:
    """Build the diverse set and the per-category recommendations.

    With *category_cap* each category list is truncated; representatives cut
    this way stay in ``diverse_set`` but are not recommended by category.
    """
    if category_cap is not None and category_cap < 0:
        raise InvalidInput("category_cap cannot be negative")
    if not groups:
        return DiversityResult()

    picks = [select_representative(group) for group in groups]
    picks.sort(key=lambda item: (-item[0].quality_score, item[1]))
    diverse_set = tuple(image for image, _ in picks)

    buckets: Dict[ContentCategory, List[ImageRecord]] = {}
    for image in diverse_set:
        buckets.setdefault(image.category, []).append(image)

    by_category: Dict[ContentCategory, Tuple[ImageRecord, ...]] = {}
    for category in ContentCategory:
        members = buckets.get(category)
        if not members:
            continue
        if category_cap is not None:
            members = members[:category_cap]
        by_category[category] = tuple(members)

    logger.debug(
        "Selected %d representatives from %d images",
        len(diverse_set),
        sum(len(group) for group in groups),
    )
    return DiversityResult(
        diverse_set=diverse_set, by_category=by_category, groups=tuple(groups)
    )
