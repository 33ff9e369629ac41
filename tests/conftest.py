from __future__ import annotations

from typing import Iterable

import pytest

from image_curation.config import METRIC_NAMES
from image_curation.features.quality import assess
from image_curation.io.models import ContentCategory, ContentFeatures, ImageRecord


def make_record(
    url: str,
    score: float | None = 0.7,
    category: ContentCategory = ContentCategory.UNKNOWN,
    attributes: Iterable[str] = (),
    confidence: float | None = None,
    width: int | None = None,
    height: int | None = None,
) -> ImageRecord:
    quality = assess({name: score for name in METRIC_NAMES}) if score is not None else None
    if confidence is None:
        confidence = 0.0 if category is ContentCategory.UNKNOWN else 1.0
    content = ContentFeatures(
        category=category, attributes=frozenset(attributes), confidence=confidence
    )
    return ImageRecord(
        image_url=url, quality=quality, content=content, width=width, height=height
    )


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def five_image_batch():
    """Two MAIN near-duplicates plus three distinct images."""
    return [
        make_record("https://cdn.example.com/a.jpg", 0.6, ContentCategory.MAIN, {"shoe", "white"}),
        make_record("https://cdn.example.com/b.jpg", 0.9, ContentCategory.MAIN, {"shoe", "white"}),
        make_record("https://cdn.example.com/c.jpg", 0.8, ContentCategory.DETAIL, {"sole", "texture"}),
        make_record("https://cdn.example.com/d.jpg", 0.7, ContentCategory.LIFESTYLE, {"street", "model"}),
        make_record("https://cdn.example.com/e.jpg", 0.5, ContentCategory.SPECIFICATION, {"chart"}),
    ]
