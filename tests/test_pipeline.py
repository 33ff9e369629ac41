from __future__ import annotations

import threading

import pytest

from image_curation.analysis.cache import AnalysisCache
from image_curation.config import DiversityOptions, SectionRequirements
from image_curation.errors import BatchCancelled, InvalidInput, UpstreamDegraded
from image_curation.features.measure import RawMeasurement
from image_curation.features.quality import assess
from image_curation.io.models import ContentCategory, ImageRecord, PageSection
from image_curation.pipeline import (
    analyze_diversity,
    assess_batch,
    curate_batch,
    describe_batch,
    match_sections,
)


def _flat(score: float) -> dict[str, float]:
    return {
        "resolution": score,
        "sharpness": score,
        "noise": score,
        "color_quality": score,
        "lighting": score,
        "compression": score,
    }


_SCORES = {
    "https://cdn.example.com/front-1.jpg": 0.6,
    "https://cdn.example.com/front-2.jpg": 0.9,
    "https://cdn.example.com/zip.jpg": 0.8,
}

_PAYLOADS = {
    "https://cdn.example.com/front-1.jpg": {
        "category": "main", "attributes": ["shoe", "white"], "confidence": 0.9,
    },
    "https://cdn.example.com/front-2.jpg": {
        "category": "main", "attributes": ["Shoe", "white"], "confidence": 0.95,
    },
    "https://cdn.example.com/zip.jpg": {
        "category": "detail", "attributes": ["zip", "metal"], "confidence": 0.8,
    },
}


def _fake_measure(url: str) -> RawMeasurement:
    return RawMeasurement(metrics=_flat(_SCORES.get(url, 0.5)), width=1000, height=1000, format="jpg")


def _fake_analyzer(url: str) -> dict:
    return _PAYLOADS[url]


def test_analyze_diversity_collapses_duplicates(five_image_batch):
    result = analyze_diversity(five_image_batch)

    urls = [image.image_url for image in result.diverse_set]
    assert urls == [
        "https://cdn.example.com/b.jpg",
        "https://cdn.example.com/c.jpg",
        "https://cdn.example.com/d.jpg",
        "https://cdn.example.com/e.jpg",
    ]
    assert len(result.groups) == 4
    assert [image.image_url for image in result.by_category[ContentCategory.MAIN]] == [
        "https://cdn.example.com/b.jpg"
    ]


def test_analyze_diversity_rejects_empty_batch():
    with pytest.raises(InvalidInput):
        analyze_diversity([])


def test_analyze_diversity_rejects_foreign_entries(record_factory):
    with pytest.raises(InvalidInput):
        analyze_diversity([record_factory("https://x/a.jpg"), {"imageUrl": "https://x/b.jpg"}])


def test_match_sections_fills_and_reports(five_image_batch):
    requirements = SectionRequirements.from_payload(
        {"sectionCounts": {"main": 1, "detail": 1, "lifestyle": 2}}
    )

    assignment = match_sections(five_image_batch, requirements)

    by_section = {
        section: [image.image_url for image in images]
        for section, images in assignment.by_section.items()
    }
    assert by_section == {
        PageSection.MAIN: ["https://cdn.example.com/b.jpg"],
        PageSection.DETAIL: ["https://cdn.example.com/c.jpg"],
        PageSection.LIFESTYLE: ["https://cdn.example.com/d.jpg"],
    }
    assert assignment.shortfalls == {PageSection.LIFESTYLE: 1}
    assert [image.image_url for image in assignment.unassigned] == [
        "https://cdn.example.com/e.jpg"
    ]


def test_assess_batch_applies_weights():
    results = assess_batch(
        [{"resolution": 1.0, "sharpness": 0.0}, {"resolution": 0.5}],
        weights={"sharpness": 0.0},
    )

    assert [result.overall_score for result in results] == [1.0, 0.5]
    with pytest.raises(InvalidInput):
        assess_batch([])


def test_assess_batch_reweights_images():
    record = ImageRecord(
        image_url="https://x/a.jpg", quality=assess({"resolution": 1.0, "sharpness": 0.0})
    )
    assert record.quality.overall_score == 0.5

    results = assess_batch(
        [record, RawMeasurement(metrics={"noise": 0.8})], weights={"sharpness": 0.0}
    )

    assert [result.overall_score for result in results] == [1.0, 0.8]
    with pytest.raises(InvalidInput):
        assess_batch([ImageRecord(image_url="https://x/unmeasured.jpg")])


def test_describe_batch_keeps_input_order():
    urls = list(_SCORES)

    records = describe_batch(urls, measure=_fake_measure, analyzer=_fake_analyzer, max_workers=3)

    assert [record.image_url for record in records] == urls
    assert records[2].category is ContentCategory.DETAIL
    assert records[1].content.attributes == frozenset({"shoe", "white"})
    assert records[1].quality.overall_score == pytest.approx(0.9)
    assert (records[0].width, records[0].height) == (1000, 1000)


def test_describe_batch_degrades_failed_images():
    def measure(url):
        if "broken" in url:
            raise RuntimeError("decoder exploded")
        return _flat(0.7)

    def analyzer(url):
        if "broken" in url:
            raise UpstreamDegraded(url, "timeout")
        return {"category": "lifestyle", "attributes": ["beach"]}

    records = describe_batch(
        ["https://x/ok.jpg", "https://x/broken.jpg"], measure=measure, analyzer=analyzer
    )

    assert records[0].category is ContentCategory.LIFESTYLE
    assert records[0].confidence == 1.0
    assert records[1].quality is None
    assert records[1].quality_score == 0.0
    assert records[1].content.is_unknown


def test_describe_batch_without_analyzer_is_unknown():
    records = describe_batch(["https://x/a.jpg"], measure=lambda url: _flat(0.5))

    assert records[0].content.is_unknown
    assert records[0].width is None


def test_describe_batch_rejects_blank_urls():
    with pytest.raises(InvalidInput):
        describe_batch([])
    with pytest.raises(InvalidInput):
        describe_batch(["https://x/a.jpg", "  "], measure=_fake_measure)


def test_cache_avoids_repeat_analysis():
    calls = []
    lock = threading.Lock()

    def analyzer(url):
        with lock:
            calls.append(url)
        return _PAYLOADS[url]

    cache = AnalysisCache()
    urls = list(_PAYLOADS)
    first = describe_batch(urls, measure=_fake_measure, analyzer=analyzer, cache=cache)
    second = describe_batch(urls, measure=_fake_measure, analyzer=analyzer, cache=cache)

    assert sorted(calls) == sorted(urls)
    assert [record.content for record in first] == [record.content for record in second]
    assert len(cache) == 3


def test_preset_cancel_raises_before_work():
    calls = []
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(BatchCancelled):
        describe_batch(
            ["https://x/a.jpg"], measure=lambda url: calls.append(url) or _flat(0.5),
            cancel_event=cancel,
        )
    assert calls == []


def test_cancel_during_batch_discards_results():
    cancel = threading.Event()
    release = threading.Event()
    calls = []

    def measure(url):
        calls.append(url)
        cancel.set()
        release.wait(5)
        return _flat(0.5)

    try:
        with pytest.raises(BatchCancelled):
            curate_batch(
                ["https://x/a.jpg", "https://x/b.jpg", "https://x/c.jpg"],
                measure=measure,
                max_workers=1,
                cancel_event=cancel,
            )
        assert calls == ["https://x/a.jpg"]
    finally:
        release.set()


def test_curate_batch_end_to_end():
    requirements = SectionRequirements.from_payload(
        {"sectionCounts": {"main": 1, "detail": 1}, "preferLargeImages": ["main"]}
    )

    result = curate_batch(
        list(_SCORES),
        measure=_fake_measure,
        analyzer=_fake_analyzer,
        options=DiversityOptions(similarity_threshold=0.8),
        requirements=requirements,
        max_workers=2,
    )

    assert len(result.records) == 3
    assert [image.image_url for image in result.diversity.diverse_set] == [
        "https://cdn.example.com/front-2.jpg",
        "https://cdn.example.com/zip.jpg",
    ]
    assert result.edges and result.edges[0][:2] == (0, 1)
    main = result.assignment.by_section[PageSection.MAIN]
    assert [image.image_url for image in main] == ["https://cdn.example.com/front-2.jpg"]
    assert result.assignment.shortfalls == {}
    assert result.assignment.unassigned == ()


def test_curate_batch_without_requirements_skips_allocation():
    result = curate_batch(list(_SCORES), measure=_fake_measure, analyzer=_fake_analyzer)

    assert result.assignment is None
    assert len(result.diversity.diverse_set) == 2
