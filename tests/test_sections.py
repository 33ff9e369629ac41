from __future__ import annotations

import pytest

from image_curation.allocate.layouts import recommend_layout, recommend_layouts
from image_curation.allocate.sections import (
    allocate,
    category_affinity,
    large_image_urls,
    priority_order,
    suitability,
)
from image_curation.config import AllocationConfig, SectionRequest, SectionRequirements
from image_curation.errors import InvalidInput
from image_curation.features.content import describe
from image_curation.group.cluster import cluster
from image_curation.group.diversity import select
from image_curation.io.models import ContentCategory, DiversityResult, ImageRecord, PageSection

MAIN = ContentCategory.MAIN
DETAIL = ContentCategory.DETAIL
LIFESTYLE = ContentCategory.LIFESTYLE


def _diversity(images):
    return select(cluster(images))


def _urls(images):
    return [image.image_url for image in images]


def test_category_affinity_values():
    assert category_affinity(PageSection.MAIN, MAIN) == 1.0
    assert category_affinity(PageSection.MAIN, ContentCategory.UNKNOWN) == 0.5
    assert category_affinity(PageSection.MAIN, DETAIL) == 0.1
    assert category_affinity(PageSection.DETAIL, ContentCategory.OTHER) == 0.1


def test_suitability_weights(record_factory):
    image = record_factory("a", 0.8, MAIN, {"x"}, width=2000, height=2000)

    with_bonus = suitability(PageSection.MAIN, image, True, frozenset({"a"}))
    without = suitability(PageSection.MAIN, image, False, frozenset({"a"}))

    assert with_bonus == pytest.approx(0.5 + 0.8 * 0.35 + 0.15)
    assert without == pytest.approx(0.5 + 0.8 * 0.35)


def test_large_image_urls_top_half(record_factory):
    images = [
        record_factory("small", width=100, height=100),
        record_factory("medium", width=500, height=500),
        record_factory("large", width=1000, height=1000),
        record_factory("huge", width=3000, height=3000),
        record_factory("unsized"),
    ]

    assert large_image_urls(images) == frozenset({"large", "huge"})


def test_priority_order_prefers_larger_counts_then_declaration():
    requests = {
        PageSection.MAIN: SectionRequest(1),
        PageSection.DETAIL: SectionRequest(3),
        PageSection.LIFESTYLE: SectionRequest(1),
    }

    assert priority_order(requests) == [PageSection.DETAIL, PageSection.MAIN, PageSection.LIFESTYLE]


def test_scenario_detail_only_images_leave_main_short(record_factory):
    diversity = _diversity(
        [
            record_factory("d1", 0.6, DETAIL, {"a"}),
            record_factory("d2", 0.9, DETAIL, {"b"}),
        ]
    )
    requirements = SectionRequirements({PageSection.MAIN: 2, PageSection.DETAIL: 1})

    assignment = allocate(diversity, requirements)

    assert assignment.by_section[PageSection.MAIN] == ()
    assert assignment.shortfalls == {PageSection.MAIN: 2}
    assert _urls(assignment.by_section[PageSection.DETAIL]) == ["d2"]
    assert _urls(assignment.unassigned) == ["d1"]


def test_exclusive_assignment_and_conservation(record_factory):
    images = [
        record_factory("m1", 0.9, MAIN, {"a"}),
        record_factory("m2", 0.7, MAIN, {"b"}),
        record_factory("u1", 0.8, attributes={"c"}),
        record_factory("d1", 0.6, DETAIL, {"d"}),
        record_factory("l1", 0.5, LIFESTYLE, {"e"}),
    ]
    diversity = _diversity(images)
    requirements = SectionRequirements(
        {PageSection.MAIN: 2, PageSection.DETAIL: 2, PageSection.LIFESTYLE: 1}
    )

    assignment = allocate(diversity, requirements)

    placed = [url for images in assignment.by_section.values() for url in _urls(images)]
    assert len(placed) == len(set(placed))
    assert len(placed) + len(assignment.unassigned) == len(diversity.diverse_set)
    assert _urls(assignment.by_section[PageSection.MAIN]) == ["m1", "m2"]
    assert _urls(assignment.by_section[PageSection.DETAIL]) == ["d1", "u1"]
    assert _urls(assignment.by_section[PageSection.LIFESTYLE]) == ["l1"]
    assert assignment.shortfalls == {}


def test_larger_quota_picks_first(record_factory):
    # Both sections want the UNKNOWN image; DETAIL asks for more and goes first.
    diversity = _diversity([record_factory("u", 0.9, attributes={"x"})])
    requirements = SectionRequirements({PageSection.MAIN: 1, PageSection.DETAIL: 2})

    assignment = allocate(diversity, requirements)

    assert _urls(assignment.by_section[PageSection.DETAIL]) == ["u"]
    assert assignment.shortfalls == {PageSection.MAIN: 1, PageSection.DETAIL: 1}
    assert list(assignment.by_section) == [PageSection.MAIN, PageSection.DETAIL]


def test_prefer_large_changes_the_pick(record_factory):
    images = [
        record_factory("sharp-small", 0.8, MAIN, {"a"}, width=400, height=400),
        record_factory("big", 0.7, MAIN, {"b"}, width=3000, height=3000),
    ]
    diversity = _diversity(images)

    plain = allocate(diversity, SectionRequirements({PageSection.MAIN: 1}))
    large = allocate(
        diversity,
        SectionRequirements({PageSection.MAIN: 1}, frozenset({PageSection.MAIN})),
    )

    assert _urls(plain.by_section[PageSection.MAIN]) == ["sharp-small"]
    assert _urls(large.by_section[PageSection.MAIN]) == ["big"]


def test_allocation_is_idempotent(five_image_batch):
    diversity = _diversity(five_image_batch)
    requirements = SectionRequirements({PageSection.MAIN: 1, PageSection.DETAIL: 2})

    assert allocate(diversity, requirements) == allocate(diversity, requirements)


def test_zero_candidates_report_full_shortfalls():
    requirements = SectionRequirements({PageSection.MAIN: 1, PageSection.DETAIL: 3})

    assignment = allocate(DiversityResult(), requirements)

    assert assignment.by_section == {PageSection.MAIN: (), PageSection.DETAIL: ()}
    assert assignment.unassigned == ()
    assert assignment.shortfalls == {PageSection.MAIN: 1, PageSection.DETAIL: 3}


def test_all_unknown_batch_still_allocates(record_factory):
    diversity = _diversity([record_factory(f"u{i}", 0.4 + i / 10) for i in range(3)])

    assignment = allocate(diversity, SectionRequirements({PageSection.MAIN: 1, PageSection.DETAIL: 1}))

    assert assignment.delivered == 2
    assert len(assignment.unassigned) == 1


def test_described_unknown_category_is_placed():
    content = describe({"category": "unknown", "attributes": ["x"], "confidence": 0.9})
    diversity = _diversity([ImageRecord(image_url="u", content=content)])

    assignment = allocate(diversity, SectionRequirements({PageSection.MAIN: 1}))

    assert _urls(assignment.by_section[PageSection.MAIN]) == ["u"]
    assert assignment.shortfalls == {}


def test_min_affinity_can_be_relaxed(record_factory):
    diversity = _diversity([record_factory("d", 0.9, DETAIL, {"a"})])
    relaxed = AllocationConfig(min_affinity=0.0)

    assignment = allocate(diversity, SectionRequirements({PageSection.MAIN: 1}), relaxed)

    assert _urls(assignment.by_section[PageSection.MAIN]) == ["d"]


def test_plain_mapping_requirements(record_factory):
    diversity = _diversity([record_factory("m", 0.9, MAIN, {"a"})])

    assignment = allocate(diversity, {PageSection.MAIN: SectionRequest(1, prefer_large=True)})

    assert _urls(assignment.by_section[PageSection.MAIN]) == ["m"]


def test_requirements_from_payload():
    requirements = SectionRequirements.from_payload(
        {"sectionCounts": {"main": 1, "Detail": 2}, "preferLargeImages": ["MAIN"]}
    )

    assert requirements.section_counts == {PageSection.MAIN: 1, PageSection.DETAIL: 2}
    assert requirements.prefer_large_images == frozenset({PageSection.MAIN})


@pytest.mark.parametrize(
    "payload",
    [
        {"sectionCounts": {"hero": 1}},
        {"sectionCounts": {"main": -1}},
        {"sectionCounts": {"main": 1.5}},
        {"sectionCounts": ["main"]},
        {"sectionCounts": {"main": 1}, "preferLargeImages": "main"},
    ],
)
def test_malformed_requirements_rejected(payload):
    with pytest.raises(InvalidInput):
        SectionRequirements.from_payload(payload)


def test_layout_recommendations(record_factory):
    one = [record_factory("a")]
    three = [record_factory(u) for u in "abc"]
    five = [record_factory(u) for u in "abcde"]

    assert recommend_layout(PageSection.MAIN, one).layout == "single"
    assert recommend_layout(PageSection.MAIN, three).layout == "slider"
    assert recommend_layout(PageSection.DETAIL, three).layout == "mosaic"
    assert recommend_layout(PageSection.LIFESTYLE, three).layout == "slider"
    grid_layout = recommend_layout(PageSection.SPECIFICATION, three)
    assert (grid_layout.layout, grid_layout.columns) == ("grid", 3)
    assert recommend_layout(PageSection.SPECIFICATION, five).layout == "slider"


def test_recommend_layouts_skips_empty_sections(record_factory):
    diversity = _diversity([record_factory("m", 0.9, MAIN, {"a"})])
    assignment = allocate(diversity, SectionRequirements({PageSection.MAIN: 1, PageSection.DETAIL: 1}))

    layouts = recommend_layouts(assignment)

    assert list(layouts) == [PageSection.MAIN]
