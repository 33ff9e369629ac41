"""Exposed curation operations and the parallel per-image phase."""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from threading import Event
from typing import Any, Callable, Mapping, Sequence

from tqdm import tqdm

from .allocate.sections import allocate
from .analysis.cache import AnalysisCache
from .config import (
    DEFAULT_MAX_WORKERS,
    AllocationConfig,
    DiversityOptions,
    QualityConfig,
    SectionRequirements,
)
from .errors import BatchCancelled, InvalidInput
from .features.content import Analyzer, describe_image
from .features.measure import RawMeasurement, measure_raw_quality
from .features.quality import assess, assess_batch as _assess_batch
from .group.cluster import cluster_with_edges
from .group.diversity import select
from .group.similarity import Edge
from .io.models import (
    UNKNOWN_CONTENT,
    DiversityResult,
    ImageRecord,
    QualityAssessment,
    SectionAssignment,
)

logger = logging.getLogger(__name__)

Measure = Callable[[str], "RawMeasurement | Mapping[str, float]"]

_POLL_INTERVAL_S = 0.1


@dataclass(frozen=True)
class CurationResult:
    records: tuple[ImageRecord, ...]
    diversity: DiversityResult
    assignment: SectionAssignment | None
    edges: tuple[Edge, ...]


def validate_batch(images: Sequence[ImageRecord]) -> None:
    """Reject empty batches and records without a usable URL."""
    if not images:
        raise InvalidInput("image batch is empty")
    for index, image in enumerate(images):
        if not isinstance(image, ImageRecord):
            raise InvalidInput(f"batch entry {index} is not an ImageRecord")
        if not isinstance(image.image_url, str) or not image.image_url.strip():
            raise InvalidInput(f"batch entry {index} has no imageUrl")


def _metrics_of(item: ImageRecord | RawMeasurement | Mapping[str, float]) -> Mapping[str, float]:
    if isinstance(item, ImageRecord):
        if item.quality is None:
            raise InvalidInput(f"{item.image_url} has no measured quality to assess")
        return item.quality.components
    if isinstance(item, RawMeasurement):
        return item.metrics
    return item


def assess_batch(
    images: Sequence[ImageRecord | RawMeasurement | Mapping[str, float]],
    weights: Mapping[str, float] | None = None,
) -> list[QualityAssessment]:
    """Assess every image in *images* under *weights*.

    Entries may be records (their measured components are re-weighted),
    ``RawMeasurement`` results or plain metric mappings.
    """
    if not images:
        raise InvalidInput("image batch is empty")
    metrics = [_metrics_of(image) for image in images]
    return _assess_batch(metrics, QualityConfig(weight_factors=weights))


def _diversity_with_edges(
    images: Sequence[ImageRecord], options: DiversityOptions
) -> tuple[DiversityResult, list[Edge]]:
    groups, edges = cluster_with_edges(images, options.cluster_config())
    return select(groups, options.category_cap), edges


def analyze_diversity(
    images: Sequence[ImageRecord], options: DiversityOptions | None = None
) -> DiversityResult:
    """Cluster *images* into redundancy groups and pick their representatives."""
    validate_batch(images)
    result, _ = _diversity_with_edges(images, options or DiversityOptions())
    return result


def match_sections(
    images: Sequence[ImageRecord],
    requirements: SectionRequirements,
    options: DiversityOptions | None = None,
    config: AllocationConfig | None = None,
) -> SectionAssignment:
    """Deduplicate *images* and place the diverse set into page sections."""
    diversity = analyze_diversity(images, options)
    return allocate(diversity, requirements, config)


def _measure_image(url: str, measure: Measure, weights: Mapping[str, float] | None):
    try:
        measured = measure(url)
    except Exception:  # noqa: BLE001 - one unreadable image must not fail the batch
        logger.exception("Quality measurement failed for %s", url)
        return None, None, None
    if isinstance(measured, RawMeasurement):
        metrics, width, height = measured.metrics, measured.width, measured.height
    else:
        metrics, width, height = measured, None, None
    try:
        quality = assess(metrics, weights)
    except InvalidInput:
        logger.warning("No quality metrics measured for %s", url)
        quality = None
    return quality, width, height


def _process_image(
    url: str,
    measure: Measure,
    analyzer: Analyzer | None,
    weights: Mapping[str, float] | None,
    cache: AnalysisCache | None,
) -> ImageRecord:
    quality, width, height = _measure_image(url, measure, weights)

    content = cache.get(url) if cache is not None else None
    if content is None:
        content = describe_image(url, analyzer) if analyzer is not None else UNKNOWN_CONTENT
        if cache is not None:
            cache.put(url, content)
    return ImageRecord(
        image_url=url, quality=quality, content=content, width=width, height=height
    )


def _check_cancelled(cancel_event: Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise BatchCancelled("batch cancelled by caller")


def describe_batch(
    urls: Sequence[str],
    measure: Measure | None = None,
    analyzer: Analyzer | None = None,
    weights: Mapping[str, float] | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
    cache: AnalysisCache | None = None,
    cancel_event: Event | None = None,
    show_progress: bool = False,
) -> list[ImageRecord]:
    """Measure and describe each URL on a bounded worker pool.

    Returns only once every image is done, in input order. Raises
    ``BatchCancelled`` if *cancel_event* is set before that.
    """
    if not urls:
        raise InvalidInput("image batch is empty")
    for index, url in enumerate(urls):
        if not isinstance(url, str) or not url.strip():
            raise InvalidInput(f"batch entry {index} has no imageUrl")
    _check_cancelled(cancel_event)
    measure = measure or measure_raw_quality

    executor = ThreadPoolExecutor(max_workers=max(1, max_workers))
    futures: dict[Future[ImageRecord], int] = {}
    cancelled = False
    try:
        for index, url in enumerate(urls):
            futures[executor.submit(_process_image, url, measure, analyzer, weights, cache)] = index
        pending = set(futures)
        with tqdm(
            total=len(futures), desc="Describing images", unit="img", leave=False,
            disable=not show_progress,
        ) as progress:
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    break
                done, pending = wait(pending, timeout=_POLL_INTERVAL_S, return_when=FIRST_COMPLETED)
                progress.update(len(done))
    finally:
        executor.shutdown(wait=not cancelled, cancel_futures=cancelled)
    if cancelled:
        raise BatchCancelled("batch cancelled by caller")

    records: list[Any] = [None] * len(urls)
    for future, index in futures.items():
        records[index] = future.result()
    return records


def curate_batch(
    urls: Sequence[str],
    measure: Measure | None = None,
    analyzer: Analyzer | None = None,
    weights: Mapping[str, float] | None = None,
    options: DiversityOptions | None = None,
    requirements: SectionRequirements | None = None,
    allocation: AllocationConfig | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
    cache: AnalysisCache | None = None,
    cancel_event: Event | None = None,
    show_progress: bool = False,
) -> CurationResult:
    """Run the whole pipeline for *urls*: describe, cluster, select, allocate.

    Section allocation is skipped when *requirements* is ``None``.
    """
    records = describe_batch(
        urls,
        measure=measure,
        analyzer=analyzer,
        weights=weights,
        max_workers=max_workers,
        cache=cache,
        cancel_event=cancel_event,
        show_progress=show_progress,
    )
    _check_cancelled(cancel_event)
    diversity, edges = _diversity_with_edges(records, options or DiversityOptions())
    _check_cancelled(cancel_event)
    assignment = allocate(diversity, requirements, allocation) if requirements is not None else None
    _check_cancelled(cancel_event)
    return CurationResult(
        records=tuple(records), diversity=diversity, assignment=assignment, edges=tuple(edges)
    )
