"""Command-line interface for the image curation pipeline."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping

from dotenv import load_dotenv

from .allocate.layouts import recommend_layouts
from .allocate.sections import allocate
from .analysis.cache import AnalysisCache
from .analysis.vision import VisionClient
from .config import (
    DEFAULT_SIMILARITY_THRESHOLD,
    AnalyzerSettings,
    DiversityOptions,
    SectionRequirements,
    parse_section,
)
from .errors import CurationError, InvalidInput
from .group.cluster import cluster_with_edges, group_report
from .group.diversity import select
from .io.loader import load_batch, read_url_list
from .io.models import ImageRecord
from .io.outputs import (
    diversity_payload,
    write_assessment_table,
    write_assignment,
    write_groups,
    write_json,
    write_pairs_csv,
)
from .pipeline import describe_batch, validate_batch

logger = logging.getLogger(__name__)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for the curation pipeline."""
    parser = argparse.ArgumentParser(
        description="Deduplicate product images and assign them to page sections."
    )
    parser.add_argument(
        "--input",
        required=True,
        help="JSON batch document, or a text file with one image URL per line.",
    )
    parser.add_argument(
        "--out",
        required=True,
        help="Directory path where JSON, CSV and parquet outputs will be written.",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help=f"Similarity threshold for linking images (default {DEFAULT_SIMILARITY_THRESHOLD}).",
    )
    parser.add_argument(
        "--category-cap",
        type=int,
        default=None,
        help="Maximum recommended images per content category.",
    )
    parser.add_argument(
        "--section",
        action="append",
        default=[],
        metavar="NAME=COUNT",
        help="Requested image count for a page section; repeat per section.",
    )
    parser.add_argument(
        "--prefer-large",
        action="append",
        default=[],
        metavar="NAME",
        help="Section that prefers larger images; repeatable.",
    )
    parser.add_argument(
        "--analyze",
        action="store_true",
        help="Call the vision service for URL lists (needs VISION_API_KEY).",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker pool size for per-image measurement and analysis.",
    )
    parser.add_argument(
        "--debug-pairs",
        nargs="?",
        const=20,
        type=int,
        metavar="N",
        default=0,
        help="Show the top N pairwise similarity scores (default 20).",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level.")
    return parser.parse_args(list(argv) if argv is not None else None)


def _parse_section_args(values: Iterable[str]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for value in values:
        name, sep, count = value.partition("=")
        if not sep:
            raise InvalidInput(f"--section expects NAME=COUNT, got {value!r}")
        try:
            counts[name.strip()] = int(count)
        except ValueError as exc:
            raise InvalidInput(f"--section count must be an integer, got {count!r}") from exc
    return counts


def build_requirements(
    args: argparse.Namespace, options: Mapping[str, Any]
) -> SectionRequirements | None:
    """Merge section requirements from the batch document and the command line."""
    counts = dict(options.get("sectionCounts") or {})
    counts.update(_parse_section_args(args.section))
    prefer = list(options.get("preferLargeImages") or [])
    prefer.extend(args.prefer_large)
    if not counts:
        return None
    return SectionRequirements.from_payload(
        {"sectionCounts": counts, "preferLargeImages": [parse_section(p).value for p in prefer]}
    )


def build_diversity_options(
    args: argparse.Namespace, options: Mapping[str, Any]
) -> DiversityOptions:
    threshold = args.threshold
    if threshold is None:
        threshold = options.get("similarityThreshold", DEFAULT_SIMILARITY_THRESHOLD)
    cap = args.category_cap if args.category_cap is not None else options.get("categoryCap")
    return DiversityOptions(similarity_threshold=threshold, category_cap=cap)


def load_records(args: argparse.Namespace) -> tuple[list[ImageRecord], dict[str, Any]]:
    """Return the batch records, describing URL lists through the worker pool."""
    input_path = Path(args.input)
    if input_path.suffix.lower() == ".json":
        return load_batch(input_path)

    urls = read_url_list(input_path)
    settings = AnalyzerSettings.from_env()
    analyzer = VisionClient(settings) if args.analyze else None
    workers = args.workers or settings.max_workers
    records = describe_batch(
        urls,
        analyzer=analyzer,
        max_workers=workers,
        cache=AnalysisCache(),
        show_progress=True,
    )
    return records, {}


def _debug_pairs(records: list[ImageRecord], edges: list, limit: int) -> None:
    if limit <= 0:
        return
    if not edges:
        print("[pairs] no pairwise links above threshold")
        return
    top_edges = sorted(edges, key=lambda item: item[2], reverse=True)[:limit]
    print(f"[pairs] showing top {len(top_edges)} of {len(edges)} edges")
    for index, (left, right, score) in enumerate(top_edges, start=1):
        print(f"  {index}. {records[left].image_url} <-> {records[right].image_url} score={score:.3f}")


def main(argv: Iterable[str] | None = None) -> int:
    """Entry point for the CLI."""
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))

    try:
        records, options = load_records(args)
        validate_batch(records)
        diversity_options = build_diversity_options(args, options)
        requirements = build_requirements(args, options)
    except (CurationError, FileNotFoundError) as exc:
        print(f"[error] {exc}")
        return 2

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    groups, edges = cluster_with_edges(records, diversity_options.cluster_config())
    diversity = select(groups, diversity_options.category_cap)
    metrics = group_report(groups, edges, diversity_options.similarity_threshold)

    write_assessment_table(out_dir / "assessments.parquet", records)
    write_pairs_csv(out_dir / "pairs_sample.csv", records, edges)
    write_groups(out_dir / "groups.json", groups)
    write_json(out_dir / "diversity.json", diversity_payload(diversity))
    write_json(out_dir / "metrics.json", metrics)

    print(f"Images: {metrics['images']}")
    print(f"Groups: {metrics['groups']}")
    print(f"Largest group: {metrics['largest_group']} images")
    print(f"Threshold: {metrics['threshold']:.2f}")

    if requirements is not None:
        assignment = allocate(diversity, requirements)
        write_assignment(out_dir / "sections.json", assignment, recommend_layouts(assignment))
        for section, images in assignment.by_section.items():
            gap = assignment.shortfalls.get(section, 0)
            suffix = f" (short {gap})" if gap else ""
            print(f"Section {section.value}: {len(images)}{suffix}")
        print(f"Unassigned: {len(assignment.unassigned)}")

    _debug_pairs(records, edges, args.debug_pairs)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
