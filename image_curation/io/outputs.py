"""Output helpers for persisting curation results."""

from __future__ import annotations

import csv
import json
from dataclasses import fields, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Sequence

import pandas as pd

from ..group.similarity import Edge
from .models import DiversityResult, ImageRecord, SectionAssignment, SimilarityGroup


def to_jsonable(value: Any) -> Any:
    """Convert models, enums, tag sets and mappings into JSON-ready values."""
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Mapping):
        return {str(to_jsonable(key)): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (frozenset, set)):
        return sorted(to_jsonable(item) for item in value)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(to_jsonable(data), indent=2), encoding="utf-8")
    return path


def groups_payload(groups: Sequence[SimilarityGroup]) -> list[dict[str, Any]]:
    return [
        {"group_id": index, "members": list(group.urls)}
        for index, group in enumerate(groups)
    ]


def diversity_payload(result: DiversityResult) -> dict[str, Any]:
    return {
        "diverse_set": [image.image_url for image in result.diverse_set],
        "by_category": {
            category.value: [image.image_url for image in images]
            for category, images in result.by_category.items()
        },
        "groups": groups_payload(result.groups),
    }


def assignment_payload(assignment: SectionAssignment) -> dict[str, Any]:
    return {
        "by_section": {
            section.value: [image.image_url for image in images]
            for section, images in assignment.by_section.items()
        },
        "unassigned": [image.image_url for image in assignment.unassigned],
        "shortfalls": {section.value: gap for section, gap in assignment.shortfalls.items()},
    }


def write_groups(path: Path, groups: Sequence[SimilarityGroup]) -> Path:
    """Write *groups* to *path* as JSON and return the path."""
    return write_json(path, groups_payload(groups))


def write_assignment(path: Path, assignment: SectionAssignment, layouts: Mapping | None = None) -> Path:
    payload = assignment_payload(assignment)
    if layouts is not None:
        payload["layouts"] = to_jsonable(layouts)
    return write_json(path, payload)


def write_pairs_csv(
    path: Path, images: Sequence[ImageRecord], edges: Sequence[Edge], limit: int = 500
) -> Path:
    """Write the strongest *limit* similarity edges as ``left,right,score`` rows."""
    path.parent.mkdir(parents=True, exist_ok=True)
    top_edges = sorted(edges, key=lambda item: item[2], reverse=True)[:limit]
    with path.open("w", newline="", encoding="utf-8") as csvfile:
        writer = csv.writer(csvfile)
        writer.writerow(["left", "right", "score"])
        for left, right, score in top_edges:
            writer.writerow([images[left].image_url, images[right].image_url, f"{score:.6f}"])
    return path


def assessment_frame(images: Sequence[ImageRecord]) -> pd.DataFrame:
    """Return one row per image with its quality and content columns."""
    rows: list[dict[str, Any]] = []
    for image in images:
        quality = image.quality
        row: dict[str, Any] = {
            "image_url": image.image_url,
            "width": image.width,
            "height": image.height,
            "overall_score": quality.overall_score if quality else None,
            "grade": quality.grade.value if quality else None,
            "recommendation": quality.recommendation if quality else None,
            "category": image.category.value,
            "confidence": image.confidence,
            "attributes": ",".join(sorted(image.content.attributes)) if image.content else "",
        }
        if quality:
            row.update({f"metric_{name}": value for name, value in quality.components.items()})
        rows.append(row)
    return pd.DataFrame(rows)


def write_assessment_table(path: Path, images: Sequence[ImageRecord]) -> Path:
    frame = assessment_frame(images)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_parquet(path, index=False, engine="pyarrow")
    return path
