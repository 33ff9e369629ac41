"""Read image batches from JSON documents or plain URL lists."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

from ..errors import InvalidInput
from ..features.content import describe
from ..features.quality import assess
from .models import ImageRecord


def read_url_list(path: Path) -> list[str]:
    """Read newline separated URLs from *path*, skipping blanks and ``#`` comments."""
    if not path.exists():
        raise FileNotFoundError(f"Input file does not exist: {path}")
    lines = [line.strip() for line in path.read_text(encoding="utf-8-sig").splitlines()]
    return [line for line in lines if line and not line.startswith("#")]


def record_from_payload(
    payload: Mapping[str, Any], weights: Mapping[str, float] | None = None
) -> ImageRecord:
    """Build an ``ImageRecord`` from one JSON object.

    ``quality`` holds the raw metric scores and is assessed here; ``content``
    holds a content-analysis payload and goes through the same degradation path
    as a live analysis.
    """
    if not isinstance(payload, Mapping):
        raise InvalidInput("each image entry must be an object")
    url = payload.get("imageUrl", payload.get("image_url"))
    if not isinstance(url, str) or not url.strip():
        raise InvalidInput("each image entry needs a non-empty imageUrl")

    quality = None
    raw_quality = payload.get("quality")
    if raw_quality is not None:
        if not isinstance(raw_quality, Mapping):
            raise InvalidInput(f"quality for {url} must be an object of metric scores")
        quality = assess(raw_quality, weights)

    content = describe(payload["content"]) if "content" in payload else None
    return ImageRecord(
        image_url=url.strip(),
        quality=quality,
        content=content,
        width=_optional_int(payload.get("width"), "width", url),
        height=_optional_int(payload.get("height"), "height", url),
    )


def load_batch(
    path: Path, weights: Mapping[str, float] | None = None
) -> tuple[list[ImageRecord], dict[str, Any]]:
    """Load ``{"images": [...], "options": {...}}`` (or a bare list) from *path*."""
    if not path.exists():
        raise FileNotFoundError(f"Input file does not exist: {path}")
    try:
        document = json.loads(path.read_text(encoding="utf-8-sig"))
    except ValueError as exc:
        raise InvalidInput(f"{path} is not valid JSON: {exc}") from exc

    if isinstance(document, list):
        entries, options = document, {}
    elif isinstance(document, Mapping):
        entries = document.get("images")
        options = document.get("options") or {}
    else:
        raise InvalidInput("batch document must be a list or an object")
    if not isinstance(entries, list) or not entries:
        raise InvalidInput('batch document needs a non-empty "images" list')
    if not isinstance(options, Mapping):
        raise InvalidInput('"options" must be an object')

    option_weights = options.get("weightFactors", weights)
    return [record_from_payload(entry, option_weights) for entry in entries], dict(options)


def _optional_int(value: Any, name: str, url: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise InvalidInput(f"{name} for {url} must be a non-negative number")
    return int(value)
