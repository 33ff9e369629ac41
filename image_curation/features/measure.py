"""Default raw quality measurements derived from image metadata and URL hints."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import requests
from PIL import Image, UnidentifiedImageError
from PIL.Image import DecompressionBombError
from tenacity import (  # type: ignore[import-untyped]
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
_IMAGE_TIMEOUT = 10.0

MIN_WIDTH = 800
MIN_HEIGHT = 600
FALLBACK_SIZE = (MIN_WIDTH, MIN_HEIGHT)

_KNOWN_FORMATS = {"jpg", "jpeg", "png", "gif", "webp", "svg", "avif"}

_COMPRESSION_SCORES = {
    "svg": 1.0,
    "png": 0.9,
    "avif": 0.9,
    "webp": 0.85,
    "jpg": 0.75,
    "jpeg": 0.75,
    "gif": 0.7,
}

_COLOR_SCORES = {
    "png": 0.85,
    "webp": 0.8,
    "avif": 0.9,
    "jpg": 0.75,
    "jpeg": 0.75,
    "gif": 0.6,
    "svg": 0.9,
}

_PIL_FORMATS = {"JPEG": "jpg", "PNG": "png", "GIF": "gif", "WEBP": "webp", "AVIF": "avif"}


@dataclass(frozen=True, slots=True)
class RawMeasurement:
    """Normalised metric scores plus the image facts they came from."""

    metrics: dict[str, float] = field(default_factory=dict)
    width: int | None = None
    height: int | None = None
    format: str = "unknown"


_retryer = Retrying(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    retry=retry_if_exception_type((requests.Timeout, requests.ConnectionError)),
    before_sleep=before_sleep_log(logger, logging.DEBUG),
    reraise=True,
)


def fetch_image_bytes(url: str) -> bytes | None:
    """Download and return the raw bytes for an image URL."""
    if not url or not url.startswith(("http://", "https://")):
        return None
    headers = {"User-Agent": _USER_AGENT, "Accept": "image/*,*/*;q=0.8"}

    def _get() -> bytes:
        response = requests.get(url, headers=headers, timeout=_IMAGE_TIMEOUT)
        response.raise_for_status()
        return response.content

    try:
        return _retryer(_get)
    except requests.RequestException:
        logger.debug("Failed to fetch image bytes from %s", url, exc_info=True)
        return None


def sniff_image_info(image_bytes: bytes) -> dict[str, Any] | None:
    """Inspect *image_bytes* and return width, height and format if recognised."""
    if not image_bytes:
        return None
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            width, height = image.size
            return {
                "width": int(width),
                "height": int(height),
                "format": _PIL_FORMATS.get(image.format or "", "unknown"),
            }
    except (UnidentifiedImageError, DecompressionBombError, OSError):
        logger.debug("Unable to sniff image metadata", exc_info=True)
    return None


def image_format_from_url(image_url: str) -> str:
    path = urlparse(image_url).path or ""
    extension = path.rsplit(".", 1)[-1].lower() if "." in path.rsplit("/", 1)[-1] else ""
    return extension if extension in _KNOWN_FORMATS else "unknown"


def resolution_score(
    width: int, height: int, min_width: int = MIN_WIDTH, min_height: int = MIN_HEIGHT
) -> float:
    """Score pixel dimensions against the recommended minimum size."""
    width_ratio = width / min_width
    height_ratio = height / min_height
    if width_ratio >= 2 and height_ratio >= 2:
        return 1.0
    if width_ratio < 1 or height_ratio < 1:
        return max(0.2, min(width_ratio, height_ratio))
    combined = (width_ratio + height_ratio) / 2
    return min(1.0, 0.5 + combined * 0.25)


def compression_score(image_format: str) -> float:
    return _COMPRESSION_SCORES.get(image_format.lower(), 0.6)


def color_quality_score(image_format: str, image_url: str) -> float:
    score = _COLOR_SCORES.get(image_format.lower(), 0.7)
    url = image_url.lower()
    if any(hint in url for hint in ("studio", "professional", "product-photo")):
        score = min(1.0, score + 0.1)
    if "vibrant" in url or "colorful" in url:
        score = min(1.0, score + 0.05)
    if any(hint in url for hint in ("grayscale", "black-and-white", "-bw", "_bw")):
        score = max(0.4, score - 0.1)
    return score


def url_hint_scores(image_url: str) -> dict[str, float]:
    """Estimate sharpness, noise and lighting from keywords in the URL."""
    url = image_url.lower()
    filename = url.rsplit("/", 1)[-1]
    sharpness, noise, lighting = 0.7, 0.7, 0.7

    if "uhd" in filename or "4k" in url:
        sharpness, noise = 0.9, 0.9
    elif any(hint in filename for hint in ("fhd", "1080p", "fullhd")):
        sharpness, noise = 0.8, 0.8
    elif "hd" in filename or "720p" in filename:
        sharpness, noise = 0.75, 0.75

    if any(hint in url for hint in ("highquality", "high-quality", "premium")) or "hq" in filename:
        sharpness = min(1.0, sharpness + 0.15)
        noise = min(1.0, noise + 0.15)
    elif any(hint in url for hint in ("lowquality", "low-quality", "thumbnail")) or "lq" in filename:
        sharpness = max(0.2, sharpness - 0.25)
        noise = max(0.2, noise - 0.25)

    if "sharp" in url:
        sharpness = min(1.0, sharpness + 0.2)
    elif "blur" in url:
        sharpness = max(0.1, sharpness - 0.3)

    if "noise" in url or "grain" in url:
        noise = max(0.2, noise - 0.3)

    if "dark" in url or "night" in url:
        lighting = max(0.3, lighting - 0.2)
    elif "bright" in url or "sunny" in url:
        lighting = min(0.9, lighting + 0.1)

    return {"sharpness": sharpness, "noise": noise, "lighting": lighting}


def measure_raw_quality(image_url: str, image_bytes: bytes | None = None) -> RawMeasurement:
    """Return the six normalised metrics for *image_url*.

    When *image_bytes* is not supplied the image is downloaded; a failed
    download or an unreadable payload falls back to an 800x600 assumption.
    """
    if image_bytes is None:
        image_bytes = fetch_image_bytes(image_url)
    info = sniff_image_info(image_bytes) if image_bytes else None

    image_format = image_format_from_url(image_url)
    if info:
        width, height = info["width"], info["height"]
        if info["format"] != "unknown":
            image_format = info["format"]
    else:
        width, height = FALLBACK_SIZE

    hints = url_hint_scores(image_url)
    metrics = {
        "resolution": resolution_score(width, height) if width and height else 0.2,
        "sharpness": hints["sharpness"],
        "noise": hints["noise"],
        "color_quality": color_quality_score(image_format, image_url),
        "lighting": hints["lighting"],
        "compression": compression_score(image_format),
    }
    return RawMeasurement(
        metrics=metrics,
        width=width if info else None,
        height=height if info else None,
        format=image_format,
    )
