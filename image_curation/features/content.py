"""Normalise external content analysis into comparable features."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping

from ..errors import UpstreamDegraded
from ..io.models import UNKNOWN_CONTENT, ContentCategory, ContentFeatures

logger = logging.getLogger(__name__)

Analyzer = Callable[[str], Mapping[str, Any]]

_CATEGORY_ALIASES: dict[str, ContentCategory] = {
    "main": ContentCategory.MAIN,
    "hero": ContentCategory.MAIN,
    "cover": ContentCategory.MAIN,
    "product": ContentCategory.MAIN,
    "detail": ContentCategory.DETAIL,
    "details": ContentCategory.DETAIL,
    "close-up": ContentCategory.DETAIL,
    "closeup": ContentCategory.DETAIL,
    "lifestyle": ContentCategory.LIFESTYLE,
    "context": ContentCategory.LIFESTYLE,
    "usage": ContentCategory.LIFESTYLE,
    "specification": ContentCategory.SPECIFICATION,
    "specifications": ContentCategory.SPECIFICATION,
    "spec": ContentCategory.SPECIFICATION,
    "specs": ContentCategory.SPECIFICATION,
    "infographic": ContentCategory.SPECIFICATION,
    "other": ContentCategory.OTHER,
    "unknown": ContentCategory.UNKNOWN,
}

_CONTENT_TYPE_FLAGS = {
    "isProduct": "product",
    "isLifestyle": "lifestyle",
    "isInfographic": "infographic",
    "isPerson": "person",
}

_LEGACY_SCORE_FIELDS = ("productFocus", "commercialValue")


class MalformedPayload(ValueError):
    """Raised internally when an analysis payload cannot be interpreted."""


def parse_category(value: Any) -> ContentCategory:
    if isinstance(value, ContentCategory):
        return value
    if not isinstance(value, str) or not value.strip():
        raise MalformedPayload(f"category must be a non-empty string, got {value!r}")
    return _CATEGORY_ALIASES.get(value.strip().lower(), ContentCategory.OTHER)


def describe(external_result: Any) -> ContentFeatures:
    """Map an analysis payload to ``ContentFeatures``.

    Failures (an exception instance, ``None``, an error payload or a payload
    that cannot be read) yield UNKNOWN with confidence 0 instead of raising.
    """
    if external_result is None:
        return UNKNOWN_CONTENT
    if isinstance(external_result, BaseException):
        logger.warning("Content analysis degraded: %s", external_result)
        return UNKNOWN_CONTENT
    if not isinstance(external_result, Mapping):
        logger.warning("Content analysis returned %s, expected an object", type(external_result).__name__)
        return UNKNOWN_CONTENT
    if external_result.get("error"):
        logger.warning("Content analysis reported an error: %s", external_result.get("error"))
        return UNKNOWN_CONTENT
    try:
        return _features_from_payload(external_result)
    except MalformedPayload as exc:
        logger.warning("Malformed content analysis payload: %s", exc)
        return UNKNOWN_CONTENT


def describe_image(image_url: str, analyzer: Analyzer) -> ContentFeatures:
    """Run *analyzer* for *image_url* and describe the outcome.

    This is the only place where a failing analysis call is absorbed.
    """
    try:
        payload = analyzer(image_url)
    except UpstreamDegraded as exc:
        return describe(exc)
    except Exception as exc:  # noqa: BLE001 - analysis failures must not abort the batch
        logger.exception("Unexpected content analysis failure for %s", image_url)
        return describe(exc)
    return describe(payload)


def _features_from_payload(payload: Mapping[str, Any]) -> ContentFeatures:
    if "category" in payload:
        category = parse_category(payload["category"])
    else:
        recommended = payload.get("recommendedUse")
        if not isinstance(recommended, Mapping) or "section" not in recommended:
            raise MalformedPayload("payload has neither category nor recommendedUse.section")
        category = parse_category(recommended["section"])

    if "attributes" in payload:
        attributes = _normalise_tags(payload["attributes"])
    else:
        attributes = _legacy_attributes(payload)

    if "confidence" in payload:
        confidence = _parse_confidence(payload["confidence"])
    else:
        confidence = _legacy_confidence(payload)
        if confidence == 0.0:
            logger.warning("Content analysis payload scored zero everywhere; treating as unknown")
            return UNKNOWN_CONTENT
    return ContentFeatures(category=category, attributes=attributes, confidence=confidence)


def _legacy_confidence(payload: Mapping[str, Any]) -> float:
    """Confidence for payloads without one: the best of the focus and value scores."""
    scores = []
    for key in _LEGACY_SCORE_FIELDS:
        block = payload.get(key)
        if isinstance(block, Mapping) and "score" in block:
            scores.append(_parse_confidence(block["score"]))
    return max(scores) if scores else 1.0


def _parse_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedPayload(f"confidence must be numeric, got {value!r}")
    if value != value:
        raise MalformedPayload("confidence is NaN")
    return max(0.0, min(1.0, float(value)))


def _normalise_tags(values: Any) -> frozenset[str]:
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, Iterable):
        raise MalformedPayload(f"attributes must be a list, got {values!r}")
    tags = set()
    for value in values:
        if not isinstance(value, str):
            continue
        tag = value.strip().lower()
        if tag:
            tags.add(tag)
    return frozenset(tags)


def _legacy_attributes(payload: Mapping[str, Any]) -> frozenset[str]:
    """Collect tags from the richer analysis schema (mood, objects, colours)."""
    collected: list[str] = []
    mood = payload.get("mood")
    if isinstance(mood, Mapping):
        collected.extend(_as_list(mood.get("tags")))
    objects = payload.get("objects")
    if isinstance(objects, Mapping):
        collected.extend(_as_list(objects.get("main")))
        collected.extend(_as_list(objects.get("others")))
    colors = payload.get("colorScheme")
    if isinstance(colors, Mapping):
        collected.extend(f"color:{color}" for color in _as_list(colors.get("dominant")))
    content_type = payload.get("contentType")
    if isinstance(content_type, Mapping):
        collected.extend(
            tag for flag, tag in _CONTENT_TYPE_FLAGS.items() if content_type.get(flag) is True
        )
    return _normalise_tags(collected)


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]
