"""Caller-owned cache of content descriptions keyed by image URL."""

from __future__ import annotations

from threading import Lock
from typing import Dict

from ..io.models import ContentFeatures


class AnalysisCache:
    """Thread-safe URL -> ``ContentFeatures`` map.

    Degraded (UNKNOWN) descriptions are not stored so that a later batch can
    retry the service.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, ContentFeatures] = {}
        self._lock = Lock()

    def get(self, image_url: str) -> ContentFeatures | None:
        with self._lock:
            return self._entries.get(image_url)

    def put(self, image_url: str, features: ContentFeatures) -> None:
        if features.is_unknown:
            return
        with self._lock:
            self._entries[image_url] = features

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, image_url: object) -> bool:
        with self._lock:
            return image_url in self._entries

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
