"""Exception taxonomy for the image curation pipeline."""

from __future__ import annotations


class CurationError(Exception):
    """Base class for every error raised by this package."""


class InvalidInput(CurationError, ValueError):
    """Raised when a batch or option set is rejected before processing."""


class UpstreamDegraded(CurationError):
    """Raised by the content analysis client when the service cannot answer.

    It is converted into an UNKNOWN content description and never leaves the
    pipeline.
    """

    def __init__(self, image_url: str, reason: str) -> None:
        super().__init__(f"content analysis failed for {image_url}: {reason}")
        self.image_url = image_url
        self.reason = reason


class RetryableHTTPStatusError(UpstreamDegraded):
    """Raised for HTTP status codes that should trigger a retry."""

    def __init__(self, image_url: str, status_code: int) -> None:
        super().__init__(image_url, f"server returned status {status_code}")
        self.status_code = status_code


class BatchCancelled(CurationError):
    """Raised when the caller cancels a batch; no partial result is produced."""
