"""HTTP client for the external vision service that describes image content."""

from __future__ import annotations

import json
import logging
from threading import Lock
from typing import Any, Dict, Optional

import requests
from requests import Session
from tenacity import (  # type: ignore[import-untyped]
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import AnalyzerSettings
from ..errors import RetryableHTTPStatusError, UpstreamDegraded

logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = """You are an e-commerce image analyst.

Classify the product image for a product detail page and answer strictly in JSON:
{
  "category": "main" | "detail" | "lifestyle" | "specification" | "other",
  "attributes": ["short lowercase tags describing objects, colours, mood, angle"],
  "confidence": 0.0-1.0
}
"""


def _extract_first_json(text: str) -> Optional[Dict[str, Any]]:
    """Return the first JSON object in *text*; models sometimes wrap it in fences."""
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    try:
        parsed = json.loads(text[start : end + 1])
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


class VisionClient:
    """Call an OpenAI-compatible chat completions endpoint for each image.

    ``analyze`` returns the parsed JSON object or raises ``UpstreamDegraded``.
    Rate limiting (429) and server errors are retried with exponential backoff.
    """

    def __init__(
        self,
        settings: AnalyzerSettings | None = None,
        session: Session | None = None,
        attempts: int = 3,
    ) -> None:
        self.settings = settings or AnalyzerSettings.from_env()
        self._session = session
        self._session_lock = Lock()
        self._retryer = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            retry=retry_if_exception_type(
                (requests.Timeout, requests.ConnectionError, RetryableHTTPStatusError)
            ),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )

    def _get_session(self) -> Session:
        if self._session is None:
            with self._session_lock:
                if self._session is None:
                    session = requests.Session()
                    session.headers.update({"Content-Type": "application/json"})
                    self._session = session
        return self._session

    def __call__(self, image_url: str) -> Dict[str, Any]:
        return self.analyze(image_url)

    def analyze(self, image_url: str) -> Dict[str, Any]:
        if not self.settings.api_key:
            raise UpstreamDegraded(image_url, "missing VISION_API_KEY")
        try:
            text = self._retryer(lambda: self._request_once(image_url))
        except UpstreamDegraded:
            raise
        except requests.RequestException as exc:
            raise UpstreamDegraded(image_url, f"request error: {exc}") from exc
        payload = _extract_first_json(text)
        if payload is None:
            raise UpstreamDegraded(image_url, "response did not contain a JSON object")
        return payload

    def _request_once(self, image_url: str) -> str:
        url = f"{self.settings.base_url.rstrip('/')}/v1/chat/completions"
        body = {
            "model": self.settings.model,
            "temperature": 0.2,
            "max_tokens": 500,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": ANALYSIS_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": "Analyse this image."},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                },
            ],
        }
        response = self._get_session().post(
            url,
            json=body,
            headers={"Authorization": f"Bearer {self.settings.api_key}"},
            timeout=self.settings.timeout_s,
        )
        status = response.status_code
        if status == 429 or 500 <= status < 600:
            raise RetryableHTTPStatusError(image_url, status)
        if status >= 400:
            raise UpstreamDegraded(image_url, f"server returned status {status}")
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamDegraded(image_url, "response body is not JSON") from exc

        choices = data.get("choices") or []
        if not choices:
            return ""
        message = (choices[0] or {}).get("message") or {}
        content = message.get("content") or ""
        if isinstance(content, list):
            content = "\n".join(
                part.get("text", "") for part in content if isinstance(part, dict)
            )
        return str(content)
