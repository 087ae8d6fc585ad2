"""Optional LLM slug suggestions for long titles."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from ..config import Settings, get_settings
from ..errors import ZammError
from .slug import sanitize_slug

logger = logging.getLogger(__name__)

MAX_LOCAL_WORDS = 3
ANTHROPIC_VERSION = "2023-06-01"

SLUG_PROMPT = """Given this title: "{title}"

Generate a concise slug that is at most 3 words, uses only lowercase letters, numbers, and hyphens. The slug should capture the essence of the title while being brief and URL-friendly.

Return only the slug, nothing else."""


class SlugSuggestionError(ZammError):
    """The slug suggestion service could not produce a slug."""

    error_type = "llm"


class SlugSuggester(ABC):
    @abstractmethod
    def suggest_slug(self, title: str) -> str: ...


class AnthropicSlugSuggester(SlugSuggester):
    """Asks Claude for a short slug when a title is longer than three words."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: Optional[httpx.Client] = None,
        retries: int = 2,
    ) -> None:
        self.settings = settings or get_settings()
        self.api_key = self.settings.anthropic_api_key
        self.base_url = self.settings.anthropic_base_url.rstrip("/")
        self.model = self.settings.slug_model
        self.retries = max(1, retries)
        self._client = client

    def suggest_slug(self, title: str) -> str:
        if len(title.split()) <= MAX_LOCAL_WORDS:
            return sanitize_slug(title)

        if not self.api_key:
            raise SlugSuggestionError("Anthropic API key missing; cannot suggest slug")

        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        payload = {
            "model": self.model,
            "max_tokens": 50,
            "messages": [{"role": "user", "content": SLUG_PROMPT.format(title=title)}],
        }

        last_error: Optional[Exception] = None
        for attempt in range(self.retries):
            try:
                data = self._post(f"{self.base_url}/messages", headers, payload)
                return sanitize_slug(self._extract_text(data))
            except (httpx.HTTPError, ValueError) as exc:
                last_error = exc
                logger.warning("Slug suggestion attempt %d failed: %s", attempt + 1, exc)

        raise SlugSuggestionError(
            f"Slug suggestion failed after {self.retries} attempts", {"title": title}
        ) from last_error

    def _post(self, url: str, headers: dict, payload: dict) -> dict:
        if self._client is not None:
            response = self._client.post(url, headers=headers, json=payload, timeout=30.0)
            response.raise_for_status()
            return response.json()
        with httpx.Client() as client:
            response = client.post(url, headers=headers, json=payload, timeout=30.0)
            response.raise_for_status()
            return response.json()

    @staticmethod
    def _extract_text(data: dict) -> str:
        blocks = data.get("content") or []
        if not blocks:
            raise ValueError("empty response from API")
        block = blocks[0]
        if block.get("type") != "text":
            raise ValueError(f"expected text content block, got: {block.get('type')}")
        return block.get("text", "").strip()


def suggest_or_sanitize(title: str, suggester: Optional[SlugSuggester]) -> str:
    """Suggested slug when available, otherwise the sanitized title."""
    if suggester is None:
        return sanitize_slug(title)
    try:
        return suggester.suggest_slug(title)
    except SlugSuggestionError as exc:
        logger.info("Falling back to sanitized slug: %s", exc)
        return sanitize_slug(title)


__all__ = [
    "AnthropicSlugSuggester",
    "SlugSuggester",
    "SlugSuggestionError",
    "suggest_or_sanitize",
]
