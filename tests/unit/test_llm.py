import json
from pathlib import Path
from unittest.mock import Mock

import httpx
import pytest

from zamm.config import Settings
from zamm.services.llm import (
    AnthropicSlugSuggester,
    SlugSuggester,
    SlugSuggestionError,
    suggest_or_sanitize,
)


@pytest.fixture
def llm_settings(tmp_path: Path) -> Settings:
    return Settings(
        storage_path=tmp_path / ".zamm",
        anthropic_api_key="sk-test",
        anthropic_base_url="https://llm.test/v1",
    )


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_short_titles_are_sanitized_locally(llm_settings: Settings) -> None:
    handler = Mock(side_effect=AssertionError("no request expected"))
    suggester = AnthropicSlugSuggester(llm_settings, client=_client(handler))

    assert suggester.suggest_slug("Hello World") == "hello-world"
    handler.assert_not_called()


def test_long_title_calls_messages_api(llm_settings: Settings) -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"content": [{"type": "text", "text": " Auth Tokens \n"}]})

    suggester = AnthropicSlugSuggester(llm_settings, client=_client(handler))

    assert suggester.suggest_slug("How the service issues and refreshes tokens") == "auth-tokens"
    assert seen["url"] == "https://llm.test/v1/messages"
    assert seen["headers"]["x-api-key"] == "sk-test"
    assert seen["headers"]["anthropic-version"] == "2023-06-01"
    assert seen["body"]["model"] == "claude-3-haiku-20240307"
    assert "How the service issues" in seen["body"]["messages"][0]["content"]


def test_http_failure_raises_after_retries(llm_settings: Settings) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500, json={"error": "boom"})

    suggester = AnthropicSlugSuggester(llm_settings, client=_client(handler), retries=3)

    with pytest.raises(SlugSuggestionError):
        suggester.suggest_slug("A title with many words in it")
    assert len(calls) == 3


def test_unexpected_response_shape(llm_settings: Settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"content": [{"type": "tool_use"}]})

    suggester = AnthropicSlugSuggester(llm_settings, client=_client(handler), retries=1)

    with pytest.raises(SlugSuggestionError):
        suggester.suggest_slug("A title with many words in it")


def test_missing_api_key(tmp_path: Path) -> None:
    settings = Settings(storage_path=tmp_path / ".zamm", anthropic_api_key=None)
    suggester = AnthropicSlugSuggester(settings)

    with pytest.raises(SlugSuggestionError):
        suggester.suggest_slug("A title with many words in it")


def test_suggest_or_sanitize_falls_back() -> None:
    failing = Mock(spec=SlugSuggester)
    failing.suggest_slug.side_effect = SlugSuggestionError("down")
    working = Mock(spec=SlugSuggester)
    working.suggest_slug.return_value = "short"

    assert suggest_or_sanitize("Long Title Here Too", failing) == "long-title-here-too"
    assert suggest_or_sanitize("Long Title Here Too", working) == "short"
    assert suggest_or_sanitize("Long Title Here Too", None) == "long-title-here-too"
