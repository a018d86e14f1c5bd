"""Test doubles for the search and LLM collaborators."""
from __future__ import annotations

import json
from typing import Any, Iterable

import httpx

from citesearch.config import Settings
from citesearch.models.events import encode_event
from citesearch.models.search import SearchResult


def build_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "search_provider": "tavily",
        "tavily_api_key": "tvly-test",
        "brave_api_key": "",
        "llm_provider": "gemini",
        "gemini_api_key": "gm-test",
        "gemini_model": "gemini-test",
        "openrouter_api_key": "",
        "log_dir": "",
        "cors_origins": "http://localhost:3000",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_result(url: str, score: float, **kwargs: Any) -> SearchResult:
    return SearchResult(
        title=kwargs.pop("title", f"Title for {url}"),
        url=url,
        content=kwargs.pop("content", f"Snippet for {url}"),
        score=score,
        **kwargs,
    )


class FakeLLM:
    provider = "fake"
    model = "fake-model"

    def __init__(
        self,
        *,
        completion: str = "",
        fragments: Iterable[str] = (),
        complete_error: Exception | None = None,
        stream_error: Exception | None = None,
        fail_after: int | None = None,
    ):
        self.completion = completion
        self.fragments = list(fragments)
        self.complete_error = complete_error
        self.stream_error = stream_error
        self.fail_after = fail_after
        self.complete_calls: list[str] = []
        self.stream_calls: list[str] = []

    async def complete(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        self.complete_calls.append(prompt)
        if self.complete_error:
            raise self.complete_error
        return self.completion

    async def stream(self, prompt: str, *, temperature: float, max_tokens: int):
        self.stream_calls.append(prompt)
        for index, fragment in enumerate(self.fragments):
            if self.stream_error and self.fail_after == index:
                raise self.stream_error
            yield fragment
        if self.stream_error and (self.fail_after is None or self.fail_after >= len(self.fragments)):
            raise self.stream_error


class FakeSearchClient:
    provider = "fake"

    def __init__(
        self,
        results: dict[str, list[SearchResult]] | None = None,
        *,
        default: list[SearchResult] | None = None,
        error: Exception | None = None,
    ):
        self.results = results or {}
        self.default = default or []
        self.error = error
        self.calls: list[str] = []

    async def search(self, query: str) -> list[SearchResult]:
        self.calls.append(query)
        if self.error:
            raise self.error
        return list(self.results.get(query, self.default))


def gemini_chunk(text: str) -> dict[str, Any]:
    return {
        "candidates": [
            {"content": {"parts": [{"text": text}], "role": "model"}, "index": 0}
        ]
    }


def gemini_stream_body(fragments: Iterable[str]) -> bytes:
    """Pretty-printed JSON array, the way streamGenerateContent sends it."""
    return json.dumps([gemini_chunk(f) for f in fragments], indent=2).encode("utf-8")


def chunked(data: bytes, size: int):
    async def iterator():
        for start in range(0, len(data), size):
            yield data[start : start + size]

    return iterator()


def tavily_payload(*results: dict[str, Any]) -> dict[str, Any]:
    return {"query": "q", "results": list(results), "response_time": 0.5}


def tavily_item(url: str, score: float, raw_content: str | None = None) -> dict[str, Any]:
    return {
        "title": f"Title for {url}",
        "url": url,
        "content": f"Snippet for {url}",
        "score": score,
        "raw_content": raw_content,
    }


def request_json(request: httpx.Request) -> dict[str, Any]:
    return json.loads(request.content.decode("utf-8"))


def sse_frame(event) -> str:
    """One event exactly as the service writes it."""
    return f"data: {encode_event(event)}\n\n"
