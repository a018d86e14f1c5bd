from __future__ import annotations

import time
from typing import Sequence

import httpx

from citesearch.config import Settings
from citesearch.errors import CiteSearchError, ConfigurationMissing, InvalidInput
from citesearch.models.search import SearchResult
from citesearch.services import logger as log_service
from citesearch.tools import brave_search, tavily_search


class SearchClient:
    """Runs one web search per call against the configured provider."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.provider = settings.normalized_search_provider
        self.api_key = settings.require_search_key()
        self.max_results = max(int(settings.search_max_results), 1)
        self.search_depth = settings.search_depth
        self.include_raw_content = bool(settings.search_include_raw_content)
        self.tavily_base_url = settings.tavily_base_url
        self.timeout = settings.http_timeout_seconds
        self._transport = transport

    async def search(self, query: str) -> list[SearchResult]:
        query = (query or "").strip()
        if not query:
            raise InvalidInput("Search query cannot be empty")

        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                results = await self._dispatch(client, query)
        except CiteSearchError as e:
            log_service.log_search_call(
                provider=self.provider,
                query=query,
                duration_ms=int((time.monotonic() - started) * 1000),
                status="error",
                error=f"{e.message}: {e.details}",
            )
            raise

        results = results[: self.max_results]
        log_service.log_search_call(
            provider=self.provider,
            query=query,
            result_count=len(results),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return results

    async def _dispatch(self, client: httpx.AsyncClient, query: str) -> list[SearchResult]:
        if self.provider == "tavily":
            return await tavily_search.search(
                client,
                query,
                api_key=self.api_key,
                base_url=self.tavily_base_url,
                max_results=self.max_results,
                search_depth=self.search_depth,
                include_raw_content=self.include_raw_content,
            )
        if self.provider == "brave":
            return await brave_search.search(
                client,
                query,
                api_key=self.api_key,
                max_results=self.max_results,
            )
        raise ConfigurationMissing(f"Unsupported SEARCH_PROVIDER: {self.provider!r}")


def merge_results(
    first: Sequence[SearchResult],
    second: Sequence[SearchResult],
) -> list[SearchResult]:
    """Deduplicate by URL, keeping the higher-scoring entry, sorted by score.

    On equal scores the entry seen first wins.
    """
    by_url: dict[str, SearchResult] = {}
    for result in first:
        existing = by_url.get(result.url)
        if existing is None or result.score > existing.score:
            by_url[result.url] = result
    for result in second:
        existing = by_url.get(result.url)
        if existing is None or result.score > existing.score:
            by_url[result.url] = result
    return sorted(by_url.values(), key=lambda r: r.score, reverse=True)
