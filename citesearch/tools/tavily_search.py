from __future__ import annotations

import json
from typing import Any

import httpx

from citesearch.errors import MalformedResponse, UpstreamUnavailable
from citesearch.models.search import SearchResult

TAVILY_SEARCH_PATH = "/search"


def _map_result(item: dict[str, Any]) -> SearchResult:
    raw_content = item.get("raw_content")
    score = item.get("score", 0.0)
    return SearchResult(
        title=item.get("title", "") or "",
        url=item.get("url", "") or "",
        content=item.get("content", "") or "",
        score=float(score) if isinstance(score, (int, float)) else 0.0,
        raw_content=raw_content if isinstance(raw_content, str) and raw_content else None,
    )


async def search(
    client: httpx.AsyncClient,
    query: str,
    *,
    api_key: str,
    base_url: str = "https://api.tavily.com",
    max_results: int = 7,
    search_depth: str = "basic",
    include_raw_content: bool = True,
) -> list[SearchResult]:
    """Execute a Tavily web search and return structured results."""
    payload: dict[str, Any] = {
        "api_key": api_key,
        "query": query,
        "search_depth": search_depth,
        "include_answer": False,
        "include_raw_content": include_raw_content,
        "max_results": max_results,
    }

    try:
        response = await client.post(
            base_url.rstrip("/") + TAVILY_SEARCH_PATH,
            json=payload,
            headers={"Content-Type": "application/json"},
        )
    except httpx.HTTPError as e:
        raise UpstreamUnavailable(
            f'Failed to fetch Tavily results for query: "{query}"',
            details=str(e) or e.__class__.__name__,
        ) from e

    if response.status_code >= 400:
        raise UpstreamUnavailable(
            f'Failed to fetch Tavily results for query: "{query}"',
            details=f"Tavily API returned status {response.status_code}: {response.text}",
        )

    try:
        data = response.json()
    except ValueError as e:
        raise MalformedResponse(
            "Unexpected Tavily API response format",
            details=f"Response is not JSON: {response.text[:500]}",
        ) from e

    raw_results = data.get("results") if isinstance(data, dict) else None
    if not isinstance(raw_results, list):
        raise MalformedResponse(
            "Unexpected Tavily API response format",
            details=f"Expected 'results' array but got: {json.dumps(data)[:500]}",
        )

    return [_map_result(item) for item in raw_results if isinstance(item, dict)]
