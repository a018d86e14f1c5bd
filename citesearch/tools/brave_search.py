from __future__ import annotations

import json
from typing import Any

import httpx

from citesearch.errors import MalformedResponse, UpstreamUnavailable
from citesearch.models.search import SearchResult

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"


async def search(
    client: httpx.AsyncClient,
    query: str,
    *,
    api_key: str,
    max_results: int = 7,
) -> list[SearchResult]:
    """Execute a Brave web search and normalize results."""
    params: dict[str, Any] = {
        "q": query,
        "count": max_results,
    }

    try:
        response = await client.get(
            BRAVE_SEARCH_URL,
            params=params,
            headers={
                "Accept": "application/json",
                "X-Subscription-Token": api_key,
            },
        )
    except httpx.HTTPError as e:
        raise UpstreamUnavailable(
            f'Failed to fetch Brave results for query: "{query}"',
            details=str(e) or e.__class__.__name__,
        ) from e

    if response.status_code >= 400:
        raise UpstreamUnavailable(
            f'Failed to fetch Brave results for query: "{query}"',
            details=f"Brave API returned status {response.status_code}: {response.text}",
        )

    try:
        payload = response.json()
    except ValueError as e:
        raise MalformedResponse(
            "Unexpected Brave API response format",
            details=f"Response is not JSON: {response.text[:500]}",
        ) from e

    web = payload.get("web") if isinstance(payload, dict) else None
    raw_results = web.get("results") if isinstance(web, dict) else None
    if not isinstance(raw_results, list):
        # Brave omits the "web" block entirely when nothing matched.
        if isinstance(payload, dict) and "web" not in payload and payload.get("type") == "search":
            return []
        raise MalformedResponse(
            "Unexpected Brave API response format",
            details=f"Expected 'web.results' array but got: {json.dumps(payload)[:500]}",
        )

    total = max(len(raw_results), 1)
    mapped: list[SearchResult] = []
    for idx, item in enumerate(raw_results):
        if not isinstance(item, dict):
            continue
        snippets = item.get("extra_snippets", []) or []
        description = item.get("description", "") or ""
        content = description.strip() or " ".join(snippets).strip()
        # Brave does not expose a direct relevance score in this response shape.
        score = max(0.0, 1.0 - (idx / total))
        mapped.append(
            SearchResult(
                title=item.get("title", "") or "",
                url=item.get("url", "") or "",
                content=content,
                score=score,
            )
        )
    return mapped
