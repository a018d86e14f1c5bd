from __future__ import annotations

from typing import Any, Sequence

from citesearch.models.events import Done, Error, ReformulatedQuery, Sources, TextDelta
from citesearch.models.search import SearchResult


def reformulated_query(query: str) -> ReformulatedQuery:
    return ReformulatedQuery(query=query)


def sources(results: Sequence[SearchResult]) -> Sources:
    return Sources(sources=tuple(results))


def text(content: str) -> TextDelta:
    return TextDelta(content=content)


def done() -> Done:
    return Done()


def error(message: str, details: Any = None) -> Error:
    """Terminal error event; non-string details are stringified."""
    if details is not None and not isinstance(details, str):
        details = str(details)
    return Error(error=message, details=details)
