"""Outbound events multiplexed onto the answer stream.

``OutboundEvent`` is a closed union of frozen dataclasses. Producers build
variants directly (see ``citesearch.services.streaming``); consumers turn
wire payloads back into variants with ``parse_event``.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from citesearch.models.search import SearchResult


class EventType(str, Enum):
    REFORMULATED_QUERY = "reformulated_query"
    SOURCES = "sources"
    TEXT = "text"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class ReformulatedQuery:
    query: str
    type: EventType = field(default=EventType.REFORMULATED_QUERY, init=False)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type.value, "query": self.query}


@dataclass(frozen=True)
class Sources:
    sources: tuple[SearchResult, ...]
    type: EventType = field(default=EventType.SOURCES, init=False)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type.value, "sources": [s.to_dict() for s in self.sources]}


@dataclass(frozen=True)
class TextDelta:
    content: str
    type: EventType = field(default=EventType.TEXT, init=False)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type.value, "content": self.content}


@dataclass(frozen=True)
class Done:
    type: EventType = field(default=EventType.DONE, init=False)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type.value}


@dataclass(frozen=True)
class Error:
    error: str
    details: str | None = None
    type: EventType = field(default=EventType.ERROR, init=False)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type.value, "error": self.error}
        if self.details is not None:
            payload["details"] = self.details
        return payload


OutboundEvent = Union[ReformulatedQuery, Sources, TextDelta, Done, Error]


def encode_event(event: OutboundEvent) -> str:
    """JSON body of one ``data:`` frame."""
    return json.dumps(event.to_payload())


def parse_event(payload: dict[str, Any]) -> OutboundEvent:
    """Rebuild an event variant from its wire payload."""
    raw_type = payload.get("type")
    try:
        event_type = EventType(raw_type)
    except ValueError:
        raise ValueError(f"Unknown event type: {raw_type!r}") from None

    if event_type is EventType.REFORMULATED_QUERY:
        return ReformulatedQuery(query=str(payload.get("query", "")))
    if event_type is EventType.SOURCES:
        raw_sources = payload.get("sources") or []
        return Sources(
            sources=tuple(SearchResult.from_dict(s) for s in raw_sources if isinstance(s, dict))
        )
    if event_type is EventType.TEXT:
        return TextDelta(content=str(payload.get("content", "")))
    if event_type is EventType.DONE:
        return Done()
    details = payload.get("details")
    if details is not None and not isinstance(details, str):
        details = json.dumps(details)
    return Error(error=str(payload.get("error", "")), details=details)
