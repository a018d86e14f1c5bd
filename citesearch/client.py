"""Caller-side consumer of the answer event stream.

``SSEEventDecoder`` turns raw ``data: <JSON>`` frames into events,
``TurnState`` folds them into the turn's answer while checking the ordering
contract, and ``SearchSession`` ties both to an HTTP connection and keeps the
session's conversation history in memory.
"""
from __future__ import annotations

import codecs
import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable

import httpx

from citesearch.errors import SearchRequestError, StreamProtocolError
from citesearch.models.citations import Citation, extract_citations
from citesearch.models.events import (
    Done,
    Error,
    OutboundEvent,
    ReformulatedQuery,
    Sources,
    TextDelta,
    parse_event,
)
from citesearch.models.schemas import ConversationEntry
from citesearch.models.search import SearchResult, results_to_dicts
from citesearch.services.logger import logger


class SSEEventDecoder:
    """Incremental parser for ``text/event-stream`` bodies.

    Frames may be split across chunks at any point. Comment lines (keep-alive
    pings) and fields other than ``data`` are ignored.
    """

    def __init__(self) -> None:
        self._bytes_decoder = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""

    def feed(self, chunk: bytes | str) -> list[OutboundEvent]:
        if isinstance(chunk, bytes):
            chunk = self._bytes_decoder.decode(chunk)
        self._buffer += chunk
        # A trailing "\r" may be the first half of "\r\n"; wait for the next chunk.
        hold_back = ""
        if self._buffer.endswith("\r"):
            self._buffer, hold_back = self._buffer[:-1], "\r"
        self._buffer = self._buffer.replace("\r\n", "\n").replace("\r", "\n")

        events: list[OutboundEvent] = []
        while "\n\n" in self._buffer:
            frame, self._buffer = self._buffer.split("\n\n", 1)
            event = self._parse_frame(frame)
            if event is not None:
                events.append(event)
        self._buffer += hold_back
        return events

    def close(self) -> list[OutboundEvent]:
        tail = self._bytes_decoder.decode(b"", final=True)
        events = self.feed(tail + "\n\n") if (self._buffer + tail).strip() else []
        self._buffer = ""
        return events

    @staticmethod
    def _parse_frame(frame: str) -> OutboundEvent | None:
        data_lines: list[str] = []
        for line in frame.split("\n"):
            if not line or line.startswith(":"):
                continue
            name, _, value = line.partition(":")
            if name != "data":
                continue
            data_lines.append(value[1:] if value.startswith(" ") else value)
        if not data_lines:
            return None

        raw = "\n".join(data_lines)
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Skipping undecodable event frame: %r", raw[:200])
            return None
        if not isinstance(payload, dict):
            logger.warning("Skipping non-object event frame: %r", raw[:200])
            return None
        try:
            return parse_event(payload)
        except ValueError as e:
            logger.warning("Skipping event frame: %s", e)
            return None


@dataclass
class TurnState:
    """UI-facing state of one turn, built from its events in order."""

    query: str
    reformulated_query: str | None = None
    sources: list[SearchResult] = field(default_factory=list)
    answer_parts: list[str] = field(default_factory=list)
    error: Error | None = None
    done: bool = False
    _sources_seen: bool = field(default=False, init=False, repr=False)

    @property
    def answer(self) -> str:
        return "".join(self.answer_parts)

    @property
    def finished(self) -> bool:
        return self.done or self.error is not None

    @property
    def citations(self) -> list[Citation]:
        return extract_citations(self.answer, self.sources)

    def apply(self, event: OutboundEvent) -> None:
        if self.finished:
            raise StreamProtocolError(
                "Event received after the terminal event", details=event.type.value
            )

        if isinstance(event, ReformulatedQuery):
            if self._sources_seen or self.reformulated_query is not None:
                raise StreamProtocolError(
                    "reformulated_query must be the first event and appear at most once"
                )
            self.reformulated_query = event.query
        elif isinstance(event, Sources):
            if self._sources_seen:
                raise StreamProtocolError("sources event received twice")
            self.sources = list(event.sources)
            self._sources_seen = True
        elif isinstance(event, TextDelta):
            if not self._sources_seen:
                raise StreamProtocolError("text event received before sources")
            self.answer_parts.append(event.content)
        elif isinstance(event, Done):
            if not self._sources_seen:
                raise StreamProtocolError("done event received before sources")
            self.done = True
        elif isinstance(event, Error):
            self.error = event
        else:
            raise StreamProtocolError("Unknown event", details=repr(event))

    def apply_all(self, events: Iterable[OutboundEvent]) -> "TurnState":
        for event in events:
            self.apply(event)
        return self

    def to_entry(self) -> ConversationEntry:
        if not self.done:
            raise StreamProtocolError("Only completed turns can be recorded")
        return ConversationEntry(
            query=self.query,
            answer=self.answer,
            sources=results_to_dicts(self.sources),
            reformulated_query=self.reformulated_query,
        )


class SearchSession:
    """Multi-turn client for the search service.

    History lives only in this object; a turn is appended once its stream
    ends with ``done``.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        timeout: float | None = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
        history: Iterable[ConversationEntry] = (),
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._history: list[ConversationEntry] = list(history)
        self.last_turn: TurnState | None = None

    @property
    def history(self) -> tuple[ConversationEntry, ...]:
        return tuple(self._history)

    def reset(self) -> None:
        self._history.clear()
        self.last_turn = None

    def _payload(self, query: str) -> dict[str, Any]:
        payload: dict[str, Any] = {"query": query}
        if self._history:
            payload["conversationHistory"] = [
                entry.model_dump(by_alias=True, exclude_none=True) for entry in self._history
            ]
        return payload

    @staticmethod
    async def _raise_for_error(response: httpx.Response) -> None:
        body = (await response.aread()).decode("utf-8", errors="replace")
        try:
            data = json.loads(body)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict) and "error" in data:
            raise SearchRequestError(
                str(data["error"]), details=data.get("details"), status_code=response.status_code
            )
        raise SearchRequestError(
            f"Search service returned status {response.status_code}",
            details=body[:500],
            status_code=response.status_code,
        )

    async def ask(self, query: str) -> AsyncIterator[OutboundEvent]:
        """Run one turn, yielding events as they arrive."""
        state = TurnState(query=query.strip())
        self.last_turn = state
        decoder = SSEEventDecoder()

        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        ) as client:
            async with client.stream("POST", "/api/search", json=self._payload(query)) as response:
                if response.status_code >= 400:
                    await self._raise_for_error(response)

                async for chunk in response.aiter_bytes():
                    for event in decoder.feed(chunk):
                        state.apply(event)
                        yield event
                for event in decoder.close():
                    state.apply(event)
                    yield event

        if not state.finished:
            raise StreamProtocolError("Stream closed without a terminal event")
        if state.done:
            self._history.append(state.to_entry())
