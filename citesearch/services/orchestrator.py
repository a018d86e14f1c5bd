from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field, replace
from typing import AsyncGenerator, Sequence

import httpx

from citesearch.config import Settings
from citesearch.errors import CiteSearchError, ConfigurationMissing, NoResults, ReformulationFailed
from citesearch.llm_client import get_client
from citesearch.models.events import OutboundEvent
from citesearch.models.schemas import ConversationEntry
from citesearch.models.search import SearchResult
from citesearch.services import logger as log_service
from citesearch.services import streaming
from citesearch.services.answer_generator import AnswerGenerator
from citesearch.services.prompt_builder import CITATION_POLICIES, build_prompt
from citesearch.services.reformulator import QueryReformulator
from citesearch.tools.content_sanitizer import sanitize
from citesearch.tools.search_provider import SearchClient, merge_results


@dataclass
class PreparedTurn:
    """Everything decided before the event stream is opened."""

    query: str
    sources: list[SearchResult]
    prompt: str
    reformulated_query: str | None = None
    history: list[ConversationEntry] = field(default_factory=list)


class AnswerOrchestrator:
    """Runs one conversational search turn.

    Flow:
      1. Reformulate the query when there is conversation history (best effort)
      2. Search the original and reformulated queries in parallel
      3. Merge both result sets by URL and score
      4. Sanitize each result's raw page content
      5. Build the answer prompt
      6. Stream the answer

    Steps 1-5 run in ``prepare`` and raise on failure, before any event is
    sent. Step 6 runs in ``stream``, which reports failures as a terminal
    ``error`` event.
    """

    def __init__(
        self,
        search_client: SearchClient,
        reformulator: QueryReformulator,
        generator: AnswerGenerator,
        *,
        citation_policy: str = "complementary",
    ):
        if citation_policy not in CITATION_POLICIES:
            raise ConfigurationMissing(
                f"Unsupported CITATION_POLICY: {citation_policy!r}",
                details="Set CITATION_POLICY to one of: " + ", ".join(sorted(CITATION_POLICIES)),
            )
        self.search_client = search_client
        self.reformulator = reformulator
        self.generator = generator
        self.citation_policy = citation_policy

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "AnswerOrchestrator":
        llm = get_client(settings, transport=transport)
        return cls(
            search_client=SearchClient(settings, transport=transport),
            reformulator=QueryReformulator(
                llm,
                temperature=settings.reformulation_temperature,
                max_tokens=settings.reformulation_max_tokens,
                history_turns=settings.reformulation_history_turns,
            ),
            generator=AnswerGenerator(
                llm,
                temperature=settings.answer_temperature,
                max_tokens=settings.answer_max_tokens,
            ),
            citation_policy=settings.citation_policy,
        )

    async def prepare(
        self,
        query: str,
        history: Sequence[ConversationEntry] | None = None,
    ) -> PreparedTurn:
        history = list(history or [])
        started = time.monotonic()

        reformulated: str | None = None
        if history:
            reformulated = await self._reformulate(query, history)

        results = await self._search(query, reformulated)
        if not results:
            provider = getattr(self.search_client, "provider", "search provider")
            raise NoResults(
                f'No search results found for query: "{query}"',
                details=f"{provider} returned an empty result set",
            )

        sources = [self._with_full_content(result) for result in results]
        prompt = build_prompt(query, sources, history, citation_policy=self.citation_policy)

        log_service.log_event(
            event_type="turn_prepared",
            message="Search turn prepared",
            query=query[:100],
            reformulated_query=reformulated,
            sources_count=len(sources),
            history_turns=len(history),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return PreparedTurn(
            query=query,
            sources=sources,
            prompt=prompt,
            reformulated_query=reformulated,
            history=history,
        )

    async def stream(self, turn: PreparedTurn) -> AsyncGenerator[OutboundEvent, None]:
        """Emit the turn's events; the last one is always ``done`` or ``error``."""
        if turn.reformulated_query:
            yield streaming.reformulated_query(turn.reformulated_query)

        yield streaming.sources(turn.sources)

        started = time.monotonic()
        fragments = 0
        try:
            async for fragment in self.generator.stream(turn.prompt):
                fragments += 1
                yield streaming.text(fragment)
        except CiteSearchError as e:
            log_service.log_event(
                event_type="stream_error",
                message="Error while streaming AI response",
                error=e.message,
                details=e.details,
                query=turn.query[:100],
                fragments=fragments,
            )
            details = e.message if e.details is None else f"{e.message}: {e.details}"
            yield streaming.error("Error while streaming AI response", details=details)
            return
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in answer stream",
                error=str(e),
                query=turn.query[:100],
                fragments=fragments,
            )
            yield streaming.error(
                "Error while streaming AI response", details=str(e) or e.__class__.__name__
            )
            return

        log_service.log_event(
            event_type="turn_completed",
            message="Answer stream completed",
            query=turn.query[:100],
            fragments=fragments,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        yield streaming.done()

    async def answer(
        self,
        query: str,
        history: Sequence[ConversationEntry] | None = None,
    ) -> AsyncGenerator[OutboundEvent, None]:
        """In-process variant: setup failures become a single ``error`` event."""
        try:
            turn = await self.prepare(query, history)
        except CiteSearchError as e:
            yield streaming.error(e.message, details=e.details)
            return
        async for event in self.stream(turn):
            yield event

    async def _reformulate(
        self, query: str, history: Sequence[ConversationEntry]
    ) -> str | None:
        try:
            reformulated = await self.reformulator.reformulate_from_history(query, history)
        except ReformulationFailed as e:
            log_service.log_event(
                event_type="reformulation_failed",
                message="Failed to reformulate query, using original",
                error=e.message,
                details=e.details,
                query=query[:100],
            )
            return None

        if reformulated.strip().lower() == query.strip().lower():
            return None
        return reformulated

    async def _search(self, query: str, reformulated: str | None) -> list[SearchResult]:
        if not reformulated:
            return await self.search_client.search(query)

        original_results, reformulated_results = await asyncio.gather(
            self.search_client.search(query),
            self.search_client.search(reformulated),
        )
        return merge_results(original_results, reformulated_results)

    @staticmethod
    def _with_full_content(result: SearchResult) -> SearchResult:
        """Attach sanitized page text; a failure falls back to the snippet."""
        if not result.raw_content:
            return replace(result, full_content=result.content)
        try:
            full_content = sanitize(result.raw_content)
        except Exception as e:
            log_service.log_event(
                event_type="sanitize_failed",
                message=f'Failed to process raw_content for source "{result.title}", falling back to snippet',
                error=str(e),
                url=result.url,
            )
            full_content = result.content
        # Raw page text is only needed here; keep it off the wire.
        return replace(result, raw_content=None, full_content=full_content or result.content)
