from __future__ import annotations

from typing import Sequence

from citesearch.errors import CiteSearchError, ReformulationFailed
from citesearch.llm_client import LLMClient
from citesearch.models.schemas import ConversationEntry
from citesearch.services.prompt_builder import build_reformulation_prompt

MAX_REFORMULATED_CHARS = 400


def _clean(text: str) -> str:
    lines = [line.strip() for line in (text or "").strip().splitlines() if line.strip()]
    if not lines:
        return ""
    cleaned = lines[0]
    if cleaned.lower().startswith("reformulated search query:"):
        cleaned = cleaned.split(":", 1)[1].strip()
    return cleaned.strip("\"'` ")[:MAX_REFORMULATED_CHARS].strip()


class QueryReformulator:
    """Rewrites context-dependent follow-ups into standalone search queries.

    Only the most recent ``history_turns`` prior queries are used as context
    (one by default).
    """

    def __init__(
        self,
        llm: LLMClient,
        *,
        temperature: float = 0.3,
        max_tokens: int = 100,
        history_turns: int = 1,
    ):
        self.llm = llm
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.history_turns = max(int(history_turns), 1)

    def context_queries(self, history: Sequence[ConversationEntry]) -> list[str]:
        recent = history[-self.history_turns :] if history else []
        return [entry.query for entry in recent if entry.query.strip()]

    async def reformulate(
        self,
        query: str,
        previous_query: str,
        *,
        earlier_queries: Sequence[str] = (),
    ) -> str:
        """Return a standalone query; raises ``ReformulationFailed`` on any failure."""
        prompt = build_reformulation_prompt(query, [*earlier_queries, previous_query])
        try:
            text = await self.llm.complete(
                prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except CiteSearchError as e:
            raise ReformulationFailed(
                "Query reformulation failed",
                details=f"{e.message}: {e.details}" if e.details else e.message,
            ) from e
        except Exception as e:
            raise ReformulationFailed(
                "Query reformulation failed", details=str(e) or e.__class__.__name__
            ) from e

        reformulated = _clean(text)
        if not reformulated:
            raise ReformulationFailed(
                "Query reformulation failed",
                details=f"Model returned no usable query: {text!r}",
            )
        return reformulated

    async def reformulate_from_history(
        self, query: str, history: Sequence[ConversationEntry]
    ) -> str:
        queries = self.context_queries(history)
        if not queries:
            raise ReformulationFailed(
                "Query reformulation failed", details="No prior query to use as context"
            )
        return await self.reformulate(query, queries[-1], earlier_queries=queries[:-1])
