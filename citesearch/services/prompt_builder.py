from __future__ import annotations

from typing import Sequence

from citesearch.models.schemas import ConversationEntry
from citesearch.models.search import SearchResult

CITATION_POLICIES = {
    "complementary": "- Use AT LEAST 2 citations if the sources contain similar or complementary information",
    "per_sentence": "- Cite at least one source in every sentence",
}

REFORMULATION_TEMPLATE = """You are a search query optimization assistant. Your task is to reformulate follow-up questions into comprehensive, standalone search queries.

{previous}
Follow-up query: "{query}"

Instructions:
- If the follow-up query references the previous query (uses words like "it", "that", "more", "they", "this"), reformulate it to be specific and standalone
- Incorporate the key subject/topic from the previous query into the new query
- Make the query optimized for web search (clear, specific, complete)
- If the follow-up query is already standalone and complete, return it as-is
- Return ONLY the reformulated query text, no explanations

Reformulated search query:"""


def format_sources(results: Sequence[SearchResult]) -> str:
    """Numbered source block; ``[k]`` in the answer refers to the k-th entry."""
    return "\n".join(
        f"[{index}] {result.title}\nURL: {result.url}\nContent: {result.context_text}\n"
        for index, result in enumerate(results, start=1)
    )


def format_history(history: Sequence[ConversationEntry]) -> str:
    return "\n\n".join(
        f"Q{index}: {entry.query}\nA{index}: {entry.answer}"
        for index, entry in enumerate(history, start=1)
    )


def build_prompt(
    query: str,
    results: Sequence[SearchResult],
    history: Sequence[ConversationEntry] | None = None,
    *,
    citation_policy: str = "complementary",
) -> str:
    """Assemble the answer prompt from the query, sources and prior turns."""
    if citation_policy not in CITATION_POLICIES:
        raise ValueError(f"Unknown citation policy: {citation_policy!r}")

    conversation_context = ""
    if history:
        conversation_context = f"\n\nPrevious Conversation:\n{format_history(history)}\n"

    instructions = [
        "- Provide a CONCISE answer (2-3 sentences maximum) using ONLY the information from the search results above",
        "- Use inline citations in the format [1], [2], etc. to reference the sources",
        CITATION_POLICIES[citation_policy],
        "- If the search results don't contain enough information, say briefly that the search results do not contain enough information to answer",
        "- Match citation numbers to the source numbers provided above",
        "- Keep your response brief and to the point",
    ]
    if history:
        instructions.append("- Consider the conversation context when formulating your answer")

    return (
        "You are a helpful AI assistant that provides concise, well-sourced answers "
        f"based on search results.{conversation_context}\n\n"
        f"User Query: {query}\n\n"
        f"Search Results:\n{format_sources(results)}\n\n"
        "Instructions:\n"
        + "\n".join(instructions)
        + "\n\nAnswer:"
    )


def build_reformulation_prompt(query: str, previous_queries: Sequence[str]) -> str:
    if len(previous_queries) == 1:
        previous = f'Previous query: "{previous_queries[0]}"'
    else:
        previous = "Previous queries (oldest first):\n" + "\n".join(
            f'- "{q}"' for q in previous_queries
        )
    return REFORMULATION_TEMPLATE.format(previous=previous, query=query)
