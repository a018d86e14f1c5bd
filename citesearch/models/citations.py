from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from citesearch.models.search import SearchResult

CITATION_PATTERN = re.compile(r"\[(\d+)\]")


@dataclass(frozen=True)
class Citation:
    index: int
    title: str
    url: str
    snippet: str


def citation_indices(answer: str) -> list[int]:
    """1-based indices in order of first appearance."""
    seen: list[int] = []
    for match in CITATION_PATTERN.finditer(answer):
        index = int(match.group(1))
        if index not in seen:
            seen.append(index)
    return seen


def extract_citations(answer: str, sources: Sequence[SearchResult]) -> list[Citation]:
    """Resolve ``[k]`` markers against the turn's source list.

    Indices outside ``1..len(sources)`` are ignored.
    """
    citations: list[Citation] = []
    for index in citation_indices(answer):
        if not 1 <= index <= len(sources):
            continue
        source = sources[index - 1]
        citations.append(
            Citation(index=index, title=source.title, url=source.url, snippet=source.content)
        )
    return citations
