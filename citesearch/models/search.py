from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class SearchResult:
    title: str
    url: str
    content: str
    score: float
    raw_content: str | None = None
    full_content: str | None = None

    @property
    def context_text(self) -> str:
        """Text fed to the model: sanitized page text, else the snippet."""
        return self.full_content or self.content

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "title": self.title,
            "url": self.url,
            "content": self.content,
            "score": self.score,
        }
        if self.raw_content is not None:
            data["rawContent"] = self.raw_content
        if self.full_content is not None:
            data["fullContent"] = self.full_content
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SearchResult":
        raw_content = data.get("rawContent", data.get("raw_content"))
        full_content = data.get("fullContent", data.get("full_content"))
        score = data.get("score", 0.0)
        return cls(
            title=str(data.get("title", "") or ""),
            url=str(data.get("url", "") or ""),
            content=str(data.get("content", "") or ""),
            score=float(score) if isinstance(score, (int, float)) else 0.0,
            raw_content=raw_content if isinstance(raw_content, str) else None,
            full_content=full_content if isinstance(full_content, str) else None,
        )


def results_to_dicts(results: list[SearchResult]) -> list[dict[str, Any]]:
    """Convert SearchResult list to JSON-serializable dicts."""
    return [r.to_dict() for r in results]
