from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

QueryText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


# --- Requests ---


class ConversationEntry(BaseModel):
    """One completed turn, owned by the caller's session."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    query: str
    answer: str
    sources: list[dict[str, Any]] = Field(default_factory=list)
    reformulated_query: str | None = Field(default=None, alias="reformulatedQuery")


class SearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: QueryText
    conversation_history: list[ConversationEntry] | None = Field(
        default=None, alias="conversationHistory"
    )


# --- Responses ---


class ErrorResponse(BaseModel):
    error: str
    details: Any = None


class HealthResponse(BaseModel):
    status: str
    service: str


class ConfigResponse(BaseModel):
    search_provider: str
    search_max_results: int
    llm_provider: str
    llm_model: str
    citation_policy: str
    reformulation_history_turns: int
