from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

from citesearch.errors import ConfigurationMissing


class Settings(BaseSettings):
    # Search provider
    search_provider: str = "tavily"  # tavily | brave
    tavily_api_key: str = ""
    tavily_base_url: str = "https://api.tavily.com"
    brave_api_key: str = ""
    search_max_results: int = 7
    search_depth: str = "basic"  # basic | advanced
    search_include_raw_content: bool = True

    # LLM provider
    llm_provider: str = "gemini"  # gemini | openrouter
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("gemini_api_key", "google_generative_ai_api_key"),
    )
    gemini_model: str = "gemini-2.5-flash-lite"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "openai/gpt-4o-mini"

    # Generation
    answer_temperature: float = 0.7
    answer_max_tokens: int = 2048
    reformulation_temperature: float = 0.3
    reformulation_max_tokens: int = 100
    reformulation_history_turns: int = 1
    citation_policy: str = "complementary"  # complementary | per_sentence

    # Transport
    http_timeout_seconds: float = 30.0

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def normalized_search_provider(self) -> str:
        return self.search_provider.lower().strip()

    @property
    def normalized_llm_provider(self) -> str:
        return self.llm_provider.lower().strip()

    @property
    def llm_model(self) -> str:
        if self.normalized_llm_provider == "openrouter":
            return self.openrouter_model
        return self.gemini_model

    def require_search_key(self) -> str:
        """Return the API key of the active search provider or fail with a setup error."""
        provider = self.normalized_search_provider
        if provider == "tavily":
            key, env_name = self.tavily_api_key, "TAVILY_API_KEY"
        elif provider == "brave":
            key, env_name = self.brave_api_key, "BRAVE_API_KEY"
        else:
            raise ConfigurationMissing(
                f"Unsupported SEARCH_PROVIDER: {self.search_provider!r}",
                details='Set SEARCH_PROVIDER to "tavily" or "brave".',
            )
        if not key.strip():
            raise ConfigurationMissing(
                f"{env_name} is not configured",
                details=f"Please add {env_name} to your .env file.",
            )
        return key.strip()

    def require_llm_key(self) -> str:
        """Return the API key of the active LLM provider or fail with a setup error."""
        provider = self.normalized_llm_provider
        if provider == "gemini":
            key, env_name = self.gemini_api_key, "GOOGLE_GENERATIVE_AI_API_KEY"
        elif provider == "openrouter":
            key, env_name = self.openrouter_api_key, "OPENROUTER_API_KEY"
        else:
            raise ConfigurationMissing(
                f"Unsupported LLM_PROVIDER: {self.llm_provider!r}",
                details='Set LLM_PROVIDER to "gemini" or "openrouter".',
            )
        if not key.strip():
            raise ConfigurationMissing(
                f"{env_name} is not configured",
                details=f"Please add {env_name} to your .env file.",
            )
        return key.strip()

    def public_view(self) -> dict[str, object]:
        """Non-secret settings that are safe to expose to clients."""
        return {
            "search_provider": self.normalized_search_provider,
            "search_max_results": self.search_max_results,
            "llm_provider": self.normalized_llm_provider,
            "llm_model": self.llm_model,
            "citation_policy": self.citation_policy,
            "reformulation_history_turns": self.reformulation_history_turns,
        }


@lru_cache
def get_settings() -> Settings:
    """Build the process-wide settings once."""
    return Settings()
