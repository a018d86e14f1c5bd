"""LLM client factory for Gemini and OpenRouter.

Both clients take a finished text prompt. ``complete`` returns the whole
response text (used for query reformulation); ``stream`` yields text
fragments as they arrive (used for answer generation).
"""
from __future__ import annotations

import json
import time
from typing import Any, AsyncIterator, Protocol

import httpx

from citesearch.config import Settings
from citesearch.errors import (
    ConfigurationMissing,
    MalformedResponse,
    UpstreamGenerationError,
    UpstreamUnavailable,
)
from citesearch.services import logger as log_service
from citesearch.services.json_stream import JsonArrayStreamDecoder


class LLMClient(Protocol):
    provider: str
    model: str

    async def complete(self, prompt: str, *, temperature: float, max_tokens: int) -> str: ...

    def stream(
        self, prompt: str, *, temperature: float, max_tokens: int
    ) -> AsyncIterator[str]: ...


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class GeminiClient:
    """Google Generative Language API over raw HTTP.

    ``streamGenerateContent`` is called without ``alt=sse``, so the body is a
    pretty-printed JSON array streamed element by element; it is decoded
    with ``JsonArrayStreamDecoder``.
    """

    provider = "gemini"

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = settings.require_llm_key()
        self.model = settings.gemini_model
        self.base_url = settings.gemini_base_url.rstrip("/")
        self.timeout = settings.http_timeout_seconds
        self._transport = transport

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"x-goog-api-key": self.api_key},
        )

    def _url(self, method: str) -> str:
        return f"{self.base_url}/models/{self.model}:{method}"

    @staticmethod
    def _request_body(prompt: str, temperature: float, max_tokens: int) -> dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
            },
        }

    @staticmethod
    def extract_text(payload: dict[str, Any]) -> str:
        """Join the text parts of the first candidate."""
        error = payload.get("error")
        if error:
            message = "Gemini API error"
            if isinstance(error, dict) and error.get("message"):
                message = str(error["message"])
            raise UpstreamGenerationError(message, details=json.dumps(error, default=str))

        candidates = payload.get("candidates") or []
        if not isinstance(candidates, list):
            raise MalformedResponse(
                "Unexpected Gemini API response format",
                details=f"'candidates' is not a list: {json.dumps(candidates, default=str)[:500]}",
            )
        if not candidates:
            return ""
        candidate = candidates[0]
        content = (candidate.get("content") or {}) if isinstance(candidate, dict) else None
        parts = (content.get("parts") or []) if isinstance(content, dict) else None
        if not isinstance(parts, list):
            raise MalformedResponse(
                "Unexpected Gemini API response format",
                details=f"Expected candidates[0].content.parts array but got: "
                f"{json.dumps(candidate, default=str)[:500]}",
            )

        texts: list[str] = []
        for part in parts:
            text = part.get("text", "") if isinstance(part, dict) else None
            if not isinstance(text, str):
                raise MalformedResponse(
                    "Unexpected Gemini API response format",
                    details=f"Part text is not a string: {json.dumps(part, default=str)[:500]}",
                )
            texts.append(text)
        return "".join(texts)

    async def complete(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        started = time.monotonic()
        async with self._http_client() as client:
            try:
                response = await client.post(
                    self._url("generateContent"),
                    json=self._request_body(prompt, temperature, max_tokens),
                )
            except httpx.HTTPError as e:
                log_service.log_llm_call(
                    self.provider, self.model, "complete", _elapsed_ms(started), "error", str(e)
                )
                raise UpstreamUnavailable("Failed to reach Gemini API", details=str(e)) from e

        if response.status_code >= 400:
            log_service.log_llm_call(
                self.provider, self.model, "complete", _elapsed_ms(started), "error",
                f"status {response.status_code}",
            )
            raise UpstreamUnavailable(
                f"Gemini API returned status {response.status_code}",
                details=response.text,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponse(
                "Gemini API returned a non-JSON response", details=response.text[:500]
            ) from e
        if not isinstance(payload, dict):
            raise MalformedResponse(
                "Unexpected Gemini API response format", details=response.text[:500]
            )

        text = self.extract_text(payload)
        log_service.log_llm_call(self.provider, self.model, "complete", _elapsed_ms(started))
        return text

    async def stream(
        self, prompt: str, *, temperature: float, max_tokens: int
    ) -> AsyncIterator[str]:
        started = time.monotonic()
        decoder = JsonArrayStreamDecoder()
        fragments = 0
        try:
            async with self._http_client() as client:
                async with client.stream(
                    "POST",
                    self._url("streamGenerateContent"),
                    json=self._request_body(prompt, temperature, max_tokens),
                ) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise UpstreamGenerationError(
                            f"Gemini API returned status {response.status_code}",
                            details=body,
                        )

                    async for chunk in response.aiter_bytes():
                        for element in decoder.feed(chunk):
                            fragment = self.extract_text(element)
                            if fragment:
                                fragments += 1
                                yield fragment

                    for element in decoder.close():
                        fragment = self.extract_text(element)
                        if fragment:
                            fragments += 1
                            yield fragment
        except httpx.HTTPError as e:
            log_service.log_llm_call(
                self.provider, self.model, "stream", _elapsed_ms(started), "error", str(e)
            )
            raise UpstreamGenerationError(
                "Connection to Gemini API failed while streaming", details=str(e)
            ) from e
        except UpstreamGenerationError as e:
            log_service.log_llm_call(
                self.provider, self.model, "stream", _elapsed_ms(started), "error", e.message
            )
            raise
        except MalformedResponse as e:
            log_service.log_llm_call(
                self.provider, self.model, "stream", _elapsed_ms(started), "error", e.message
            )
            raise UpstreamGenerationError(e.message, details=e.details) from e

        log_service.log_llm_call(self.provider, self.model, "stream", _elapsed_ms(started))
        log_service.logger.debug("Gemini stream finished with %d fragments", fragments)


class OpenRouterClient:
    """OpenAI-compatible chat completions (OpenRouter by default)."""

    provider = "openrouter"

    def __init__(self, settings: Settings, *, openai_client: Any | None = None):
        self.model = settings.openrouter_model
        if openai_client is None:
            api_key = settings.require_llm_key()
            from openai import AsyncOpenAI

            base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
            openai_client = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=settings.http_timeout_seconds,
                max_retries=0,
            )
        self._client = openai_client

    def _messages(self, prompt: str) -> list[dict[str, str]]:
        return [{"role": "user", "content": prompt}]

    async def complete(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        import openai

        started = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=self._messages(prompt),
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APIStatusError as e:
            log_service.log_llm_call(
                self.provider, self.model, "complete", _elapsed_ms(started), "error", str(e)
            )
            raise UpstreamUnavailable(
                f"OpenRouter API returned status {e.status_code}",
                details=e.response.text,
            ) from e
        except openai.APIError as e:
            log_service.log_llm_call(
                self.provider, self.model, "complete", _elapsed_ms(started), "error", str(e)
            )
            raise UpstreamUnavailable("Failed to reach OpenRouter API", details=str(e)) from e

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise MalformedResponse("OpenRouter API returned no choices", details=str(response))
        log_service.log_llm_call(self.provider, self.model, "complete", _elapsed_ms(started))
        return getattr(choices[0].message, "content", None) or ""

    async def stream(
        self, prompt: str, *, temperature: float, max_tokens: int
    ) -> AsyncIterator[str]:
        import openai

        started = time.monotonic()
        try:
            stream = await self._client.chat.completions.create(
                model=self.model,
                messages=self._messages(prompt),
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )
            async for chunk in stream:
                choices = getattr(chunk, "choices", None) or []
                if not choices:
                    continue
                delta = getattr(choices[0], "delta", None)
                text = getattr(delta, "content", None) if delta else None
                if text:
                    yield text
        except openai.APIStatusError as e:
            log_service.log_llm_call(
                self.provider, self.model, "stream", _elapsed_ms(started), "error", str(e)
            )
            raise UpstreamGenerationError(
                f"OpenRouter API returned status {e.status_code}",
                details=e.response.text,
            ) from e
        except openai.APIError as e:
            log_service.log_llm_call(
                self.provider, self.model, "stream", _elapsed_ms(started), "error", str(e)
            )
            raise UpstreamGenerationError(
                "OpenRouter stream failed", details=str(e)
            ) from e

        log_service.log_llm_call(self.provider, self.model, "stream", _elapsed_ms(started))


def get_client(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> LLMClient:
    """Build the LLM client selected by ``settings.llm_provider``."""
    provider = settings.normalized_llm_provider
    if provider == "gemini":
        return GeminiClient(settings, transport=transport)
    if provider == "openrouter":
        return OpenRouterClient(settings)
    raise ConfigurationMissing(
        f"Unsupported LLM_PROVIDER: {settings.llm_provider!r}",
        details='Set LLM_PROVIDER to "gemini" or "openrouter".',
    )
