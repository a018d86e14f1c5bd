"""Tests for the Gemini and OpenRouter clients."""
from __future__ import annotations

import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from citesearch.errors import (
    ConfigurationMissing,
    MalformedResponse,
    UpstreamGenerationError,
    UpstreamUnavailable,
)
from citesearch.llm_client import GeminiClient, OpenRouterClient, get_client
from fakes import build_settings, chunked, gemini_chunk, gemini_stream_body, request_json


def gemini_for(handler, **overrides) -> GeminiClient:
    return GeminiClient(build_settings(**overrides), transport=httpx.MockTransport(handler))


async def collect(stream) -> list[str]:
    return [fragment async for fragment in stream]


class TestGeminiStream:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("chunk_size", [1, 7, 64, 100_000])
    async def test_yields_fragments_in_order_for_any_chunking(self, chunk_size):
        fragments = ["TypeScript is ", "a typed superset ", "of JavaScript [1]."]
        body = gemini_stream_body(fragments)

        def handler(request):
            return httpx.Response(200, content=chunked(body, chunk_size))

        client = gemini_for(handler)
        result = await collect(client.stream("prompt", temperature=0.7, max_tokens=2048))

        assert result == fragments

    @pytest.mark.asyncio
    async def test_request_shape(self):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, content=gemini_stream_body(["ok"]))

        client = gemini_for(handler)
        await collect(client.stream("the prompt", temperature=0.7, max_tokens=2048))

        request = seen[0]
        assert request.url.path.endswith("/models/gemini-test:streamGenerateContent")
        assert "alt" not in request.url.params
        assert request.headers["x-goog-api-key"] == "gm-test"
        body = request_json(request)
        assert body["contents"][0]["parts"][0]["text"] == "the prompt"
        assert body["generationConfig"] == {"temperature": 0.7, "maxOutputTokens": 2048}

    @pytest.mark.asyncio
    async def test_skips_elements_without_text(self):
        body = json.dumps(
            [gemini_chunk("Hello"), {"usageMetadata": {"totalTokenCount": 5}}, gemini_chunk(" world")],
            indent=2,
        ).encode()

        def handler(request):
            return httpx.Response(200, content=chunked(body, 5))

        result = await collect(gemini_for(handler).stream("p", temperature=0.7, max_tokens=10))
        assert result == ["Hello", " world"]

    @pytest.mark.asyncio
    async def test_error_element_fails_after_earlier_fragments(self):
        body = json.dumps(
            [gemini_chunk("partial"), {"error": {"code": 500, "message": "Internal error"}}]
        ).encode()

        def handler(request):
            return httpx.Response(200, content=chunked(body, 16))

        received: list[str] = []
        with pytest.raises(UpstreamGenerationError) as exc_info:
            async for fragment in gemini_for(handler).stream("p", temperature=0.7, max_tokens=10):
                received.append(fragment)

        assert received == ["partial"]
        assert exc_info.value.message == "Internal error"

    @pytest.mark.asyncio
    async def test_error_status_carries_body(self):
        def handler(request):
            return httpx.Response(503, text='{"error": {"message": "overloaded"}}')

        with pytest.raises(UpstreamGenerationError) as exc_info:
            await collect(gemini_for(handler).stream("p", temperature=0.7, max_tokens=10))

        assert "503" in exc_info.value.message
        assert "overloaded" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_connection_failure_is_generation_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(UpstreamGenerationError) as exc_info:
            await collect(gemini_for(handler).stream("p", temperature=0.7, max_tokens=10))
        assert "timed out" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_malformed_element_is_generation_error(self):
        body = b'[{"candidates": [}]'

        def handler(request):
            return httpx.Response(200, content=body)

        with pytest.raises(UpstreamGenerationError):
            await collect(gemini_for(handler).stream("p", temperature=0.7, max_tokens=10))


class TestGeminiComplete:
    @pytest.mark.asyncio
    async def test_returns_joined_text(self):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            payload = {
                "candidates": [
                    {"content": {"parts": [{"text": "TypeScript "}, {"text": "benefits"}]}}
                ]
            }
            return httpx.Response(200, json=payload)

        text = await gemini_for(handler).complete("p", temperature=0.3, max_tokens=100)

        assert text == "TypeScript benefits"
        assert seen[0].url.path.endswith(":generateContent")
        assert request_json(seen[0])["generationConfig"]["maxOutputTokens"] == 100

    @pytest.mark.asyncio
    async def test_error_status_is_upstream_unavailable(self):
        def handler(request):
            return httpx.Response(429, text="quota exceeded")

        with pytest.raises(UpstreamUnavailable) as exc_info:
            await gemini_for(handler).complete("p", temperature=0.3, max_tokens=100)
        assert exc_info.value.details == "quota exceeded"

    @pytest.mark.asyncio
    async def test_non_json_is_malformed(self):
        def handler(request):
            return httpx.Response(200, text="not json")

        with pytest.raises(MalformedResponse):
            await gemini_for(handler).complete("p", temperature=0.3, max_tokens=100)


class TestExtractText:
    def test_no_candidates_is_empty(self):
        assert GeminiClient.extract_text({}) == ""
        assert GeminiClient.extract_text({"candidates": []}) == ""

    def test_error_payload_raises(self):
        with pytest.raises(UpstreamGenerationError) as exc_info:
            GeminiClient.extract_text({"error": {"message": "API key not valid"}})
        assert exc_info.value.message == "API key not valid"

    @pytest.mark.parametrize(
        "payload",
        [
            {"candidates": "oops"},
            {"candidates": [{"content": "oops"}]},
            {"candidates": [{"content": {"parts": "oops"}}]},
            {"candidates": [{"content": {"parts": [{"text": 42}]}}]},
            {"candidates": ["oops"]},
        ],
    )
    def test_unexpected_shapes_are_malformed(self, payload):
        with pytest.raises(MalformedResponse):
            GeminiClient.extract_text(payload)

    def test_candidate_without_content_is_empty(self):
        assert GeminiClient.extract_text({"candidates": [{"finishReason": "STOP"}]}) == ""

    @pytest.mark.asyncio
    async def test_malformed_reply_from_complete(self):
        def handler(request):
            return httpx.Response(200, json={"candidates": [{"content": "oops"}]})

        with pytest.raises(MalformedResponse):
            await gemini_for(handler).complete("p", temperature=0.3, max_tokens=100)

    @pytest.mark.asyncio
    async def test_malformed_element_while_streaming_is_generation_error(self):
        body = json.dumps([gemini_chunk("ok"), {"candidates": [{"content": "oops"}]}]).encode()

        def handler(request):
            return httpx.Response(200, content=body)

        with pytest.raises(UpstreamGenerationError):
            await collect(gemini_for(handler).stream("p", temperature=0.7, max_tokens=10))


def _request() -> httpx.Request:
    return httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")


class FakeCompletions:
    def __init__(self, *, response=None, chunks=(), error=None):
        self.response = response
        self.chunks = list(chunks)
        self.error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        if kwargs.get("stream"):
            return self._stream()
        return self.response

    async def _stream(self):
        for chunk in self.chunks:
            yield chunk


def fake_openai(completions: FakeCompletions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def delta(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class TestOpenRouter:
    @pytest.mark.asyncio
    async def test_stream_yields_non_empty_deltas(self):
        completions = FakeCompletions(
            chunks=[delta("Hello"), delta(None), SimpleNamespace(choices=[]), delta(" there")]
        )
        client = OpenRouterClient(build_settings(), openai_client=fake_openai(completions))

        result = await collect(client.stream("p", temperature=0.7, max_tokens=50))

        assert result == ["Hello", " there"]
        assert completions.calls[0]["stream"] is True
        assert completions.calls[0]["messages"] == [{"role": "user", "content": "p"}]

    @pytest.mark.asyncio
    async def test_complete_returns_message_content(self):
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="standalone query"))]
        )
        client = OpenRouterClient(
            build_settings(), openai_client=fake_openai(FakeCompletions(response=response))
        )
        assert await client.complete("p", temperature=0.3, max_tokens=100) == "standalone query"

    @pytest.mark.asyncio
    async def test_status_error_maps_to_upstream_unavailable(self):
        error = openai.APIStatusError(
            "rate limited",
            response=httpx.Response(429, text="slow down", request=_request()),
            body=None,
        )
        client = OpenRouterClient(
            build_settings(), openai_client=fake_openai(FakeCompletions(error=error))
        )
        with pytest.raises(UpstreamUnavailable) as exc_info:
            await client.complete("p", temperature=0.3, max_tokens=100)
        assert "429" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_stream_connection_error_maps_to_generation_error(self):
        error = openai.APIConnectionError(request=_request())
        client = OpenRouterClient(
            build_settings(), openai_client=fake_openai(FakeCompletions(error=error))
        )
        with pytest.raises(UpstreamGenerationError):
            await collect(client.stream("p", temperature=0.7, max_tokens=50))


class TestGetClient:
    def test_gemini_is_default(self):
        assert isinstance(get_client(build_settings()), GeminiClient)

    def test_openrouter(self):
        settings = build_settings(llm_provider="openrouter", openrouter_api_key="or-test")
        assert isinstance(get_client(settings), OpenRouterClient)

    def test_missing_gemini_key_names_variable(self):
        with pytest.raises(ConfigurationMissing) as exc_info:
            get_client(build_settings(gemini_api_key=""))
        assert "GOOGLE_GENERATIVE_AI_API_KEY" in exc_info.value.message

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationMissing):
            get_client(build_settings(llm_provider="claude"))
