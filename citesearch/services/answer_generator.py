from __future__ import annotations

from typing import AsyncIterator

from citesearch.llm_client import LLMClient


class AnswerGenerator:
    """Streams the model's answer for a finished prompt as text fragments.

    The sequence is lazy, finite and not restartable; concatenating the
    fragments gives the full answer. Upstream failures surface as
    ``UpstreamGenerationError`` from the iterator.
    """

    def __init__(self, llm: LLMClient, *, temperature: float = 0.7, max_tokens: int = 2048):
        self.llm = llm
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        async for fragment in self.llm.stream(
            prompt,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        ):
            if fragment:
                yield fragment
