"""
Tests for the LLM service wrapper.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from studydeck.config import Settings
from studydeck.services import llm_service
from studydeck.services.llm_service import AnthropicProvider, LLMService, OpenAIProvider


def openai_chunk(content, finish_reason=None):
    if content is ...:
        return SimpleNamespace(choices=[])
    choices = [SimpleNamespace(delta=SimpleNamespace(content=content), finish_reason=finish_reason)]
    return SimpleNamespace(choices=choices)


class TestLLMService:
    """Provider selection and delegation."""

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.setattr(llm_service, "get_settings", lambda: Settings(anthropic_api_key=""))
        with pytest.raises(ValueError, match="not configured"):
            LLMService(provider="anthropic", api_key="")

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            LLMService(provider="mistral", api_key="k")

    def test_openai_max_tokens_capped(self):
        service = LLMService(provider="openai", api_key="k", model="gpt-test")
        assert isinstance(service._provider, OpenAIProvider)
        assert service._provider.max_tokens <= 16384
        assert service.provider_name == "openai"

    def test_anthropic_provider(self):
        service = LLMService(provider="anthropic", api_key="k", model="claude-test")
        assert isinstance(service._provider, AnthropicProvider)
        assert service._provider.model == "claude-test"

    @pytest.mark.asyncio
    async def test_delegates_stream(self):
        service = LLMService(provider="anthropic", api_key="k")

        async def fake_stream(prompt, system=None):
            for part in ("a", "b"):
                yield f"{part}:{prompt}:{system}"

        service._provider = SimpleNamespace(generate_stream=fake_stream)
        chunks = [c async for c in service.generate_stream("p", "s")]
        assert chunks == ["a:p:s", "b:p:s"]


class TestOpenAIProvider:
    """Streaming through the OpenAI client."""

    @pytest.mark.asyncio
    async def test_skips_empty_deltas(self):
        async def stream():
            for content in ("Hello", None, ..., " world"):
                yield openai_chunk(content)

        provider = OpenAIProvider("k", "gpt-test", 1000)
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=stream())
        provider._client = client

        chunks = [c async for c in provider.generate_stream("prompt", "system")]

        assert chunks == ["Hello", " world"]
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}

    @pytest.mark.asyncio
    async def test_warns_when_truncated(self, caplog):
        async def stream():
            yield openai_chunk("partial")
            yield openai_chunk(None, finish_reason="length")

        provider = OpenAIProvider("k", "gpt-test", 1000)
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=stream())
        provider._client = client

        chunks = [c async for c in provider.generate_stream("prompt")]

        assert chunks == ["partial"]
        assert "1000 token limit" in caplog.text
