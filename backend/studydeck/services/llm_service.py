"""LLM Service - Streams raw presentation text from Claude or OpenAI."""

import logging
from abc import ABC, abstractmethod
from typing import AsyncGenerator, Literal

from studydeck.config import Settings, get_settings

logger = logging.getLogger(__name__)

ProviderName = Literal["anthropic", "openai"]

# Upper bound the OpenAI chat API accepts for completion tokens
OPENAI_MAX_TOKENS = 16384


class BaseLLMProvider(ABC):
    """A model that streams plain text chunks."""

    def __init__(self, api_key: str, model: str, max_tokens: int):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self._client = None

    @abstractmethod
    def generate_stream(
        self, prompt: str, system: str | None = None
    ) -> AsyncGenerator[str, None]:
        """Yield text chunks as the model produces them."""
        pass

    def _warn_truncated(self) -> None:
        # The parser will finalize whatever slides made it out before the cut
        logger.warning(f"{self.model} stopped at the {self.max_tokens} token limit; output is truncated")


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Claude API provider."""

    @property
    def client(self):
        if self._client is None:
            import anthropic
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def generate_stream(
        self, prompt: str, system: str | None = None
    ) -> AsyncGenerator[str, None]:
        async with self.client.messages.stream(
            model=self.model,
            max_tokens=self.max_tokens,
            system=system or "",
            messages=[{"role": "user", "content": prompt}],
        ) as stream:
            async for text in stream.text_stream:
                yield text

            message = await stream.get_final_message()
            if message.stop_reason == "max_tokens":
                self._warn_truncated()


class OpenAIProvider(BaseLLMProvider):
    """OpenAI GPT API provider."""

    @property
    def client(self):
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def generate_stream(
        self, prompt: str, system: str | None = None
    ) -> AsyncGenerator[str, None]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        stream = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=self.max_tokens,
            stream=True,
        )

        async for chunk in stream:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            if choice.delta.content:
                yield choice.delta.content
            if choice.finish_reason == "length":
                self._warn_truncated()


def _build_provider(provider: str, settings: Settings, api_key: str | None, model: str | None) -> BaseLLMProvider:
    if provider == "anthropic":
        key = api_key or settings.anthropic_api_key
        if not key:
            raise ValueError("Anthropic API key not configured")
        return AnthropicProvider(key, model or settings.anthropic_model, settings.llm_max_tokens)

    if provider == "openai":
        key = api_key or settings.openai_api_key
        if not key:
            raise ValueError("OpenAI API key not configured")
        return OpenAIProvider(key, model or settings.openai_model, min(settings.llm_max_tokens, OPENAI_MAX_TOKENS))

    raise ValueError(f"Unknown provider: {provider}")


class LLMService:
    """Provider-agnostic text stream used by the generation service."""

    def __init__(
        self,
        provider: ProviderName = "anthropic",
        api_key: str | None = None,
        model: str | None = None,
    ):
        self._provider = _build_provider(provider, get_settings(), api_key, model)
        self.provider_name = provider

    async def generate_stream(
        self, prompt: str, system: str | None = None
    ) -> AsyncGenerator[str, None]:
        chunk_count = 0
        async for chunk in self._provider.generate_stream(prompt, system):
            chunk_count += 1
            yield chunk
        logger.info(f"{self.provider_name} stream finished after {chunk_count} chunks")


def get_llm_service(provider: ProviderName | None = None) -> LLMService:
    """Get an LLM service instance using default settings."""
    settings = get_settings()
    return LLMService(provider=provider or settings.default_llm_provider)
