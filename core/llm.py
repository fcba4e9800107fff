"""
LLM invocation service used by agents and the orchestrator.

One client wrapper per provider family, both exposing the same two calls:

    invoke(messages, options) -> LLMResponse
    stream(messages, options) -> async iterator of LLMStreamChunk

Claude goes through the Anthropic SDK. OpenAI, and the OpenAI-compatible
endpoints of Google, Mistral and OpenRouter, go through the OpenAI SDK.

Usage:
    from core.llm import ProviderLLMService, LLMOptions

    llm = ProviderLLMService()
    response = await llm.invoke(
        [{"role": "user", "content": "Hello"}],
        LLMOptions(model="gpt-4o", provider="openai", api_key="sk-..."),
    )
"""

from collections import OrderedDict
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Tuple
from dataclasses import dataclass

import structlog

from .types import TokenUsage

logger = structlog.get_logger()


class LLMProvider(Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    MISTRAL = "mistral"
    OPENROUTER = "openrouter"


OPENAI_COMPATIBLE_BASE_URLS: Dict[LLMProvider, str] = {
    LLMProvider.GOOGLE: "https://generativelanguage.googleapis.com/v1beta/openai/",
    LLMProvider.MISTRAL: "https://api.mistral.ai/v1",
    LLMProvider.OPENROUTER: "https://openrouter.ai/api/v1",
}

# Claude stop reasons mapped onto the OpenAI vocabulary used for scoring.
ANTHROPIC_FINISH_REASONS: Dict[str, str] = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "refusal": "content_filter",
    "tool_use": "tool_calls",
}


@dataclass(frozen=True)
class LLMOptions:
    model: str
    provider: str
    api_key: str
    temperature: float = 0.7
    max_tokens: int = 2048

    def __repr__(self) -> str:
        return (
            f"LLMOptions(model={self.model!r}, provider={self.provider!r}, "
            f"temperature={self.temperature}, max_tokens={self.max_tokens})"
        )


@dataclass
class LLMResponse:
    content: str
    model: str
    provider: str
    usage: TokenUsage
    finish_reason: Optional[str] = None


@dataclass
class LLMStreamChunk:
    delta: str
    content: str
    is_complete: bool
    usage: Optional[TokenUsage] = None
    finish_reason: Optional[str] = None


class LLMService(Protocol):
    async def invoke(self, messages: List[Dict[str, str]], options: LLMOptions) -> LLMResponse:
        ...

    def stream(
        self, messages: List[Dict[str, str]], options: LLMOptions
    ) -> AsyncIterator[LLMStreamChunk]:
        ...


class AnthropicLLMClient:
    """Wrapper for Anthropic's Claude API."""

    def __init__(self, api_key: str, base_url: Optional[str] = None):
        from anthropic import AsyncAnthropic

        if base_url:
            self.client = AsyncAnthropic(api_key=api_key, base_url=base_url)
        else:
            self.client = AsyncAnthropic(api_key=api_key)

    async def close(self) -> None:
        await self.client.close()

    @staticmethod
    def _build_request(messages: List[Dict[str, str]], options: LLMOptions) -> Dict[str, Any]:
        """Split system messages out of the history, as Claude expects."""
        system_content = ""
        chat_messages = []

        for msg in messages:
            role = msg.get("role", "user")
            content = msg.get("content", "")
            if role == "system":
                system_content += content + "\n"
            else:
                chat_messages.append({"role": role, "content": content})

        request_kwargs = {
            "model": options.model,
            "max_tokens": options.max_tokens,
            "messages": chat_messages,
            # Claude accepts temperatures in [0, 1] only
            "temperature": min(options.temperature, 1.0),
        }
        if system_content:
            request_kwargs["system"] = system_content.strip()
        return request_kwargs

    @staticmethod
    def _usage(usage: Any) -> TokenUsage:
        prompt = getattr(usage, "input_tokens", 0) or 0
        completion = getattr(usage, "output_tokens", 0) or 0
        return TokenUsage(prompt, completion, prompt + completion)

    async def invoke(self, messages: List[Dict[str, str]], options: LLMOptions) -> LLMResponse:
        response = await self.client.messages.create(**self._build_request(messages, options))

        text_content = "".join(
            block.text for block in response.content if hasattr(block, "text")
        )
        return LLMResponse(
            content=text_content,
            model=options.model,
            provider=options.provider,
            usage=self._usage(response.usage),
            finish_reason=ANTHROPIC_FINISH_REASONS.get(response.stop_reason, response.stop_reason),
        )

    async def stream(
        self, messages: List[Dict[str, str]], options: LLMOptions
    ) -> AsyncIterator[LLMStreamChunk]:
        content = ""
        async with self.client.messages.stream(**self._build_request(messages, options)) as stream:
            async for text in stream.text_stream:
                content += text
                yield LLMStreamChunk(delta=text, content=content, is_complete=False)
            final = await stream.get_final_message()

        yield LLMStreamChunk(
            delta="",
            content=content,
            is_complete=True,
            usage=self._usage(final.usage),
            finish_reason=ANTHROPIC_FINISH_REASONS.get(final.stop_reason, final.stop_reason),
        )


class OpenAILLMClient:
    """Wrapper for the OpenAI API and OpenAI-compatible endpoints."""

    def __init__(self, api_key: str, base_url: Optional[str] = None, include_stream_usage: bool = True):
        from openai import AsyncOpenAI

        if base_url:
            self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        else:
            self.client = AsyncOpenAI(api_key=api_key)
        self.include_stream_usage = include_stream_usage

    async def close(self) -> None:
        await self.client.close()

    @staticmethod
    def _usage(usage: Any) -> TokenUsage:
        if usage is None:
            return TokenUsage()
        return TokenUsage(
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(usage, "total_tokens", 0) or 0,
        )

    async def invoke(self, messages: List[Dict[str, str]], options: LLMOptions) -> LLMResponse:
        response = await self.client.chat.completions.create(
            model=options.model,
            messages=messages,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
        )
        choice = response.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            model=options.model,
            provider=options.provider,
            usage=self._usage(response.usage),
            finish_reason=choice.finish_reason or "stop",
        )

    async def stream(
        self, messages: List[Dict[str, str]], options: LLMOptions
    ) -> AsyncIterator[LLMStreamChunk]:
        kwargs: Dict[str, Any] = {
            "model": options.model,
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "stream": True,
        }
        if self.include_stream_usage:
            kwargs["stream_options"] = {"include_usage": True}

        content = ""
        usage: Optional[TokenUsage] = None
        finish_reason: Optional[str] = None

        stream = await self.client.chat.completions.create(**kwargs)
        async for chunk in stream:
            if chunk.usage is not None:
                usage = self._usage(chunk.usage)
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            if choice.finish_reason:
                finish_reason = choice.finish_reason
            delta = (choice.delta.content or "") if choice.delta else ""
            if delta:
                content += delta
                yield LLMStreamChunk(delta=delta, content=content, is_complete=False)

        yield LLMStreamChunk(
            delta="",
            content=content,
            is_complete=True,
            usage=usage,
            finish_reason=finish_reason or "stop",
        )


def create_llm_client(provider: LLMProvider, api_key: str) -> Any:
    """
    Create an LLM client for a provider.

    Args:
        provider: LLM provider.
        api_key: API key for that provider.

    Returns:
        Client exposing ``invoke`` and ``stream``.
    """
    if not api_key:
        raise ValueError(f"API key is required for provider {provider.value}")

    if provider == LLMProvider.ANTHROPIC:
        return AnthropicLLMClient(api_key=api_key)
    if provider == LLMProvider.OPENAI:
        return OpenAILLMClient(api_key=api_key)
    if provider in OPENAI_COMPATIBLE_BASE_URLS:
        return OpenAILLMClient(
            api_key=api_key,
            base_url=OPENAI_COMPATIBLE_BASE_URLS[provider],
            include_stream_usage=False,
        )
    raise ValueError(f"Unknown provider: {provider}")


class ProviderLLMService:
    """Routes each call to a client for the requested provider and key.

    Clients are cached per (provider, api key) so concurrent agents on the
    same provider share one HTTP connection pool. The cache holds at most
    ``max_clients`` entries and drops the least recently used one; a dropped
    SDK client releases its connection pool when it is garbage collected.
    """

    def __init__(self, max_clients: int = 32):
        self.max_clients = max_clients
        self._clients: "OrderedDict[Tuple[LLMProvider, str], Any]" = OrderedDict()

    def _client_for(self, options: LLMOptions) -> Any:
        try:
            provider = LLMProvider(options.provider)
        except ValueError:
            raise ValueError(f"Unknown provider: {options.provider}") from None
        key = (provider, options.api_key)
        if key in self._clients:
            self._clients.move_to_end(key)
            return self._clients[key]

        client = create_llm_client(provider, options.api_key)
        self._clients[key] = client
        while len(self._clients) > self.max_clients:
            (evicted, _), _ = self._clients.popitem(last=False)
            logger.debug("LLM client evicted", provider=evicted.value, cached=len(self._clients))
        return client

    async def aclose(self) -> None:
        """Close every cached client. Called on shutdown."""
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.close()

    async def invoke(self, messages: List[Dict[str, str]], options: LLMOptions) -> LLMResponse:
        client = self._client_for(options)
        logger.debug(
            "LLM call",
            provider=options.provider,
            model=options.model,
            messages=len(messages),
        )
        return await client.invoke(messages, options)

    async def stream(
        self, messages: List[Dict[str, str]], options: LLMOptions
    ) -> AsyncIterator[LLMStreamChunk]:
        client = self._client_for(options)
        logger.debug(
            "LLM stream",
            provider=options.provider,
            model=options.model,
            messages=len(messages),
        )
        async for chunk in client.stream(messages, options):
            yield chunk
