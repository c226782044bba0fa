from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import structlog

from opentolk.config import Settings, settings

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Unified message and response types
# ---------------------------------------------------------------------------

@dataclass
class ToolCall:
    """A single tool call extracted from the LLM response."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class ChatMessage:
    """One entry of a conversation. ``role`` is system, user, assistant or tool."""

    role: str
    content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None


@dataclass
class ToolDefinition:
    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class LLMResponse:
    """Provider-agnostic LLM response."""

    text: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    raw: Any = None  # original provider response


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class BaseLLMClient(ABC):
    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Send a conversation and return the assistant's text."""

    @abstractmethod
    def chat_stream(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Send a conversation and yield text deltas as they arrive."""

    @abstractmethod
    async def chat_with_tools(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Send a conversation with tool definitions; the reply is text or tool calls."""


# ---------------------------------------------------------------------------
# Anthropic implementation
# ---------------------------------------------------------------------------

class AnthropicLLMClient(BaseLLMClient):
    def __init__(self, config: Settings = settings) -> None:
        from anthropic import AsyncAnthropic

        self._client = AsyncAnthropic(api_key=config.anthropic_api_key)
        self._model = config.anthropic_model
        self._max_tokens = config.anthropic_max_tokens

    def _kwargs(
        self,
        messages: list[ChatMessage],
        model: str | None,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        system = "\n\n".join(m.content or "" for m in messages if m.role == "system")
        kwargs: dict[str, Any] = {
            "model": model or self._model,
            "max_tokens": max_tokens or self._max_tokens,
            "messages": _to_anthropic_messages(messages),
        }
        if system:
            kwargs["system"] = system
        if temperature is not None:
            kwargs["temperature"] = temperature
        return kwargs

    async def chat(self, messages, model=None, temperature=None, max_tokens=None) -> str:
        response = await self._client.messages.create(
            **self._kwargs(messages, model, temperature, max_tokens)
        )
        return self._parse_response(response).text or ""

    async def chat_stream(self, messages, model=None, temperature=None, max_tokens=None):
        kwargs = self._kwargs(messages, model, temperature, max_tokens)
        async with self._client.messages.stream(**kwargs) as stream:
            async for text in stream.text_stream:
                yield text

    async def chat_with_tools(
        self, messages, tools, model=None, temperature=None, max_tokens=None
    ) -> LLMResponse:
        kwargs = self._kwargs(messages, model, temperature, max_tokens)
        if tools:
            kwargs["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.parameters}
                for t in tools
            ]
            kwargs["tool_choice"] = {"type": "auto"}

        response = await self._client.messages.create(**kwargs)
        return self._parse_response(response)

    def _parse_response(self, response: Any) -> LLMResponse:
        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []

        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=block.input))

        text = "\n".join(text_parts) if text_parts else None

        log.debug(
            "llm.anthropic.response",
            content=text[:200] if text else None,
            tool_calls=len(tool_calls),
            stop_reason=response.stop_reason,
        )
        return LLMResponse(text=text, tool_calls=tool_calls, raw=response)


def _to_anthropic_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    """Anthropic takes the system prompt separately and tool results as user blocks."""
    out: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == "system":
            continue
        if msg.role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": msg.content or "",
            }
            # Consecutive tool results must share one user turn
            if out and out[-1]["role"] == "user" and isinstance(out[-1]["content"], list):
                out[-1]["content"].append(block)
            else:
                out.append({"role": "user", "content": [block]})
        elif msg.role == "assistant" and msg.tool_calls:
            blocks: list[dict[str, Any]] = []
            if msg.content:
                blocks.append({"type": "text", "text": msg.content})
            for tc in msg.tool_calls:
                blocks.append(
                    {"type": "tool_use", "id": tc.id, "name": tc.name, "input": tc.arguments}
                )
            out.append({"role": "assistant", "content": blocks})
        else:
            out.append({"role": msg.role, "content": msg.content or ""})
    return out


# ---------------------------------------------------------------------------
# OpenAI implementation
# ---------------------------------------------------------------------------

class OpenAILLMClient(BaseLLMClient):
    def __init__(self, config: Settings = settings) -> None:
        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(api_key=config.openai_api_key)
        self._model = config.openai_model

    def _kwargs(
        self,
        messages: list[ChatMessage],
        model: str | None,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model or self._model,
            "messages": _to_openai_messages(messages),
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        return kwargs

    async def chat(self, messages, model=None, temperature=None, max_tokens=None) -> str:
        response = await self._client.chat.completions.create(
            **self._kwargs(messages, model, temperature, max_tokens)
        )
        return self._parse_response(response.choices[0].message).text or ""

    async def chat_stream(self, messages, model=None, temperature=None, max_tokens=None):
        kwargs = self._kwargs(messages, model, temperature, max_tokens)
        response = await self._client.chat.completions.create(stream=True, **kwargs)
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        finally:
            await response.close()

    async def chat_with_tools(
        self, messages, tools, model=None, temperature=None, max_tokens=None
    ) -> LLMResponse:
        kwargs = self._kwargs(messages, model, temperature, max_tokens)
        if tools:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.parameters,
                    },
                }
                for t in tools
            ]
            kwargs["tool_choice"] = "auto"

        response = await self._client.chat.completions.create(**kwargs)
        return self._parse_response(response.choices[0].message)

    def _parse_response(self, msg: Any) -> LLMResponse:
        tool_calls: list[ToolCall] = []
        if msg.tool_calls:
            for tc in msg.tool_calls:
                tool_calls.append(
                    ToolCall(
                        id=tc.id,
                        name=tc.function.name,
                        arguments=json.loads(tc.function.arguments or "{}"),
                    )
                )

        log.debug(
            "llm.openai.response",
            content=msg.content[:200] if msg.content else None,
            tool_calls=len(tool_calls),
        )
        return LLMResponse(text=msg.content, tool_calls=tool_calls, raw=msg)


def _to_openai_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == "tool":
            out.append({"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.content or ""})
        elif msg.role == "assistant" and msg.tool_calls:
            out.append(
                {
                    "role": "assistant",
                    "content": msg.content,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                        }
                        for tc in msg.tool_calls
                    ],
                }
            )
        else:
            out.append({"role": msg.role, "content": msg.content or ""})
    return out


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_llm_client(config: Settings = settings) -> BaseLLMClient | None:
    """Create an LLM client for the configured provider, or None without an API key."""
    if config.llm_provider == "anthropic":
        if not config.anthropic_api_key:
            log.info("llm.not_configured", provider="anthropic")
            return None
        return AnthropicLLMClient(config)
    if not config.openai_api_key:
        log.info("llm.not_configured", provider="openai")
        return None
    return OpenAILLMClient(config)
