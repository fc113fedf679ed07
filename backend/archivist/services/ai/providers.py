"""LLM provider clients with tool calling.

Each provider speaks its vendor's REST API over httpx and converts a
provider-neutral conversation into the vendor's message format:

    {"role": "user", "content": str}
    {"role": "assistant", "content": str, "tool_calls": [ToolCall, ...]}
    {"role": "tool", "tool_call_id": str, "name": str, "content": str}

``ollama`` and ``custom`` accounts reuse the OpenAI-compatible client.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from archivist.config import get_settings
from archivist.core.exceptions import ConfigurationError, ProviderError
from archivist.core.logging import get_logger
from archivist.models.ai import AiProvider

logger = get_logger(__name__)
settings = get_settings()

OPENAI_BASE_URL = "https://api.openai.com/v1"
ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"
GOOGLE_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
OLLAMA_BASE_URL = "http://localhost:11434/v1"
OLLAMA_API_KEY = "ollama"
MAX_OUTPUT_TOKENS = 4096


@dataclass
class ToolDefinition:
    """A function the model may call."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class ToolCall:
    """A function call requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class ChatResponse:
    """One model turn."""

    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0


class LLMProvider(ABC):
    """Base class for provider clients."""

    kind: AiProvider

    def __init__(
        self,
        model: str,
        api_key: str,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.model = model
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    async def _post(
        self, url: str, payload: dict[str, Any], headers: dict[str, str]
    ) -> dict[str, Any]:
        """POST a JSON payload and decode the response, mapping failures."""
        try:
            async with httpx.AsyncClient(
                timeout=settings.llm_request_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=payload, headers=headers)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "llm_api_error",
                provider=self.kind.value,
                model=self.model,
                status_code=e.response.status_code,
                body=e.response.text[:500],
            )
            raise ProviderError(
                f"{self.kind.value} API error: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            logger.error(
                "llm_request_error",
                provider=self.kind.value,
                model=self.model,
                error=str(e),
            )
            raise ProviderError(f"Failed to connect to {self.kind.value}: {e}") from e
        except ValueError as e:
            raise ProviderError(f"{self.kind.value} returned invalid JSON") from e

    @abstractmethod
    async def chat(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
    ) -> ChatResponse:
        """Run one model turn over the conversation so far."""


class OpenAICompatibleProvider(LLMProvider):
    """OpenAI Chat Completions API and compatible endpoints."""

    kind = AiProvider.OPENAI

    def __init__(self, *args: Any, kind: AiProvider = AiProvider.OPENAI, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.kind = kind

    def _convert_messages(
        self, system_prompt: str, messages: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        converted: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        for message in messages:
            if message["role"] == "assistant":
                entry: dict[str, Any] = {
                    "role": "assistant",
                    "content": message.get("content") or None,
                }
                if message.get("tool_calls"):
                    entry["tool_calls"] = [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": json.dumps(call.arguments),
                            },
                        }
                        for call in message["tool_calls"]
                    ]
                converted.append(entry)
            elif message["role"] == "tool":
                converted.append(
                    {
                        "role": "tool",
                        "tool_call_id": message["tool_call_id"],
                        "content": message["content"],
                    }
                )
            else:
                converted.append({"role": "user", "content": message["content"]})
        return converted

    async def chat(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
    ) -> ChatResponse:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(system_prompt, messages),
        }
        if tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters,
                    },
                }
                for tool in tools
            ]

        data = await self._post(
            f"{self.base_url}/chat/completions",
            payload,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "content-type": "application/json",
            },
        )

        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(f"{self.kind.value} returned no choices")
        message = choices[0].get("message", {})

        tool_calls = []
        for call in message.get("tool_calls") or []:
            function = call.get("function", {})
            try:
                arguments = json.loads(function.get("arguments") or "{}")
            except json.JSONDecodeError:
                arguments = {}
            tool_calls.append(
                ToolCall(
                    id=call.get("id", ""),
                    name=function.get("name", ""),
                    arguments=arguments,
                )
            )

        usage = data.get("usage") or {}
        return ChatResponse(
            text=message.get("content") or "",
            tool_calls=tool_calls,
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
        )


class AnthropicProvider(LLMProvider):
    """Anthropic Messages API."""

    kind = AiProvider.ANTHROPIC

    def _convert_messages(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        converted: list[dict[str, Any]] = []
        for message in messages:
            if message["role"] == "assistant":
                content: list[dict[str, Any]] = []
                if message.get("content"):
                    content.append({"type": "text", "text": message["content"]})
                for call in message.get("tool_calls") or []:
                    content.append(
                        {
                            "type": "tool_use",
                            "id": call.id,
                            "name": call.name,
                            "input": call.arguments,
                        }
                    )
                converted.append({"role": "assistant", "content": content})
            elif message["role"] == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": message["tool_call_id"],
                    "content": message["content"],
                }
                # Consecutive tool results share one user turn
                previous = converted[-1] if converted else None
                if (
                    previous
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                ):
                    previous["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})
            else:
                converted.append({"role": "user", "content": message["content"]})
        return converted

    async def chat(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
    ) -> ChatResponse:
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": MAX_OUTPUT_TOKENS,
            "system": system_prompt,
            "messages": self._convert_messages(messages),
        }
        if tools:
            payload["tools"] = [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": tool.parameters,
                }
                for tool in tools
            ]

        data = await self._post(
            f"{self.base_url}/messages",
            payload,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
        )

        text_parts = []
        tool_calls = []
        for block in data.get("content", []):
            if block.get("type") == "text":
                text_parts.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=block.get("id", ""),
                        name=block.get("name", ""),
                        arguments=block.get("input") or {},
                    )
                )

        usage = data.get("usage") or {}
        return ChatResponse(
            text="".join(text_parts),
            tool_calls=tool_calls,
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
        )


class GoogleProvider(LLMProvider):
    """Google Gemini generateContent API."""

    kind = AiProvider.GOOGLE

    def _convert_messages(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        contents: list[dict[str, Any]] = []
        for message in messages:
            if message["role"] == "assistant":
                parts: list[dict[str, Any]] = []
                if message.get("content"):
                    parts.append({"text": message["content"]})
                for call in message.get("tool_calls") or []:
                    parts.append(
                        {"functionCall": {"name": call.name, "args": call.arguments}}
                    )
                contents.append({"role": "model", "parts": parts})
            elif message["role"] == "tool":
                try:
                    result = json.loads(message["content"])
                except json.JSONDecodeError:
                    result = message["content"]
                part = {
                    "functionResponse": {
                        "name": message["name"],
                        "response": {"result": result},
                    }
                }
                previous = contents[-1] if contents else None
                if (
                    previous
                    and previous["role"] == "user"
                    and "functionResponse" in previous["parts"][0]
                ):
                    previous["parts"].append(part)
                else:
                    contents.append({"role": "user", "parts": [part]})
            else:
                contents.append({"role": "user", "parts": [{"text": message["content"]}]})
        return contents

    async def chat(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: list[ToolDefinition],
    ) -> ChatResponse:
        payload: dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": self._convert_messages(messages),
        }
        if tools:
            payload["tools"] = [
                {
                    "functionDeclarations": [
                        {
                            "name": tool.name,
                            "description": tool.description,
                            "parameters": tool.parameters,
                        }
                        for tool in tools
                    ]
                }
            ]

        data = await self._post(
            f"{self.base_url}/models/{self.model}:generateContent",
            payload,
            headers={
                "x-goog-api-key": self.api_key,
                "content-type": "application/json",
            },
        )

        candidates = data.get("candidates") or []
        if not candidates:
            raise ProviderError("google returned no candidates")
        parts = candidates[0].get("content", {}).get("parts", [])

        text_parts = []
        tool_calls = []
        for index, part in enumerate(parts):
            if "text" in part:
                text_parts.append(part["text"])
            elif "functionCall" in part:
                call = part["functionCall"]
                tool_calls.append(
                    ToolCall(
                        id=f"{call.get('name', 'call')}-{index}",
                        name=call.get("name", ""),
                        arguments=call.get("args") or {},
                    )
                )

        usage = data.get("usageMetadata") or {}
        return ChatResponse(
            text="".join(text_parts),
            tool_calls=tool_calls,
            input_tokens=usage.get("promptTokenCount", 0),
            output_tokens=usage.get("candidatesTokenCount", 0),
        )


def create_provider(
    provider: AiProvider | str,
    model: str,
    api_key: str,
    base_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> LLMProvider:
    """Build the client for a provider kind.

    Args:
        provider: Provider kind
        model: Model identifier, e.g. ``gpt-4o-mini``
        api_key: Decrypted API key
        base_url: Optional endpoint override; required for ``custom``
        transport: Optional transport override (used by tests)

    Raises:
        ConfigurationError: If a custom provider has no base URL
        ProviderError: If the provider kind is unknown
    """
    try:
        kind = AiProvider(provider)
    except ValueError as e:
        raise ProviderError(f"Unsupported AI provider: {provider}") from e

    if kind == AiProvider.OPENAI:
        return OpenAICompatibleProvider(
            model, api_key, base_url or OPENAI_BASE_URL, transport=transport
        )
    if kind == AiProvider.ANTHROPIC:
        return AnthropicProvider(
            model, api_key, base_url or ANTHROPIC_BASE_URL, transport=transport
        )
    if kind == AiProvider.GOOGLE:
        return GoogleProvider(
            model, api_key, base_url or GOOGLE_BASE_URL, transport=transport
        )
    if kind == AiProvider.OLLAMA:
        return OpenAICompatibleProvider(
            model,
            api_key or OLLAMA_API_KEY,
            base_url or OLLAMA_BASE_URL,
            transport=transport,
            kind=AiProvider.OLLAMA,
        )
    if not base_url:
        raise ConfigurationError(
            "Custom provider requires a base URL", error_code="customProviderNoBaseUrl"
        )
    return OpenAICompatibleProvider(
        model, api_key, base_url, transport=transport, kind=AiProvider.CUSTOM
    )
