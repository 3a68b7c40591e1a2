"""Client for OpenAI-compatible chat completion APIs.

This class provides the shared implementation for providers that speak the
OpenAI chat completions format (OpenAI, Mistral, LiteLLM, Ollama, ...).
"""

import json
from contextlib import contextmanager
from typing import Any

from openai import APIConnectionError, APIStatusError, AsyncOpenAI
from openai import AuthenticationError as OpenAIAuthError
from openai import RateLimitError as OpenAIRateLimitError

from ..exceptions import (
    AuthenticationError,
    InvalidResponseError,
    ProviderUnavailableError,
    RateLimitError,
)
from ..tools.base import BaseTool
from ..types import (
    FinishReason,
    MessageRole,
    PartialToolCall,
    StreamChunk,
    StreamIterator,
    UnifiedMessage,
    UsageStats,
)
from .base import BaseLLMClient, with_retry


class OpenAICompatibleClient(BaseLLMClient):
    """Streaming client for any OpenAI-compatible endpoint.

    Subclasses customize the provider label, default base URL and the set of
    supported sampling parameters.
    """

    provider_label = "OpenAI-compatible"
    default_base_url: str | None = None

    def __init__(
        self,
        api_key: str | None,
        model: str,
        client_config: dict | None = None,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: API key for the provider
            model: Model name to use
            client_config: Optional configuration parameters
            base_url: Endpoint override (class default if None)
            headers: Extra headers sent with every request
        """
        super().__init__(client_config)
        self.model = model
        self.base_url = base_url or self.default_base_url
        self.client = self._create_client(api_key, headers)

    def _create_client(self, api_key: str | None, headers: dict[str, str] | None) -> AsyncOpenAI:
        """Create the provider's SDK client instance."""
        return AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            default_headers=headers,
        )

    def _get_supported_config_keys(self) -> set[str]:
        """Return the set of config keys supported by this provider."""
        return {
            "temperature",
            "top_p",
            "max_tokens",
            "stop",
            "presence_penalty",
            "frequency_penalty",
        }

    def _get_default_api_args(self) -> dict[str, Any]:
        """Return provider-specific default API arguments."""
        return {"stream_options": {"include_usage": True}}

    @contextmanager
    def _handle_api_errors(self):
        """Map SDK exceptions to the controller's client errors."""
        label = self.provider_label
        try:
            yield
        except OpenAIAuthError as e:
            raise AuthenticationError(f"{label} authentication failed: {e}") from e
        except OpenAIRateLimitError as e:
            raise RateLimitError(f"{label} rate limit exceeded") from e
        except APIConnectionError as e:
            raise ProviderUnavailableError(f"{label} API unavailable: {e}") from e
        except APIStatusError as e:
            if e.status_code >= 500:
                raise ProviderUnavailableError(f"{label} API unavailable: {e}") from e
            raise

    # ==================== streaming ====================

    def _build_api_args(
        self, messages: list[UnifiedMessage], tools: list[BaseTool] | None
    ) -> dict[str, Any]:
        converted_tools = self._convert_tools(tools) if tools else None

        api_args: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "stream": True,
            **self._get_default_api_args(),
        }
        if converted_tools:
            api_args["tools"] = converted_tools
            api_args["tool_choice"] = "auto"

        supported_keys = self._get_supported_config_keys()
        for key, value in self.client_config.items():
            if key in supported_keys and value is not None:
                api_args[key] = value
        return api_args

    @with_retry()
    async def _open_stream(self, api_args: dict[str, Any]) -> Any:
        with self._handle_api_errors():
            return await self.client.chat.completions.create(**api_args)

    async def stream(
        self,
        messages: list[UnifiedMessage],
        tools: list[BaseTool] | None = None,
    ) -> StreamIterator:
        """Stream a chat completion as StreamChunk items.

        Raises:
            AuthenticationError: If API key is invalid
            RateLimitError: If rate limit is still exceeded after retries
            ProviderUnavailableError: If API is unavailable
        """
        response = await self._open_stream(self._build_api_args(messages, tools))
        with self._handle_api_errors():
            async for chunk in response:
                for parsed in self._parse_stream_chunk(chunk):
                    if not parsed.is_empty():
                        yield parsed

    # ==================== conversion ====================

    def _convert_messages(self, messages: list[UnifiedMessage]) -> list[dict[str, Any]]:
        """Convert unified messages to OpenAI-compatible format."""
        return [self._convert_message(msg) for msg in messages]

    def _convert_message(self, message: UnifiedMessage) -> dict[str, Any]:
        """Convert a single unified message to OpenAI-compatible format."""
        if message.role == MessageRole.SYSTEM:
            return {"role": "system", "content": message.content}
        if message.role == MessageRole.USER:
            return {"role": "user", "content": message.content}
        if message.role == MessageRole.ASSISTANT:
            return self._convert_assistant_message(message)
        if message.role == MessageRole.TOOL:
            return {
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": message.content,
            }
        return {"role": "user", "content": str(message.content)}

    def _convert_assistant_message(self, message: UnifiedMessage) -> dict[str, Any]:
        """Convert assistant message handling tool calls."""
        entry: dict[str, Any] = {"role": "assistant", "content": message.content}
        if message.tool_calls:
            entry["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {
                        "name": tc.name,
                        "arguments": json.dumps(tc.arguments),
                    },
                }
                for tc in message.tool_calls
            ]
        return entry

    def _map_finish_reason(self, reason: str | None) -> FinishReason:
        """Map OpenAI-compatible finish reason to unified FinishReason."""
        if not reason:
            return FinishReason.STOP
        mapping = {
            "stop": FinishReason.STOP,
            "tool_calls": FinishReason.TOOL_USE,
            "length": FinishReason.LENGTH,
        }
        return mapping.get(reason, FinishReason.STOP)

    def _convert_tools(self, tools: list[BaseTool]) -> list[dict[str, Any]]:
        """Convert tools to OpenAI-compatible function format."""
        return [
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

    def _parse_stream_chunk(self, chunk: Any) -> list[StreamChunk]:
        """Parse a single streaming chunk.

        One provider chunk can carry several tool call deltas; each becomes
        its own StreamChunk. The usage-only chunk sent last (``include_usage``)
        has no choices.
        """
        try:
            usage = None
            if getattr(chunk, "usage", None):
                usage = UsageStats(
                    prompt_tokens=chunk.usage.prompt_tokens or 0,
                    completion_tokens=chunk.usage.completion_tokens or 0,
                    total_tokens=chunk.usage.total_tokens or 0,
                )

            choice = chunk.choices[0] if chunk.choices else None
            if not choice:
                return [StreamChunk(usage=usage)]

            delta = choice.delta
            finish_reason = None
            if choice.finish_reason:
                finish_reason = self._map_finish_reason(choice.finish_reason)

            # check for reasoning field (primary) then reasoning_content (fallback)
            delta_reasoning = getattr(delta, "reasoning", None) or getattr(
                delta, "reasoning_content", None
            )

            chunks = [StreamChunk(
                delta_content=getattr(delta, "content", None),
                delta_reasoning=delta_reasoning,
                finish_reason=finish_reason,
                usage=usage,
            )]
            for tc in getattr(delta, "tool_calls", None) or []:
                chunks.append(StreamChunk(delta_tool_call=self._parse_tool_call_from_delta(tc)))
            return chunks
        except (AttributeError, IndexError, TypeError) as e:
            raise InvalidResponseError(
                f"Failed to parse {self.provider_label} stream chunk: {e}"
            ) from e

    def _parse_tool_call_from_delta(self, tc: Any) -> PartialToolCall:
        """Parse a tool call from a stream delta.

        Args:
            tc: The tool call delta from the stream.

        Returns:
            PartialToolCall with the parsed data.
        """
        return PartialToolCall(
            index=tc.index,
            id=tc.id if tc.id else None,
            name=tc.function.name if tc.function and tc.function.name else None,
            arguments_delta=tc.function.arguments if tc.function and tc.function.arguments else None,
        )
