"""Anthropic client implementation.

This client handles communication with the Anthropic API (Claude models)
and normalizes the streamed events to the unified format.

Anthropic has unique requirements:
- System prompt is passed separately, not in messages
- Tool calls use content blocks with type "tool_use"
- Tool results go in user messages with type "tool_result"; results answering
  the same assistant message must share one user message
- Extended thinking uses a separate "thinking" parameter with budget_tokens
- Input tokens are reported on message_start, output tokens on message_delta
"""

from contextlib import contextmanager
from typing import Any

from anthropic import APIConnectionError, APIStatusError, AsyncAnthropic
from anthropic import AuthenticationError as AnthropicAuthError
from anthropic import RateLimitError as AnthropicRateLimitError

from ..exceptions import (
    AuthenticationError,
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

# supported configuration keys for anthropic
SUPPORTED_CONFIG_KEYS = {
    "temperature",
    "top_p",
    "top_k",
    "max_tokens",
    "stop_sequences",
    # extended thinking
    "thinking_enabled",
    "thinking_budget_tokens",
    # tool choice
    "tool_choice",
}

_FINISH_MAP = {
    "end_turn": FinishReason.STOP,
    "tool_use": FinishReason.TOOL_USE,
    "max_tokens": FinishReason.LENGTH,
}


class AnthropicClient(BaseLLMClient):
    """Anthropic API client with unified stream handling.

    Supports:
    - Extended thinking with budget_tokens configuration
    - Generation parameters: temperature, top_p, top_k, stop_sequences
    - Tool choice configuration: auto, any, none, or specific tool
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-sonnet-4-5",
        client_config: dict | None = None,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        """Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key.
            model: Model to use. Defaults to Claude Sonnet 4.5.
            client_config: Optional configuration parameters:
                - temperature: float (0.0-1.0, default 1.0)
                - top_p: float (nucleus sampling)
                - top_k: int (top-k sampling)
                - max_tokens: int (default 4096)
                - stop_sequences: list[str]
                - thinking_enabled: bool (enable extended thinking)
                - thinking_budget_tokens: int (min 1024, must be < max_tokens)
                - tool_choice: dict (e.g., {"type": "auto"}, {"type": "tool", "name": "..."})
            base_url: Endpoint override
            headers: Extra headers sent with every request
        """
        super().__init__(client_config)
        self.client = AsyncAnthropic(api_key=api_key, base_url=base_url, default_headers=headers)
        self.model = model
        self._validate_config()

    def _validate_config(self) -> None:
        """Validate the client configuration."""
        if not self.client_config:
            return

        unsupported = set(self.client_config.keys()) - SUPPORTED_CONFIG_KEYS
        if unsupported:
            raise ValueError(f"Unsupported config keys for Anthropic: {unsupported}")

        thinking_enabled = self.client_config.get("thinking_enabled", False)
        budget_tokens = self.client_config.get("thinking_budget_tokens")
        max_tokens = self.client_config.get("max_tokens") or 4096

        if thinking_enabled and budget_tokens:
            if budget_tokens < 1024:
                raise ValueError("thinking_budget_tokens must be at least 1024")
            if budget_tokens >= max_tokens:
                raise ValueError("thinking_budget_tokens must be less than max_tokens")

    @contextmanager
    def _handle_api_errors(self):
        try:
            yield
        except AnthropicAuthError as e:
            raise AuthenticationError(f"Anthropic authentication failed: {e}") from e
        except AnthropicRateLimitError as e:
            raise RateLimitError("Anthropic rate limit exceeded") from e
        except APIConnectionError as e:
            raise ProviderUnavailableError(f"Anthropic API unavailable: {e}") from e
        except APIStatusError as e:
            # 529 overloaded and other server-side failures
            if e.status_code >= 500:
                raise ProviderUnavailableError(f"Anthropic API unavailable: {e}") from e
            raise

    @with_retry()
    async def _open_stream(self, kwargs: dict[str, Any]) -> Any:
        with self._handle_api_errors():
            return await self.client.messages.create(stream=True, **kwargs)

    async def stream(
        self,
        messages: list[UnifiedMessage],
        tools: list[BaseTool] | None = None,
    ) -> StreamIterator:
        """Stream a response from Anthropic.

        Raises:
            AuthenticationError: If API key is invalid
            RateLimitError: If rate limit is still exceeded after retries
            ProviderUnavailableError: If API is unavailable
        """
        system_prompt, converted_messages = self._convert_messages(messages)
        converted_tools = self._convert_tools(tools) if tools else None
        kwargs = self._build_api_kwargs(system_prompt, converted_messages, converted_tools)

        response = await self._open_stream(kwargs)
        input_tokens = 0
        with self._handle_api_errors():
            async for event in response:
                if getattr(event, "type", None) == "message_start":
                    usage = getattr(event.message, "usage", None)
                    input_tokens = getattr(usage, "input_tokens", 0) or 0
                    continue
                chunk = self._parse_stream_chunk(event, input_tokens)
                if not chunk.is_empty():
                    yield chunk

    def _build_api_kwargs(
        self,
        system_prompt: str | None,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
    ) -> dict[str, Any]:
        """Build the API kwargs from configuration."""
        config = self.client_config or {}

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": config.get("max_tokens") or 4096,
        }

        if system_prompt:
            kwargs["system"] = system_prompt
        if tools:
            kwargs["tools"] = tools

        # generation parameters
        for key in ("temperature", "top_p", "top_k", "stop_sequences"):
            if config.get(key) is not None:
                kwargs[key] = config[key]

        # extended thinking
        if config.get("thinking_enabled"):
            kwargs["thinking"] = {
                "type": "enabled",
                "budget_tokens": config.get("thinking_budget_tokens", 1024),
            }

        # tool choice (only if tools provided)
        if tools and "tool_choice" in config:
            kwargs["tool_choice"] = config["tool_choice"]

        return kwargs

    def _convert_messages(
        self, messages: list[UnifiedMessage]
    ) -> tuple[str | None, list[dict[str, Any]]]:
        """Convert unified messages to Anthropic format."""
        system_prompt = None
        converted: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_prompt = msg.content

            elif msg.role == MessageRole.USER:
                converted.append({"role": "user", "content": msg.content})

            elif msg.role == MessageRole.ASSISTANT:
                content: list[dict[str, Any]] = []
                if msg.content:
                    content.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls or []:
                    content.append({
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": tc.arguments,
                    })
                converted.append({"role": "assistant", "content": content})

            elif msg.role == MessageRole.TOOL:
                block: dict[str, Any] = {
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content,
                }
                if msg.is_error:
                    block["is_error"] = True

                previous = converted[-1] if converted else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and previous["content"]
                    and previous["content"][0].get("type") == "tool_result"
                ):
                    previous["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})

        return system_prompt, converted

    def _convert_tools(self, tools: list[BaseTool]) -> list[dict[str, Any]]:
        """Convert tools to Anthropic format with input_schema."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.parameters,
            }
            for tool in tools
        ]

    def _parse_stream_chunk(self, chunk: Any, input_tokens: int = 0) -> StreamChunk:
        """Parse a single streaming event from Anthropic.

        Args:
            chunk: The raw stream event
            input_tokens: Input tokens reported by the message_start event
        """
        event_type = getattr(chunk, "type", None)

        if event_type == "content_block_delta":
            delta = chunk.delta
            delta_type = getattr(delta, "type", None)

            if delta_type == "text_delta":
                return StreamChunk(delta_content=delta.text)
            elif delta_type == "thinking_delta":
                return StreamChunk(delta_reasoning=delta.thinking)
            elif delta_type == "input_json_delta":
                return StreamChunk(
                    delta_tool_call=PartialToolCall(
                        index=chunk.index,
                        arguments_delta=delta.partial_json,
                    )
                )

        elif event_type == "content_block_start":
            block = chunk.content_block
            if getattr(block, "type", None) == "tool_use":
                return StreamChunk(
                    delta_tool_call=PartialToolCall(
                        index=chunk.index,
                        id=block.id,
                        name=block.name,
                    )
                )

        elif event_type == "message_delta":
            stop_reason = getattr(chunk.delta, "stop_reason", None)
            usage = None
            output_tokens = getattr(getattr(chunk, "usage", None), "output_tokens", None)
            if output_tokens is not None:
                usage = UsageStats(
                    prompt_tokens=input_tokens,
                    completion_tokens=output_tokens,
                    total_tokens=input_tokens + output_tokens,
                )
            return StreamChunk(
                finish_reason=_FINISH_MAP.get(stop_reason) if stop_reason else None,
                usage=usage,
            )

        return StreamChunk()
