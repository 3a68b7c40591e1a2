"""Google Gemini client implementation using the google-genai SDK.

This client handles communication with the Google Gemini API and normalizes
the streamed responses to the unified format.

Google Gemini has unique requirements:
- Uses "parts" format for message content
- Tool calls use "function_call" in parts, delivered whole (never split)
- Tool results use "function_response" in parts
- System instruction is a separate parameter
- Role names: "user" and "model" (not "assistant")
- Usage metadata is cumulative; the last reported value is the total
"""

import json
import uuid
from typing import Any

from google import genai
from google.genai import types
from google.genai.errors import APIError, ClientError, ServerError

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

# supported configuration keys for google
SUPPORTED_CONFIG_KEYS = {
    "temperature",
    "top_p",
    "top_k",
    "max_tokens",
    "stop_sequences",
    # thinking features
    "thinking_budget",
    "include_thoughts",
    # function calling
    "function_calling_mode",
}


class GoogleClient(BaseLLMClient):
    """Google Gemini API client using the async google-genai SDK.

    Supports:
    - Thinking/reasoning with thinking_budget configuration
    - Generation parameters: temperature, top_p, top_k, max_tokens
    - Function calling modes: AUTO, ANY, NONE
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gemini-2.5-flash",
        client_config: dict | None = None,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        """Initialize the Google client.

        Args:
            api_key: Google API key.
            model: Model to use. Defaults to gemini-2.5-flash.
            client_config: Optional configuration parameters:
                - temperature: float
                - top_p: float
                - top_k: int
                - max_tokens: int (default 4096)
                - stop_sequences: list[str]
                - thinking_budget: int
                - include_thoughts: bool (return thought summaries)
                - function_calling_mode: str ("AUTO", "ANY", "NONE")
            base_url: Endpoint override
            headers: Extra headers sent with every request
        """
        super().__init__(client_config)

        if not api_key:
            raise ValueError("Google API key not provided")

        http_options = None
        if base_url or headers:
            http_options = types.HttpOptions(base_url=base_url, headers=headers)
        self.client = genai.Client(api_key=api_key, http_options=http_options)
        self.model_name = model
        self._validate_config()

    def _validate_config(self) -> None:
        """Validate the client configuration."""
        if not self.client_config:
            return

        unsupported = set(self.client_config.keys()) - SUPPORTED_CONFIG_KEYS
        if unsupported:
            raise ValueError(f"Unsupported config keys for Google: {unsupported}")

        mode = self.client_config.get("function_calling_mode")
        if mode and mode not in ("AUTO", "ANY", "NONE"):
            raise ValueError(f"Invalid function_calling_mode: {mode}. Must be AUTO, ANY, or NONE.")

    def _map_error(self, e: APIError) -> Exception:
        code = getattr(e, "code", None)
        if isinstance(e, ClientError):
            if code in (401, 403):
                return AuthenticationError(f"Google authentication failed: {e}")
            if code == 429:
                return RateLimitError("Google rate limit exceeded")
            return InvalidResponseError(f"Invalid request to Google API: {e}")
        if isinstance(e, ServerError):
            return ProviderUnavailableError(f"Google API unavailable: {e}")
        return InvalidResponseError(f"Google API error: {e}")

    @with_retry()
    async def _open_stream(self, contents: list[types.Content], config: types.GenerateContentConfig) -> Any:
        try:
            return await self.client.aio.models.generate_content_stream(
                model=self.model_name,
                contents=contents,
                config=config,
            )
        except APIError as e:
            raise self._map_error(e) from e

    async def stream(
        self,
        messages: list[UnifiedMessage],
        tools: list[BaseTool] | None = None,
    ) -> StreamIterator:
        """Stream a response from Google Gemini."""
        system_instruction, converted_messages = self._convert_messages(messages)
        converted_tools = self._convert_tools(tools) if tools else None
        config = self._build_generation_config(converted_tools, system_instruction)

        response = await self._open_stream(converted_messages, config)
        usage: UsageStats | None = None
        call_index = 0
        try:
            async for chunk in response:
                usage = self._parse_usage(chunk) or usage
                for parsed in self._parse_stream_chunk(chunk, call_index):
                    if parsed.delta_tool_call is not None:
                        call_index += 1
                    if not parsed.is_empty():
                        yield parsed
        except APIError as e:
            raise self._map_error(e) from e

        if usage is not None:
            yield StreamChunk(usage=usage)

    def _build_generation_config(
        self,
        tools: list[types.FunctionDeclaration] | None,
        system_instruction: str | None = None,
    ) -> types.GenerateContentConfig:
        """Build the generation config from client configuration."""
        cfg = self.client_config or {}

        config_kwargs: dict[str, Any] = {
            "max_output_tokens": cfg.get("max_tokens") or 4096,
        }

        if system_instruction:
            config_kwargs["system_instruction"] = system_instruction

        for key in ("temperature", "top_p", "top_k", "stop_sequences"):
            if cfg.get(key) is not None:
                config_kwargs[key] = cfg[key]

        thinking_budget = cfg.get("thinking_budget")
        include_thoughts = cfg.get("include_thoughts", False)
        if thinking_budget is not None or include_thoughts:
            thinking_config_kwargs: dict[str, Any] = {}
            if thinking_budget is not None:
                thinking_config_kwargs["thinking_budget"] = thinking_budget
            if include_thoughts:
                thinking_config_kwargs["include_thoughts"] = include_thoughts
            config_kwargs["thinking_config"] = types.ThinkingConfig(**thinking_config_kwargs)

        if tools:
            config_kwargs["tools"] = [types.Tool(function_declarations=tools)]
            mode = cfg.get("function_calling_mode", "AUTO")
            config_kwargs["tool_config"] = types.ToolConfig(
                function_calling_config=types.FunctionCallingConfig(mode=mode)
            )

        return types.GenerateContentConfig(**config_kwargs)

    def _convert_messages(
        self, messages: list[UnifiedMessage]
    ) -> tuple[str | None, list[types.Content]]:
        """Convert unified messages to Gemini format."""
        system_instruction = None
        converted: list[types.Content] = []

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_instruction = msg.content

            elif msg.role == MessageRole.USER:
                converted.append(types.Content(
                    role="user",
                    parts=[types.Part.from_text(text=msg.content or "")],
                ))

            elif msg.role == MessageRole.ASSISTANT:
                parts: list[types.Part] = []
                if msg.content:
                    parts.append(types.Part.from_text(text=msg.content))
                for tc in msg.tool_calls or []:
                    parts.append(types.Part.from_function_call(
                        name=tc.name,
                        args=tc.arguments,
                    ))
                converted.append(types.Content(role="model", parts=parts))

            elif msg.role == MessageRole.TOOL:
                key = "error" if msg.is_error else "result"
                converted.append(types.Content(
                    role="user",
                    parts=[types.Part.from_function_response(
                        name=msg.name or "",
                        response={key: msg.content},
                    )],
                ))

        return system_instruction, converted

    def _convert_tools(self, tools: list[BaseTool]) -> list[types.FunctionDeclaration]:
        """Convert tools to Gemini function declaration format."""
        return [
            types.FunctionDeclaration(
                name=tool.name,
                description=tool.description,
                parameters=tool.parameters,
            )
            for tool in tools
        ]

    def _parse_usage(self, chunk: Any) -> UsageStats | None:
        um = getattr(chunk, "usage_metadata", None)
        if not um:
            return None
        return UsageStats(
            prompt_tokens=getattr(um, "prompt_token_count", 0) or 0,
            completion_tokens=getattr(um, "candidates_token_count", 0) or 0,
            total_tokens=getattr(um, "total_token_count", 0) or 0,
        )

    def _parse_stream_chunk(self, chunk: Any, call_index: int = 0) -> list[StreamChunk]:
        """Parse a single streaming chunk from Gemini.

        Args:
            chunk: The raw response chunk
            call_index: Index assigned to the first function call in this chunk

        Returns:
            One StreamChunk per part.
        """
        if not chunk.candidates:
            return []

        candidate = chunk.candidates[0]
        content = getattr(candidate, "content", None)
        parsed: list[StreamChunk] = []

        for part in (content.parts if content and content.parts else []):
            if getattr(part, "thought", None):
                parsed.append(StreamChunk(delta_reasoning=part.text or ""))
            elif getattr(part, "text", None):
                parsed.append(StreamChunk(delta_content=part.text))
            elif getattr(part, "function_call", None):
                fc = part.function_call
                parsed.append(StreamChunk(
                    delta_tool_call=PartialToolCall(
                        index=call_index,
                        id=fc.id or f"call_{fc.name}_{uuid.uuid4().hex[:8]}",
                        name=fc.name,
                        arguments_delta=json.dumps(dict(fc.args) if fc.args else {}),
                    )
                ))
                call_index += 1

        if candidate.finish_reason:
            parsed.append(StreamChunk(finish_reason=FinishReason.STOP))

        return parsed
