"""Event translation for streamed runs.

This module provides the EventTranslator class which decomposes the items
streamed by a run into the agent event vocabulary, and accumulates the
token usage reported at each response completion.
"""

from typing import AsyncIterable, Callable

from .events import (
    AgentEvent,
    MessageChunk,
    MessageComplete,
    MessageStart,
    ToolCallComplete,
    ToolCallStart,
    make_event,
)
from .logging import get_logger
from .run_events import (
    OutputTextDelta,
    ResponseDone,
    ResponseStarted,
    ToolCallRequested,
    ToolOutput,
)
from .types import TokenUsage
from .utils.formatting import format_tool_input, stringify_output
from .utils.ids import message_id

logger = get_logger(__name__)


class EventTranslator:
    """Turns raw run items into agent events.

    Handles:
    - Message lifecycle (start, cumulative chunks, completion)
    - Token usage accumulation on response completion
    - Tool call start and completion
    Unknown items are ignored.
    """

    def __init__(
        self,
        emit: Callable[[AgentEvent], None],
        token_usage: TokenUsage,
        on_usage_changed: Callable[[TokenUsage], None] | None = None,
    ):
        """Initialize the translator.

        Args:
            emit: Receives every translated event.
            token_usage: Counters to accumulate usage into.
            on_usage_changed: Called after each usage update.
        """
        self._emit = emit
        self._usage = token_usage
        self._on_usage_changed = on_usage_changed
        self._message_id: str | None = None
        self._content = ""

    @property
    def current_message_id(self) -> str | None:
        """Id of the message being streamed, if any."""
        return self._message_id

    async def consume(self, items: AsyncIterable) -> None:
        """Translate every item of a run until it is exhausted."""
        async for item in items:
            self.process(item)

    def process(self, item: object) -> None:
        """Translate a single raw run item."""
        if isinstance(item, ResponseStarted):
            self._start_message()
        elif isinstance(item, OutputTextDelta):
            self._append_chunk(item.delta)
        elif isinstance(item, ResponseDone):
            self._complete_message()
            self._add_usage(item.usage.prompt_tokens, item.usage.completion_tokens)
        elif isinstance(item, ToolCallRequested):
            self._emit(make_event(ToolCallStart(
                call_id=item.call_id,
                tool_name=item.tool_name,
                input=format_tool_input(item.arguments),
            )))
        elif isinstance(item, ToolOutput):
            self._emit(make_event(ToolCallComplete(
                call_id=item.call_id,
                tool_name=item.tool_name,
                output=stringify_output(item.output),
                is_error=item.is_error,
            )))
        else:
            logger.debug(f"ignoring run item {type(item).__name__}")

    def reset(self) -> None:
        """Forget the in-flight message without completing it."""
        self._message_id = None
        self._content = ""

    def _start_message(self) -> None:
        self._message_id = message_id()
        self._content = ""
        self._emit(make_event(MessageStart(message_id=self._message_id)))

    def _append_chunk(self, chunk: str) -> None:
        if self._message_id is None:
            return
        self._content += chunk
        self._emit(make_event(MessageChunk(
            message_id=self._message_id,
            chunk=chunk,
            full_content=self._content,
        )))

    def _complete_message(self) -> None:
        if self._message_id is None:
            return
        self._emit(make_event(MessageComplete(
            message_id=self._message_id,
            content=self._content,
        )))
        self._message_id = None

    def _add_usage(self, input_tokens: int, output_tokens: int) -> None:
        self._usage.add(input_tokens, output_tokens)
        if self._on_usage_changed is not None:
            self._on_usage_changed(self._usage)
