"""Tests for the event translator."""

import pytest

from agent_controller.events import AgentEventType
from agent_controller.run_events import (
    OutputTextDelta,
    ReasoningDelta,
    ResponseDone,
    ResponseStarted,
    ToolCallRequested,
    ToolOutput,
)
from agent_controller.translator import EventTranslator
from agent_controller.types import TokenUsage, UsageStats


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def usage():
    return TokenUsage()


@pytest.fixture
def translator(emitted, usage):
    return EventTranslator(emitted.append, usage)


class TestMessageLifecycle:
    def test_start_chunks_complete(self, translator, emitted):
        for item in (
            ResponseStarted(),
            OutputTextDelta("Hel"),
            OutputTextDelta("lo"),
            ResponseDone(UsageStats(0, 0, 0)),
        ):
            translator.process(item)

        assert [e.type for e in emitted] == [
            AgentEventType.MESSAGE_START,
            AgentEventType.MESSAGE_CHUNK,
            AgentEventType.MESSAGE_CHUNK,
            AgentEventType.MESSAGE_COMPLETE,
        ]
        message_id = emitted[0].data.message_id
        assert all(e.data.message_id == message_id for e in emitted)
        assert emitted[1].data.full_content == "Hel"
        assert emitted[2].data.chunk == "lo"
        assert emitted[2].data.full_content == "Hello"
        assert emitted[3].data.content == "Hello"

    def test_each_response_gets_a_new_message_id(self, translator, emitted):
        for _ in range(2):
            translator.process(ResponseStarted())
            translator.process(ResponseDone(UsageStats(0, 0, 0)))

        starts = [e for e in emitted if e.type == AgentEventType.MESSAGE_START]
        assert starts[0].data.message_id != starts[1].data.message_id

    def test_chunk_without_started_message_is_dropped(self, translator, emitted):
        translator.process(OutputTextDelta("orphan"))
        assert emitted == []

    def test_reset_forgets_message(self, translator, emitted):
        translator.process(ResponseStarted())
        translator.reset()
        translator.process(OutputTextDelta("late"))
        translator.process(ResponseDone(UsageStats(0, 0, 0)))

        assert [e.type for e in emitted] == [AgentEventType.MESSAGE_START]
        assert translator.current_message_id is None


class TestUsage:
    def test_usage_is_summed(self, emitted, usage):
        notified = []
        translator = EventTranslator(emitted.append, usage, notified.append)

        translator.process(ResponseDone(UsageStats(10, 5, 15)))
        translator.process(ResponseDone(UsageStats(7, 3, 10)))

        assert usage == TokenUsage(17, 8)
        assert len(notified) == 2


class TestToolEvents:
    def test_tool_call_start_formats_input(self, translator, emitted):
        translator.process(ToolCallRequested("call_1", "echo", '{"text": "hi"}'))

        event = emitted[0]
        assert event.type == AgentEventType.TOOL_CALL_START
        assert event.data.call_id == "call_1"
        assert event.data.input == '{\n  "text": "hi"\n}'

    def test_unparseable_input_passed_through(self, translator, emitted):
        translator.process(ToolCallRequested("call_1", "echo", "not json"))
        assert emitted[0].data.input == "not json"

    def test_tool_output_completed(self, translator, emitted):
        translator.process(ToolOutput("call_1", "echo", {"ok": True}))

        event = emitted[0]
        assert event.type == AgentEventType.TOOL_CALL_COMPLETE
        assert event.data.output == '{\n  "ok": true\n}'
        assert event.data.is_error is False

    def test_tool_output_incomplete_is_error(self, translator, emitted):
        translator.process(ToolOutput("call_1", "echo", "boom", status="incomplete"))
        assert emitted[0].data.is_error is True


class TestUnknownItems:
    def test_unknown_items_are_ignored(self, translator, emitted):
        translator.process(object())
        translator.process(ReasoningDelta("thinking"))
        assert emitted == []

    @pytest.mark.anyio
    async def test_consume_translates_every_item(self, translator, emitted):
        async def items():
            yield ResponseStarted()
            yield OutputTextDelta("hi")
            yield ResponseDone(UsageStats(1, 1, 2))

        await translator.consume(items())
        assert len(emitted) == 3
