"""Tests for unified types and agent events."""

import pytest

from agent_controller.events import (
    AgentEvent,
    AgentEventType,
    ApprovalRequest,
    ErrorData,
    GroupedApprovalRequired,
    MessageChunk,
    MessageStart,
    ToolCallComplete,
    make_event,
)
from agent_controller.exceptions import TurnLimitExceeded
from agent_controller.types import (
    PHASE_TRANSITIONS,
    MessageRole,
    RunPhase,
    StreamChunk,
    TokenUsage,
    ToolCall,
    UnifiedMessage,
)


class TestUnifiedMessage:
    def test_to_dict_user_message(self):
        msg = UnifiedMessage(role=MessageRole.USER, content="Hello")
        assert msg.to_dict() == {"role": "user", "content": "Hello"}

    def test_to_dict_assistant_with_tool_calls(self):
        msg = UnifiedMessage(
            role=MessageRole.ASSISTANT,
            tool_calls=[ToolCall(id="call_1", name="echo", arguments={"text": "x"})],
        )
        data = msg.to_dict()
        assert "content" not in data
        assert data["tool_calls"] == [{"id": "call_1", "name": "echo", "arguments": {"text": "x"}}]

    def test_to_dict_flags_tool_errors(self):
        msg = UnifiedMessage(
            role=MessageRole.TOOL, content="failed", tool_call_id="call_1", name="echo", is_error=True
        )
        data = msg.to_dict()
        assert data["is_error"] is True
        assert data["tool_call_id"] == "call_1"


class TestStreamChunk:
    def test_empty_chunk(self):
        assert StreamChunk().is_empty()

    def test_content_chunk_is_not_empty(self):
        assert not StreamChunk(delta_content="hi").is_empty()


class TestTokenUsage:
    def test_add_accumulates(self):
        usage = TokenUsage()
        usage.add(10, 5)
        usage.add(3, 2)
        assert usage.to_dict() == {"input_tokens": 13, "output_tokens": 7}

    def test_snapshot_is_independent(self):
        usage = TokenUsage(1, 2)
        snapshot = usage.snapshot()
        usage.add(1, 1)
        assert snapshot == TokenUsage(1, 2)

    def test_reset(self):
        usage = TokenUsage(4, 4)
        usage.reset()
        assert usage == TokenUsage()


class TestRunPhase:
    def test_terminal_phases(self):
        terminal = {phase for phase in RunPhase if phase.is_terminal}
        assert terminal == {RunPhase.COMPLETED, RunPhase.CANCELLED, RunPhase.FAILED}

    def test_idle_only_starts_streaming(self):
        assert PHASE_TRANSITIONS[RunPhase.IDLE] == {RunPhase.STREAMING}

    def test_awaiting_approval_cannot_complete_directly(self):
        assert RunPhase.COMPLETED not in PHASE_TRANSITIONS[RunPhase.AWAITING_APPROVAL]

    def test_terminal_phases_return_to_idle(self):
        for phase in (RunPhase.COMPLETED, RunPhase.CANCELLED, RunPhase.FAILED):
            assert PHASE_TRANSITIONS[phase] == {RunPhase.IDLE}


class TestAgentEvent:
    def test_make_event_derives_type(self):
        event = make_event(MessageStart(message_id="msg-1"))
        assert event.type == AgentEventType.MESSAGE_START

    def test_mismatched_payload_rejected(self):
        with pytest.raises(TypeError):
            AgentEvent(type=AgentEventType.MESSAGE_CHUNK, data=MessageStart(message_id="msg-1"))

    def test_make_event_rejects_unknown_payload(self):
        with pytest.raises(TypeError):
            make_event("not a payload")

    def test_chunk_to_dict(self):
        event = make_event(MessageChunk(message_id="m", chunk="lo", full_content="hello"))
        assert event.to_dict() == {
            "type": "message_chunk",
            "data": {"message_id": "m", "chunk": "lo", "full_content": "hello"},
        }

    def test_grouped_approval_to_dict(self):
        event = make_event(GroupedApprovalRequired(
            group_id="group-1",
            approvals=(ApprovalRequest("int-1", "write_file", "{}"),),
        ))
        data = event.to_dict()["data"]
        assert data["group_id"] == "group-1"
        assert data["approvals"] == [
            {"interruption_id": "int-1", "tool_name": "write_file", "tool_input": "{}"}
        ]

    def test_error_to_dict(self):
        event = make_event(ErrorData(error=TurnLimitExceeded(3)))
        assert event.to_dict() == {
            "type": "error",
            "data": {"error": "Max turns (3) exceeded", "error_type": "TurnLimitExceeded"},
        }

    def test_tool_call_complete_keeps_error_flag(self):
        event = make_event(ToolCallComplete("call_1", "echo", "oops", is_error=True))
        assert event.to_dict()["data"]["is_error"] is True
