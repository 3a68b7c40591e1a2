"""Tests for the approval gate."""

import asyncio
import json

import pytest

from agent_controller.core.approval_gate import ApprovalGate
from agent_controller.events import AgentEventType
from agent_controller.exceptions import RunCancelled
from agent_controller.runner import CancellationToken, RunState, ToolApprovalItem
from agent_controller.types import ToolCall


def make_item(call_id: str, name: str = "write_file", args: dict | None = None) -> ToolApprovalItem:
    args = args if args is not None else {"path": f"{call_id}.txt"}
    return ToolApprovalItem(
        call_id=call_id,
        tool_name=name,
        arguments=json.dumps(args),
        tool_call=ToolCall(id=call_id, name=name, arguments=args),
    )


def make_state(*items: ToolApprovalItem) -> RunState:
    return RunState(history=[], current_turn=1, interruptions=list(items))


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def gate(emitted):
    return ApprovalGate(emitted.append)


class TestRequestApproval:
    def test_single_interruption_emits_single_event(self, gate, emitted):
        item = make_item("call_1", args={"path": "a.txt"})
        batch = gate.request_approval([item], make_state(item))

        assert len(emitted) == 1
        event = emitted[0]
        assert event.type == AgentEventType.TOOL_APPROVAL_REQUIRED
        assert event.data.tool_name == "write_file"
        assert event.data.call_id == "call_1"
        assert event.data.tool_input == '{\n  "path": "a.txt"\n}'
        assert set(gate.pending) == {event.data.interruption_id}
        assert batch.group_id is None

    def test_multiple_interruptions_emit_one_grouped_event(self, gate, emitted):
        items = [make_item("call_1"), make_item("call_2")]
        batch = gate.request_approval(items, make_state(*items))

        assert len(emitted) == 1
        event = emitted[0]
        assert event.type == AgentEventType.GROUPED_APPROVAL_REQUIRED
        assert event.data.group_id == batch.group_id
        ids = [a.interruption_id for a in event.data.approvals]
        assert len(set(ids)) == 2
        assert set(gate.pending) == set(ids)
        assert all(r.group_id == batch.group_id for r in gate.pending.values())

    def test_missing_name_and_arguments_get_placeholders(self, gate, emitted):
        item = ToolApprovalItem(
            call_id="call_1", tool_name="", arguments="",
            tool_call=ToolCall(id="call_1", name="", arguments={}),
        )
        gate.request_approval([item], make_state(item))

        assert emitted[0].data.tool_name == "Unknown Tool"
        assert emitted[0].data.tool_input == "{}"

    def test_empty_interruptions_rejected(self, gate):
        with pytest.raises(ValueError):
            gate.request_approval([], make_state())


class TestResolve:
    def test_approve_applies_verdict_and_completes_batch(self, gate, emitted):
        item = make_item("call_1")
        state = make_state(item)
        batch = gate.request_approval([item], state)
        interruption_id = emitted[0].data.interruption_id

        assert gate.approve(interruption_id) is True
        assert state.decision_for(item) is True
        assert batch.is_complete
        assert gate.pending == {}

    def test_reject_applies_verdict(self, gate, emitted):
        item = make_item("call_1")
        state = make_state(item)
        gate.request_approval([item], state)

        assert gate.reject(emitted[0].data.interruption_id) is True
        assert state.decision_for(item) is False

    def test_unknown_id_is_a_noop(self, gate, emitted, caplog):
        item = make_item("call_1")
        batch = gate.request_approval([item], make_state(item))

        assert gate.approve("int-unknown") is False
        assert gate.reject("int-unknown") is False
        assert not batch.is_complete
        assert len(gate.pending) == 1
        assert "No pending approval found" in caplog.text

    def test_second_verdict_for_same_id_is_ignored(self, gate, emitted):
        item = make_item("call_1")
        state = make_state(item)
        gate.request_approval([item], state)
        interruption_id = emitted[0].data.interruption_id

        gate.approve(interruption_id)
        assert gate.reject(interruption_id) is False
        assert state.decision_for(item) is True

    def test_batch_waits_for_every_interruption(self, gate, emitted):
        items = [make_item("call_1"), make_item("call_2")]
        batch = gate.request_approval(items, make_state(*items))
        first, second = [a.interruption_id for a in emitted[0].data.approvals]

        gate.approve(first)
        assert not batch.is_complete
        assert batch.remaining == {second}

        gate.reject(second)
        assert batch.is_complete

    def test_ids_of_stale_batch_do_not_release_new_batch(self, gate, emitted):
        old_item = make_item("call_1")
        old_batch = gate.request_approval([old_item], make_state(old_item))
        old_id = emitted[0].data.interruption_id
        gate.approve(old_id)
        assert old_batch.is_complete

        new_item = make_item("call_2")
        new_batch = gate.request_approval([new_item], make_state(new_item))

        assert gate.approve(old_id) is False
        assert not new_batch.is_complete


class TestGroupResolve:
    def test_approve_group_resolves_all(self, gate, emitted):
        items = [make_item("call_1"), make_item("call_2")]
        state = make_state(*items)
        batch = gate.request_approval(items, state)

        assert gate.approve_group(batch.group_id) == 2
        assert batch.is_complete
        assert all(state.decision_for(i) is True for i in items)

    def test_reject_group_after_partial_approval(self, gate, emitted):
        items = [make_item("call_1"), make_item("call_2"), make_item("call_3")]
        state = make_state(*items)
        batch = gate.request_approval(items, state)
        first = emitted[0].data.approvals[0].interruption_id

        gate.approve(first)
        assert gate.reject_group(batch.group_id) == 2

        assert batch.is_complete
        assert [state.decision_for(i) for i in items] == [True, False, False]

    def test_group_subset(self, gate, emitted):
        items = [make_item("call_1"), make_item("call_2")]
        state = make_state(*items)
        batch = gate.request_approval(items, state)
        first = emitted[0].data.approvals[0].interruption_id

        assert gate.approve_group(batch.group_id, [first, "int-unknown"]) == 1
        assert not batch.is_complete
        assert state.decision_for(items[0]) is True
        assert state.decision_for(items[1]) is None

    def test_unknown_group_resolves_nothing(self, gate, emitted):
        items = [make_item("call_1"), make_item("call_2")]
        gate.request_approval(items, make_state(*items))

        assert gate.approve_group("group-unknown") == 0
        assert len(gate.pending) == 2

    def test_ids_from_another_group_are_skipped(self, gate, emitted):
        items = [make_item("call_1"), make_item("call_2")]
        batch = gate.request_approval(items, make_state(*items))
        single = make_item("call_3")
        gate.request_approval([single], make_state(single))
        single_id = emitted[1].data.interruption_id

        assert gate.approve_group(batch.group_id, [single_id]) == 0
        assert single_id in gate.pending


class TestWait:
    @pytest.mark.anyio
    async def test_wait_returns_once_resolved(self, gate, emitted):
        item = make_item("call_1")
        batch = gate.request_approval([item], make_state(item))
        token = CancellationToken()

        waiter = asyncio.ensure_future(gate.wait(batch, token))
        await asyncio.sleep(0)
        assert not waiter.done()

        gate.approve(emitted[0].data.interruption_id)
        await asyncio.wait_for(waiter, timeout=1)

    @pytest.mark.anyio
    async def test_wait_on_complete_batch_returns_immediately(self, gate, emitted):
        item = make_item("call_1")
        batch = gate.request_approval([item], make_state(item))
        gate.approve(emitted[0].data.interruption_id)

        await gate.wait(batch, CancellationToken())

    @pytest.mark.anyio
    async def test_cancel_while_waiting_discards_pending(self, gate, emitted):
        items = [make_item("call_1"), make_item("call_2")]
        batch = gate.request_approval(items, make_state(*items))
        token = CancellationToken()

        waiter = asyncio.ensure_future(gate.wait(batch, token))
        await asyncio.sleep(0)
        token.cancel()

        with pytest.raises(RunCancelled):
            await asyncio.wait_for(waiter, timeout=1)
        assert gate.pending == {}

    def test_clear(self, gate):
        item = make_item("call_1")
        gate.request_approval([item], make_state(item))
        gate.clear()
        assert gate.pending == {}
