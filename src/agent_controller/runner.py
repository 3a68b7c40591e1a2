"""Model/tool run engine.

A run drives the model against the conversation history, executes the tool
calls it requests and feeds the results back, until the model answers
without tool calls. Tool calls that need approval halt the run: the result
then exposes the pending interruptions and a resumable RunState, which is
passed back to ``Runner.run`` once every interruption has a verdict.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import AsyncIterator

from .core.prompt_builder import PromptBuilder
from .core.tool_executor import ToolExecutor
from .exceptions import AgentError, RunCancelled, StreamError, TurnLimitExceeded
from .logging import get_logger
from .run_events import (
    OutputTextDelta,
    ReasoningDelta,
    ResponseDone,
    ResponseStarted,
    RunStreamEvent,
    ToolCallRequested,
)
from .types import (
    AgentConfig,
    MessageRole,
    PartialToolCall,
    ToolCall,
    UnifiedMessage,
    UsageStats,
)

logger = get_logger(__name__)


class CancellationToken:
    """Cooperative cancellation signal shared by one turn.

    Setting the token never interrupts an operation by force; code checks it
    at its suspension points and unwinds with RunCancelled.
    """

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True, eq=False)
class ToolApprovalItem:
    """A tool call awaiting human authorization.

    Compared by identity: the handle is only ever round-tripped back into
    the RunState that created it.

    Attributes:
        call_id: Provider id of the tool call
        tool_name: Name of the requested tool
        arguments: Serialized JSON arguments
        tool_call: The parsed call, executed if approved
    """
    call_id: str
    tool_name: str
    arguments: str
    tool_call: ToolCall = field(repr=False)


class RunState:
    """Resumable snapshot of a halted run.

    Holds everything generated so far and a verdict slot per pending
    interruption. Approve and reject are mutually exclusive per interruption.
    """

    def __init__(
        self,
        history: list[UnifiedMessage],
        current_turn: int,
        interruptions: list[ToolApprovalItem],
    ):
        self._history = list(history)
        self._current_turn = current_turn
        self._interruptions = list(interruptions)
        self._decisions: dict[str, bool] = {}

    @property
    def history(self) -> list[UnifiedMessage]:
        return list(self._history)

    @property
    def current_turn(self) -> int:
        return self._current_turn

    @property
    def interruptions(self) -> list[ToolApprovalItem]:
        return list(self._interruptions)

    def approve(self, item: ToolApprovalItem) -> None:
        self._decide(item, True)

    def reject(self, item: ToolApprovalItem) -> None:
        self._decide(item, False)

    def decision_for(self, item: ToolApprovalItem) -> bool | None:
        return self._decisions.get(item.call_id)

    @property
    def is_resolved(self) -> bool:
        return all(item.call_id in self._decisions for item in self._interruptions)

    def _decide(self, item: ToolApprovalItem, approved: bool) -> None:
        if not any(item is pending for pending in self._interruptions):
            raise ValueError(f"Interruption for call '{item.call_id}' does not belong to this run")
        previous = self._decisions.get(item.call_id)
        if previous is not None and previous != approved:
            verdict = "approved" if previous else "rejected"
            raise ValueError(f"Call '{item.call_id}' was already {verdict}")
        self._decisions[item.call_id] = approved


class ToolCallAssembler:
    """Reconstructs complete tool calls from streamed deltas."""

    def __init__(self):
        self._builders: dict[int, dict] = {}

    def add(self, delta: PartialToolCall) -> None:
        builder = self._builders.setdefault(
            delta.index, {"id": delta.id, "name": delta.name, "arguments": ""}
        )
        if delta.id and not builder["id"]:
            builder["id"] = delta.id
        if delta.name and not builder["name"]:
            builder["name"] = delta.name
        if delta.arguments_delta:
            builder["arguments"] += delta.arguments_delta

    def build(self) -> list[ToolCall]:
        """Build the tool calls, dropping any whose arguments are not valid JSON."""
        tool_calls = []
        for index, builder in sorted(self._builders.items()):
            if not builder["name"]:
                continue
            try:
                args = json.loads(builder["arguments"]) if builder["arguments"] else {}
            except json.JSONDecodeError:
                logger.warning(
                    f"dropping tool call '{builder['name']}': arguments are not valid JSON"
                )
                continue
            tool_calls.append(ToolCall(
                id=builder["id"] or f"call_{index}",
                name=builder["name"],
                arguments=args if isinstance(args, dict) else {"input": args},
            ))
        return tool_calls


class StreamedRunResult:
    """A run in progress.

    Iterate it (once) with ``async for`` to drive the run; the attributes are
    meaningful once iteration has finished.

    Attributes:
        interruptions: Tool calls awaiting approval (empty when the run completed)
        state: Resumable snapshot when the run halted on interruptions
        history: Input history plus everything the run generated
        final_output: The model's final text when the run completed
    """

    def __init__(
        self,
        config: AgentConfig,
        input: list[UnifiedMessage] | RunState,
        max_turns: int,
        executor: ToolExecutor,
        cancel_token: CancellationToken,
    ):
        self.config = config
        self.max_turns = max_turns
        self.interruptions: list[ToolApprovalItem] = []
        self.state: RunState | None = None
        self.history: list[UnifiedMessage] = []
        self.final_output: str | None = None
        self._input = input
        self._executor = executor
        self._token = cancel_token
        self._prompts = PromptBuilder()
        self._started = False

    @property
    def has_interruptions(self) -> bool:
        return bool(self.interruptions)

    def __aiter__(self) -> AsyncIterator[RunStreamEvent]:
        if self._started:
            raise AgentError("A run result can only be iterated once")
        self._started = True
        return self._run()

    async def _run(self) -> AsyncIterator[RunStreamEvent]:
        if isinstance(self._input, RunState):
            history = self._input.history
            turn = self._input.current_turn
            async for item in self._resolve_interruptions(self._input, history):
                yield item
        else:
            history = list(self._input)
            turn = 0

        while True:
            self._token.raise_if_cancelled()
            if turn >= self.max_turns:
                raise TurnLimitExceeded(self.max_turns)
            turn += 1
            logger.debug(f"model turn {turn}/{self.max_turns}")

            yield ResponseStarted()

            content = ""
            reasoning = ""
            usage: UsageStats | None = None
            assembler = ToolCallAssembler()
            messages = [self._prompts.build_system_message(self.config.instructions), *history]
            tools = list(self.config.tools) or None

            try:
                async with aclosing(self.config.model.stream(messages, tools)) as chunks:
                    async for chunk in chunks:
                        self._token.raise_if_cancelled()
                        if chunk.delta_reasoning:
                            reasoning += chunk.delta_reasoning
                            yield ReasoningDelta(chunk.delta_reasoning)
                        if chunk.delta_content:
                            content += chunk.delta_content
                            yield OutputTextDelta(chunk.delta_content)
                        if chunk.delta_tool_call:
                            assembler.add(chunk.delta_tool_call)
                        if chunk.usage:
                            usage = chunk.usage
            except (RunCancelled, StreamError):
                raise
            except Exception as e:
                raise StreamError(e) from e

            self._token.raise_if_cancelled()

            tool_calls = assembler.build()
            for tc in tool_calls:
                yield ToolCallRequested(tc.id, tc.name, json.dumps(tc.arguments))

            yield ResponseDone(usage or UsageStats(0, 0, 0))

            history.append(UnifiedMessage(
                role=MessageRole.ASSISTANT,
                content=content or None,
                reasoning_content=reasoning or None,
                tool_calls=tool_calls or None,
            ))

            if not tool_calls:
                self.final_output = content
                break

            interruptions = []
            for tc in tool_calls:
                if self._executor.requires_approval(tc):
                    interruptions.append(ToolApprovalItem(
                        call_id=tc.id,
                        tool_name=tc.name,
                        arguments=json.dumps(tc.arguments),
                        tool_call=tc,
                    ))
                    continue
                output = await self._executor.invoke(tc)
                history.append(self._prompts.build_tool_result(output))
                yield output
                self._token.raise_if_cancelled()

            if interruptions:
                logger.info(f"run halted on {len(interruptions)} interruption(s)")
                self.interruptions = interruptions
                self.state = RunState(history, turn, interruptions)
                break

        self.history = history

    async def _resolve_interruptions(
        self, state: RunState, history: list[UnifiedMessage]
    ) -> AsyncIterator[RunStreamEvent]:
        """Execute approved calls and answer rejected ones."""
        for item in state.interruptions:
            decision = state.decision_for(item)
            if decision is None:
                raise AgentError(f"Interruption for '{item.tool_name}' has not been resolved")
            if decision:
                output = await self._executor.invoke(item.tool_call)
            else:
                logger.info(f"tool call '{item.tool_name}' ({item.call_id}) rejected")
                output = self._executor.rejection_output(item.tool_call)
            history.append(self._prompts.build_tool_result(output))
            yield output
            self._token.raise_if_cancelled()


class Runner:
    """Starts and resumes runs.

    Attributes:
        auto_approve_patterns: Operation type -> fnmatch patterns whose calls
            skip approval, e.g. {"write": ["tests/*"]}
    """

    def __init__(self, auto_approve_patterns: dict[str, list[str]] | None = None):
        self.auto_approve_patterns = auto_approve_patterns or {}

    def run(
        self,
        config: AgentConfig,
        input: list[UnifiedMessage] | RunState,
        *,
        max_turns: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> StreamedRunResult:
        """Start a run, or resume one from a RunState.

        Args:
            config: Agent configuration captured for this run.
            input: Conversation history, or the state of a halted run whose
                interruptions have all been resolved.
            max_turns: Model/tool round-trip budget (config default if None).
                A resumed run keeps counting from where it halted.
            cancel_token: Token checked at every streamed chunk.

        Returns:
            The run, to be iterated with ``async for``.
        """
        if isinstance(input, RunState) and not input.is_resolved:
            raise AgentError("Cannot resume a run with unresolved interruptions")

        executor = ToolExecutor(
            tools={tool.name: tool for tool in config.tools},
            auto_approve_patterns=self.auto_approve_patterns,
        )
        return StreamedRunResult(
            config=config,
            input=input,
            max_turns=max_turns if max_turns is not None else config.max_turns,
            executor=executor,
            cancel_token=cancel_token or CancellationToken(),
        )
