"""Approval handling for halted runs.

The gate registers the interruptions of a halted run as pending approvals,
announces them as events and releases the run once every interruption of
the current batch has been approved or rejected.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Mapping

from ..events import (
    AgentEvent,
    ApprovalRequest,
    GroupedApprovalRequired,
    ToolApprovalRequired,
    make_event,
)
from ..exceptions import RunCancelled
from ..logging import get_logger
from ..runner import CancellationToken, RunState, ToolApprovalItem
from ..utils.formatting import format_tool_input
from ..utils.ids import group_id as new_group_id
from ..utils.ids import interruption_id as new_interruption_id

logger = get_logger(__name__)


class ApprovalBatch:
    """The interruptions surfaced together for one halted run.

    Completes exactly once, when its last interruption is resolved. Resolving
    ids of another batch never affects it.
    """

    def __init__(self, state: RunState, ids: list[str], group_id: str | None = None):
        self.state = state
        self.ids = frozenset(ids)
        self.group_id = group_id
        self._remaining = set(ids)
        self._done = asyncio.Event()

    @property
    def is_complete(self) -> bool:
        return self._done.is_set()

    @property
    def remaining(self) -> frozenset[str]:
        return frozenset(self._remaining)

    def mark_resolved(self, interruption_id: str) -> None:
        self._remaining.discard(interruption_id)
        if not self._remaining:
            self._done.set()

    async def wait(self) -> None:
        await self._done.wait()


@dataclass
class PendingApproval:
    """A surfaced interruption awaiting a verdict.

    Attributes:
        interruption: The run's interruption handle
        batch: The batch it was surfaced in
        group_id: Group id when surfaced as part of a grouped approval
        approved: The verdict, set just before the record is removed
    """
    interruption: ToolApprovalItem
    batch: ApprovalBatch = field(repr=False)
    group_id: str | None = None
    approved: bool | None = None


class ApprovalGate:
    """Tracks pending approvals and applies verdicts to the run state.

    Single interruptions are announced with a ``tool_approval_required``
    event; two or more with one ``grouped_approval_required`` event. Each
    interruption is resolved individually; the group operations are sugar
    over repeated single resolution.
    """

    def __init__(self, emit: Callable[[AgentEvent], None]):
        """Initialize the gate.

        Args:
            emit: Receives the approval-required events.
        """
        self._emit = emit
        self._pending: dict[str, PendingApproval] = {}

    @property
    def pending(self) -> Mapping[str, PendingApproval]:
        """Read-only view of pending approvals keyed by interruption id."""
        return MappingProxyType(self._pending)

    def request_approval(
        self, interruptions: list[ToolApprovalItem], state: RunState
    ) -> ApprovalBatch:
        """Register interruptions and announce them.

        Args:
            interruptions: The halted run's interruptions.
            state: The run state the verdicts apply to.

        Returns:
            The batch to wait on.
        """
        if not interruptions:
            raise ValueError("No interruptions to approve")

        if len(interruptions) == 1:
            return self._request_single(interruptions[0], state)
        return self._request_grouped(interruptions, state)

    def _request_single(self, interruption: ToolApprovalItem, state: RunState) -> ApprovalBatch:
        interruption_id = new_interruption_id()
        batch = ApprovalBatch(state, [interruption_id])
        self._pending[interruption_id] = PendingApproval(interruption, batch)

        self._emit(make_event(ToolApprovalRequired(
            interruption_id=interruption_id,
            tool_name=interruption.tool_name or "Unknown Tool",
            tool_input=format_tool_input(interruption.arguments or "{}"),
            call_id=interruption.call_id,
        )))
        return batch

    def _request_grouped(
        self, interruptions: list[ToolApprovalItem], state: RunState
    ) -> ApprovalBatch:
        group_id = new_group_id()
        ids = [new_interruption_id() for _ in interruptions]
        batch = ApprovalBatch(state, ids, group_id=group_id)

        approvals = []
        for interruption_id, interruption in zip(ids, interruptions):
            self._pending[interruption_id] = PendingApproval(
                interruption, batch, group_id=group_id
            )
            approvals.append(ApprovalRequest(
                interruption_id=interruption_id,
                tool_name=interruption.tool_name or "Unknown Tool",
                tool_input=format_tool_input(interruption.arguments or "{}"),
            ))

        self._emit(make_event(GroupedApprovalRequired(
            group_id=group_id,
            approvals=tuple(approvals),
        )))
        return batch

    def approve(self, interruption_id: str) -> bool:
        """Approve one interruption.

        Returns:
            True if the id was pending. Unknown ids are ignored.
        """
        return self._resolve(interruption_id, approved=True)

    def reject(self, interruption_id: str) -> bool:
        """Reject one interruption.

        Returns:
            True if the id was pending. Unknown ids are ignored.
        """
        return self._resolve(interruption_id, approved=False)

    def approve_group(self, group_id: str, interruption_ids: list[str] | None = None) -> int:
        """Approve every still-pending interruption of a group.

        Args:
            group_id: The group to resolve.
            interruption_ids: Restrict to these ids (all of the group if None).

        Returns:
            Number of interruptions resolved.
        """
        return self._resolve_group(group_id, interruption_ids, approved=True)

    def reject_group(self, group_id: str, interruption_ids: list[str] | None = None) -> int:
        """Reject every still-pending interruption of a group.

        Returns:
            Number of interruptions resolved.
        """
        return self._resolve_group(group_id, interruption_ids, approved=False)

    async def wait(self, batch: ApprovalBatch, cancel_token: CancellationToken) -> None:
        """Block until the batch is fully resolved.

        Raises:
            RunCancelled: If the token fires first. The batch's remaining
                records are discarded.
        """
        if not batch.is_complete:
            done = asyncio.ensure_future(batch.wait())
            cancelled = asyncio.ensure_future(cancel_token.wait())
            try:
                await asyncio.wait({done, cancelled}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                done.cancel()
                cancelled.cancel()

        if not batch.is_complete:
            self.discard(batch)
            raise RunCancelled("Run cancelled while awaiting approval")

    def discard(self, batch: ApprovalBatch) -> None:
        """Drop the still-pending records of a batch."""
        for interruption_id in batch.remaining:
            self._pending.pop(interruption_id, None)

    def clear(self) -> None:
        self._pending.clear()

    def _resolve(self, interruption_id: str, approved: bool) -> bool:
        record = self._pending.get(interruption_id)
        if record is None:
            logger.warning(f"No pending approval found for interruption {interruption_id}")
            return False

        record.approved = approved
        if approved:
            record.batch.state.approve(record.interruption)
        else:
            record.batch.state.reject(record.interruption)

        del self._pending[interruption_id]
        record.batch.mark_resolved(interruption_id)
        logger.info(
            f"{'approved' if approved else 'rejected'} {record.interruption.tool_name} "
            f"({interruption_id})"
        )
        return True

    def _resolve_group(
        self, group_id: str, interruption_ids: list[str] | None, approved: bool
    ) -> int:
        candidates = interruption_ids if interruption_ids is not None else [
            iid for iid, record in self._pending.items() if record.group_id == group_id
        ]
        resolved = 0
        for interruption_id in candidates:
            record = self._pending.get(interruption_id)
            if record is None or record.group_id != group_id:
                continue
            if self._resolve(interruption_id, approved):
                resolved += 1
        return resolved
