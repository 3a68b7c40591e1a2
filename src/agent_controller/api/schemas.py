"""Pydantic models for API requests and responses."""

from typing import Any

from pydantic import BaseModel


class RunRequest(BaseModel):
    """Request to run one turn with a user message."""

    message: str


class ApprovalDecision(BaseModel):
    """Verdict for a single pending approval."""

    approved: bool


class GroupDecision(BaseModel):
    """Verdict for a grouped approval.

    Restricted to ``interruption_ids`` when given, else the whole group.
    """

    approved: bool
    interruption_ids: list[str] | None = None


class TokenUsageInfo(BaseModel):
    input_tokens: int
    output_tokens: int


class TurnResponse(BaseModel):
    """Result of one turn."""

    outcome: str  # "completed", "cancelled", "failed"
    content: str | None = None
    error: str | None = None
    usage: TokenUsageInfo


class PendingApprovalInfo(BaseModel):
    interruption_id: str
    tool_name: str
    arguments: dict[str, Any]
    group_id: str | None = None
