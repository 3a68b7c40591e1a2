"""Core agent components.

This module provides the building blocks the agent manager is made of:
- ApprovalGate: Tracks pending approvals and releases halted runs
- SessionState: Conversation history and token usage
- PromptBuilder: Constructs instructions and messages
- ToolExecutor: Handles tool invocation and the approval policy
"""

from .approval_gate import ApprovalBatch, ApprovalGate, PendingApproval
from .prompt_builder import PromptBuilder
from .session import SessionState
from .tool_executor import ToolExecutor

__all__ = [
    "ApprovalBatch",
    "ApprovalGate",
    "PendingApproval",
    "PromptBuilder",
    "SessionState",
    "ToolExecutor",
]
