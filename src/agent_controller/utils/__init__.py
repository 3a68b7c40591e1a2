"""Shared helpers."""

from .formatting import format_tool_input, stringify_output
from .ids import generate_id, group_id, interruption_id, message_id, turn_id

__all__ = [
    "format_tool_input",
    "stringify_output",
    "generate_id",
    "group_id",
    "interruption_id",
    "message_id",
    "turn_id",
]
