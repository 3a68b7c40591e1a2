"""Display formatting for tool inputs and outputs."""

import json
from typing import Any


def format_tool_input(raw: str | dict[str, Any] | None) -> str:
    """Pretty-print tool arguments for display.

    JSON strings are re-serialized with an indent of 2. Strings that do not
    parse are returned unchanged.
    """
    if raw is None:
        return "{}"
    if isinstance(raw, dict):
        return json.dumps(raw, indent=2)
    try:
        return json.dumps(json.loads(raw), indent=2)
    except (json.JSONDecodeError, TypeError):
        return raw


def stringify_output(output: Any) -> str:
    """Render a tool output as text, JSON-encoding non-string values."""
    if isinstance(output, str):
        return output
    try:
        return json.dumps(output, indent=2)
    except (TypeError, ValueError):
        return str(output)
