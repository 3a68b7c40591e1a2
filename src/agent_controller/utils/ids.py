"""Identifier generation for messages, interruptions and approval groups."""

import time
import uuid


def generate_id(prefix: str) -> str:
    """Generate an id unique within the process lifetime.

    Combines a nanosecond timestamp with a random suffix, so two ids minted
    in the same clock tick still differ.

    Args:
        prefix: Short kind marker, e.g. "msg", "int" or "group".

    Returns:
        An id such as ``msg-1718000000000000000-3f2a9c1e``.
    """
    return f"{prefix}-{time.time_ns()}-{uuid.uuid4().hex[:12]}"


def message_id() -> str:
    return generate_id("msg")


def interruption_id() -> str:
    return generate_id("int")


def group_id() -> str:
    return generate_id("group")


def turn_id() -> str:
    return generate_id("turn")
