"""Logging for the agent controller.

Log records emitted while a turn runs carry the id of that turn, so the
lines of interleaved sessions (API server, several managers on one loop)
can be told apart. The id lives in a context variable, which asyncio copies
into every task spawned from the turn.
"""

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(turn_id)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LEVEL_ENV_VAR = "AGENT_CONTROLLER_LOG_LEVEL"

# sdk transports log every streamed request at INFO
TRANSPORT_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "google_genai", "mcp")

_current_turn: ContextVar[str] = ContextVar("agent_controller_turn", default="-")


class TurnContextFilter(logging.Filter):
    """Stamp each record with the id of the turn it was logged from."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.turn_id = _current_turn.get()
        return True


@contextmanager
def turn_context(turn_id: str) -> Iterator[None]:
    """Bind ``turn_id`` to every record logged inside the block."""
    reset_token = _current_turn.set(turn_id)
    try:
        yield
    finally:
        _current_turn.reset(reset_token)


def current_turn_id() -> str | None:
    turn_id = _current_turn.get()
    return None if turn_id == "-" else turn_id


def resolve_level(level: str | None = None) -> int:
    """Turn a level name into its numeric value.

    The explicit argument wins over the environment variable; WARNING is the
    fallback, also for names logging does not know.
    """
    name = (level or os.environ.get(LEVEL_ENV_VAR) or "WARNING").upper()
    numeric = logging.getLevelName(name)
    if not isinstance(numeric, int):
        print(f"Warning: Invalid log level '{name}', using WARNING", file=sys.stderr)
        return logging.WARNING
    return numeric


def setup_logging(level: str | None = None) -> logging.Logger:
    """Configure the ``agent_controller`` logger.

    Installs a single stderr handler with the turn-aware format; calling it
    again only adjusts the level.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR). Falls back to
               AGENT_CONTROLLER_LOG_LEVEL, then WARNING.

    Returns:
        The package logger.
    """
    numeric_level = resolve_level(level)

    logger = logging.getLogger("agent_controller")
    logger.setLevel(numeric_level)

    handler = next((h for h in logger.handlers if _is_ours(h)), None)
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.addFilter(TurnContextFilter())
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)
    handler.setLevel(numeric_level)

    # transports stay quiet unless the user asked for DEBUG
    transport_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)

    return logger


def _is_ours(handler: logging.Handler) -> bool:
    return any(isinstance(f, TurnContextFilter) for f in handler.filters)


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific module (typically ``__name__``)."""
    return logging.getLogger(name)
