"""Session state for the agent.

This module holds the conversation history threaded through every run
and the token usage accumulated across turns.
"""

from ..types import MessageRole, TokenUsage, UnifiedMessage


class SessionState:
    """Manages conversation history and token usage.

    History is append-only within a session:
    - the user message is appended when a turn starts
    - the run's final history replaces it only when the turn completes
    - ``clear()`` resets everything
    """

    def __init__(self, token_usage: TokenUsage | None = None):
        """Initialize the session with empty history.

        Args:
            token_usage: Initial usage counters, e.g. restored from a previous session.
        """
        self.history: list[UnifiedMessage] = []
        self.token_usage = token_usage or TokenUsage()

    def add_message(self, message: UnifiedMessage) -> None:
        """Add a message to conversation history.

        Args:
            message: The message to add.
        """
        self.history.append(message)

    def add_user_message(self, content: str) -> UnifiedMessage:
        message = UnifiedMessage(role=MessageRole.USER, content=content)
        self.history.append(message)
        return message

    def commit(self, final_history: list[UnifiedMessage]) -> None:
        """Replace history with a completed run's final history.

        Args:
            final_history: History returned by the run.

        Raises:
            ValueError: If the final history does not extend the current one.
        """
        current = len(self.history)
        if len(final_history) < current or any(
            a is not b for a, b in zip(self.history, final_history[:current])
        ):
            raise ValueError("Run history does not extend the session history")
        self.history = list(final_history)

    def clear(self) -> None:
        """Clear conversation history and reset token usage."""
        self.history = []
        self.token_usage.reset()

    def get_history(self) -> list[dict]:
        """Export history as list of dicts.

        Returns:
            List of message dictionaries.
        """
        return [msg.to_dict() for msg in self.history]

    def __len__(self) -> int:
        return len(self.history)
