"""Session management for the API server."""

import time
import uuid
from dataclasses import dataclass, field

from ..agent import AgentManager, AgentManagerFactory
from ..config import Settings, get_settings
from ..tools.registry import ToolRegistry


@dataclass
class Session:
    """A user session with an agent manager."""

    id: str
    agent: AgentManager
    created_at: float = field(default_factory=time.time)
    last_accessed: float = field(default_factory=time.time)

    def touch(self) -> None:
        """Update last accessed time."""
        self.last_accessed = time.time()


class SessionManager:
    """Manages agent sessions.

    All sessions share one AgentManagerFactory, and with it the MCP server
    connections.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        tool_registry: ToolRegistry | None = None,
        session_timeout: int | None = None,
    ):
        """Initialize session manager.

        Args:
            settings: Controller settings (global settings if None)
            tool_registry: Tools offered to every session
            session_timeout: Session timeout in seconds (uses settings if not specified)
        """
        settings = settings or get_settings()
        self.factory = AgentManagerFactory(settings, tool_registry=tool_registry)
        self._sessions: dict[str, Session] = {}
        self._timeout = session_timeout or settings.session_timeout

    def create_session(self, provider: str | None = None) -> Session:
        """Create a new session with a fresh agent manager.

        Args:
            provider: Provider entry id (settings default if not specified)

        Returns:
            New session
        """
        agent = self.factory.create_agent(active_provider=provider)
        session = Session(id=str(uuid.uuid4()), agent=agent)
        self._sessions[session.id] = session
        return session

    def get_session(self, session_id: str) -> Session | None:
        """Get a session by ID.

        Returns:
            Session if found and not expired, None otherwise
        """
        session = self._sessions.get(session_id)
        if session is None:
            return None

        if time.time() - session.last_accessed > self._timeout:
            self.delete_session(session_id)
            return None

        session.touch()
        return session

    def delete_session(self, session_id: str) -> bool:
        """Delete a session, cancelling its turn if one is in flight.

        Returns:
            True if session was deleted, False if not found
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        self.factory.remove_agent(session.agent)
        return True

    def cleanup_expired(self) -> int:
        """Remove expired sessions.

        Returns:
            Number of sessions removed
        """
        now = time.time()
        expired = [
            sid for sid, s in self._sessions.items()
            if now - s.last_accessed > self._timeout
        ]
        for sid in expired:
            self.delete_session(sid)
        return len(expired)

    @property
    def active_count(self) -> int:
        """Get number of active sessions."""
        return len(self._sessions)
