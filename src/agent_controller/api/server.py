"""FastAPI server for the agent controller."""

from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from ..config import Settings
from ..exceptions import AgentBusyError
from ..tools.registry import ToolRegistry
from ..types import TurnResult
from .schemas import (
    ApprovalDecision,
    GroupDecision,
    PendingApprovalInfo,
    RunRequest,
    TokenUsageInfo,
    TurnResponse,
)
from .sessions import Session, SessionManager
from .websocket import handle_websocket


def create_app(
    settings: Settings | None = None,
    tool_registry: ToolRegistry | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    MCP servers are connected on startup and closed on shutdown.
    """
    sessions = SessionManager(settings, tool_registry=tool_registry)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await sessions.factory.initialize()
        try:
            yield
        finally:
            await sessions.factory.close()

    app = FastAPI(
        title="Agent Controller API",
        description="API for driving a tool-using agent with human approvals",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.sessions = sessions

    # configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(_routes())
    return app


async def _get_session(session_id: str, request: Request) -> Session:
    session = request.app.state.sessions.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found or expired")
    return session


def _routes():
    router = APIRouter(prefix="/api")

    @router.post("/sessions", response_model=dict)
    async def create_session(request: Request, provider: str | None = None) -> dict:
        """Create a new agent session."""
        session = request.app.state.sessions.create_session(provider=provider)
        return {"session_id": session.id}

    @router.delete("/sessions/{session_id}")
    async def delete_session(session_id: str, request: Request) -> dict:
        """Delete a session."""
        if request.app.state.sessions.delete_session(session_id):
            return {"status": "deleted"}
        raise HTTPException(status_code=404, detail="Session not found")

    @router.post("/sessions/{session_id}/run", response_model=TurnResponse)
    async def run_turn(body: RunRequest, session: Session = Depends(_get_session)) -> TurnResponse:
        """Run one turn; pending approvals are resolved through the approval endpoints."""
        try:
            result = await session.agent.run_turn(body.message)
        except AgentBusyError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return _convert_result(result)

    @router.post("/sessions/{session_id}/cancel")
    async def cancel_turn(session: Session = Depends(_get_session)) -> dict:
        session.agent.cancel()
        return {"status": "cancelling"}

    @router.get("/sessions/{session_id}/approvals", response_model=list[PendingApprovalInfo])
    async def list_approvals(session: Session = Depends(_get_session)) -> list[PendingApprovalInfo]:
        return [
            PendingApprovalInfo(
                interruption_id=interruption_id,
                tool_name=record.interruption.tool_name,
                arguments=record.interruption.tool_call.arguments,
                group_id=record.group_id,
            )
            for interruption_id, record in session.agent.pending_approvals.items()
        ]

    @router.post("/sessions/{session_id}/approvals/{interruption_id}")
    async def resolve_approval(
        interruption_id: str, body: ApprovalDecision, session: Session = Depends(_get_session)
    ) -> dict:
        """Approve or reject one pending tool call. Unknown ids are ignored."""
        if body.approved:
            resolved = session.agent.approve(interruption_id)
        else:
            resolved = session.agent.reject(interruption_id)
        return {"resolved": resolved}

    @router.post("/sessions/{session_id}/groups/{group_id}")
    async def resolve_group(
        group_id: str, body: GroupDecision, session: Session = Depends(_get_session)
    ) -> dict:
        """Approve or reject a grouped approval."""
        if body.approved:
            resolved = session.agent.approve_group(group_id, body.interruption_ids)
        else:
            resolved = session.agent.reject_group(group_id, body.interruption_ids)
        return {"resolved": resolved}

    @router.get("/sessions/{session_id}/history")
    async def get_history(session: Session = Depends(_get_session)) -> list[dict]:
        """Get conversation history for a session."""
        return session.agent.get_history()

    @router.get("/sessions/{session_id}/usage", response_model=TokenUsageInfo)
    async def get_usage(session: Session = Depends(_get_session)) -> TokenUsageInfo:
        return TokenUsageInfo(**session.agent.token_usage.to_dict())

    @router.post("/sessions/{session_id}/clear")
    async def clear_history(session: Session = Depends(_get_session)) -> dict:
        """Clear conversation history for a session."""
        session.agent.clear_history()
        return {"status": "cleared"}

    @router.websocket("/sessions/{session_id}/stream")
    async def websocket_endpoint(websocket: WebSocket, session_id: str) -> None:
        """WebSocket endpoint relaying agent events and accepting approvals."""
        await handle_websocket(websocket, websocket.app.state.sessions, session_id)

    return router


def _convert_result(result: TurnResult) -> TurnResponse:
    """Convert a TurnResult to an API response."""
    return TurnResponse(
        outcome=result.outcome.value,
        content=result.content,
        error=str(result.error) if result.error else None,
        usage=TokenUsageInfo(**result.usage.to_dict()),
    )


app = create_app()
