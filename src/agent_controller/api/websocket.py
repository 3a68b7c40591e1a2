"""WebSocket handler relaying agent events."""

import asyncio

from fastapi import WebSocket, WebSocketDisconnect

from ..agent import AgentManager
from ..exceptions import AgentBusyError
from ..logging import get_logger
from .sessions import SessionManager

logger = get_logger(__name__)


async def handle_websocket(websocket: WebSocket, sessions: SessionManager, session_id: str) -> None:
    """Handle WebSocket connection for one session.

    Protocol:
    - Client sends: {"type": "run", "message": "..."} to start a turn
    - Client sends: {"type": "approve" | "reject", "interruption_id": "..."}
    - Client sends: {"type": "approve_group" | "reject_group", "group_id": "...",
      "interruption_ids": [...] (optional)}
    - Client sends: {"type": "cancel"} to cancel the turn in flight
    - Server sends: every agent event as {"type": <event type>, "data": {...}}
    - Server sends: {"type": "turn_result", "outcome": ..., "content": ..., "usage": {...}}
      when a turn settles
    - Server sends: {"type": "error", "data": {"error": "..."}} for protocol errors

    Disconnecting cancels the turn in flight.
    """
    await websocket.accept()

    session = sessions.get_session(session_id)
    if session is None:
        await websocket.send_json({"type": "error", "data": {"error": "Session not found"}})
        await websocket.close()
        return

    agent = session.agent
    outbox: asyncio.Queue[dict] = asyncio.Queue()

    def relay(event) -> None:
        outbox.put_nowait(event.to_dict())

    agent.add_event_listener(relay)
    sender = asyncio.ensure_future(_send_loop(websocket, outbox))
    turn: asyncio.Future | None = None

    try:
        while True:
            data = await websocket.receive_json()
            msg_type = data.get("type")

            if msg_type == "run":
                if turn is not None and not turn.done():
                    _protocol_error(outbox, "A turn is already in progress")
                    continue
                turn = asyncio.ensure_future(_run_turn(agent, data.get("message", ""), outbox))
            elif msg_type == "approve":
                agent.approve(data.get("interruption_id", ""))
            elif msg_type == "reject":
                agent.reject(data.get("interruption_id", ""))
            elif msg_type == "approve_group":
                agent.approve_group(data.get("group_id", ""), data.get("interruption_ids"))
            elif msg_type == "reject_group":
                agent.reject_group(data.get("group_id", ""), data.get("interruption_ids"))
            elif msg_type == "cancel":
                agent.cancel()
            else:
                _protocol_error(outbox, f"Unknown message type: {msg_type}")

    except WebSocketDisconnect:
        logger.info(f"websocket for session {session_id} disconnected")
    finally:
        agent.remove_event_listener(relay)
        if turn is not None and not turn.done():
            agent.cancel()
            await turn
        sender.cancel()


async def _run_turn(agent: AgentManager, message: str, outbox: asyncio.Queue) -> None:
    try:
        result = await agent.run_turn(message)
    except AgentBusyError as e:
        _protocol_error(outbox, str(e))
        return
    outbox.put_nowait({
        "type": "turn_result",
        "outcome": result.outcome.value,
        "content": result.content,
        "usage": result.usage.to_dict(),
    })


async def _send_loop(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        message = await outbox.get()
        await websocket.send_json(message)


def _protocol_error(outbox: asyncio.Queue, message: str) -> None:
    outbox.put_nowait({"type": "error", "data": {"error": message}})
