"""
WebSocket handler for wall displays.

Responsibilities:
- Accept WebSocket connections
- Send the current task snapshot on connect
- Push a fresh snapshot after every poll state change

Protocol (server -> client):
- {"type": "snapshot", "tasks": [...], "status": "...", "error": {...} | null,
   "last_success_at": "..." | null}

The display is passive; anything the client sends is ignored.
"""

import json
import logging

from fastapi import WebSocket, WebSocketDisconnect

from services.poll_controller import PollController, PollSnapshot

logger = logging.getLogger(__name__)


def _snapshot_message(snapshot: PollSnapshot) -> str:
    return json.dumps({"type": "snapshot", **snapshot.model_dump(mode="json")})


async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint streaming task snapshots."""
    await websocket.accept()

    controller: PollController | None = getattr(websocket.app.state, "poll_controller", None)
    if controller is None:
        await websocket.close(code=1011, reason="Task polling is not running")
        return

    async def _send_snapshot(snapshot: PollSnapshot) -> None:
        await websocket.send_text(_snapshot_message(snapshot))

    try:
        await _send_snapshot(controller.snapshot)
        controller.subscribe(_send_snapshot)
        logger.debug("WebSocket subscribed to task snapshots")

        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        logger.debug("WebSocket disconnected")
    finally:
        controller.unsubscribe(_send_snapshot)
