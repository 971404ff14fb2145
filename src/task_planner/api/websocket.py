"""WebSocket API endpoints for real-time updates."""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from task_planner.factory import get_connection_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, owner: str = "") -> None:
    """WebSocket endpoint pushing change events and notifications for one owner.

    Args:
        websocket: WebSocket connection
        owner: Owner whose events the client receives
    """
    if not owner:
        logger.warning("[WebSocket] Rejected connection without owner")
        await websocket.close(code=1008, reason="owner is required")
        return

    manager = get_connection_manager()
    await manager.connect(owner, websocket)
    try:
        while True:
            # Keep connection alive, answer pings
            data = await websocket.receive_text()
            logger.debug(f"[WebSocket] Received from {owner}: {data}")
            if data == "ping":
                await websocket.send_text("pong")

    except WebSocketDisconnect:
        logger.info(f"[WebSocket] Client of {owner} disconnected normally")
        manager.disconnect(owner, websocket)
    except Exception as e:
        logger.error(f"[WebSocket] Error: {e}", exc_info=True)
        manager.disconnect(owner, websocket)
