"""WebSocket connection management, scoped per owner."""

import json
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks each owner's open WebSockets and pushes change events to them."""

    def __init__(self) -> None:
        """Initialize connection manager with no connections."""
        self.active_connections: dict[str, list[WebSocket]] = {}

    def count(self, owner_id: str | None = None) -> int:
        """Number of open connections, for one owner or overall."""
        if owner_id is not None:
            return len(self.active_connections.get(owner_id, []))
        return sum(len(c) for c in self.active_connections.values())

    async def connect(self, owner_id: str, websocket: WebSocket) -> None:
        """Accept and register a WebSocket for ``owner_id``.

        Args:
            owner_id: Owner the client views
            websocket: WebSocket connection to register
        """
        await websocket.accept()
        self.active_connections.setdefault(owner_id, []).append(websocket)
        logger.info(f"[ConnectionManager] Client connected for {owner_id} (total: {self.count()})")

    def disconnect(self, owner_id: str, websocket: WebSocket) -> None:
        """Remove a WebSocket from the owner's list."""
        connections = self.active_connections.get(owner_id, [])
        if websocket in connections:
            connections.remove(websocket)
            if not connections:
                self.active_connections.pop(owner_id, None)
            logger.info(
                f"[ConnectionManager] Client disconnected for {owner_id} (total: {self.count()})"
            )

    async def send_to_owner(self, owner_id: str, message: dict[str, Any]) -> None:
        """Send a JSON message to every connection of ``owner_id``.

        Args:
            owner_id: Recipient owner
            message: Dictionary to send as JSON
        """
        connections = list(self.active_connections.get(owner_id, []))
        if not connections:
            logger.debug(f"[ConnectionManager] No connections for {owner_id}")
            return

        message_json = json.dumps(message)
        logger.debug(
            f"[ConnectionManager] Sending to {len(connections)} client(s) of {owner_id}: "
            f"{message_json}"
        )

        # Send to all connections, remove dead ones
        dead_connections = []
        for connection in connections:
            try:
                await connection.send_text(message_json)
            except Exception as e:
                logger.warning(f"[ConnectionManager] Failed to send to client: {e}")
                dead_connections.append(connection)

        for connection in dead_connections:
            self.disconnect(owner_id, connection)
