# =============================================================================
# apphost/web/websocket/manager.py - WebSocket Connection Manager
# =============================================================================
# Tracks realtime connections by socket id and groups them into rooms.
#
# Usage:
#   sid = await manager.connect(websocket)
#   manager.join_room(sid, "order:42")
#   await manager.emit_to_room("order:42", "order_updated", {"status": "paid"})
#   manager.disconnect(sid)
# =============================================================================

import logging
from typing import Any, Dict, Set
from uuid import uuid4

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Close code sent to clients when the server goes away
GOING_AWAY = 1001
# Close code for connections refused during shutdown
TRY_AGAIN_LATER = 1013


class ConnectionManager:
    """
    Manages WebSocket connections and their room memberships.

    A socket can be in any number of rooms. Events emitted to a room reach
    every socket in it.
    """

    def __init__(self):
        # sid -> WebSocket connection
        self.sockets: Dict[str, WebSocket] = {}
        # room -> set of sids
        self.rooms: Dict[str, Set[str]] = {}
        self.closed = False

    async def connect(self, websocket: WebSocket) -> str | None:
        """
        Accept a new WebSocket connection and track it.

        Returns:
            The socket id, or None if the manager is closed
        """
        if self.closed:
            await websocket.close(code=TRY_AGAIN_LATER)
            return None

        await websocket.accept()
        sid = uuid4().hex
        self.sockets[sid] = websocket

        logger.info(f"WebSocket {sid} connected. Total connections: {len(self.sockets)}")
        return sid

    def disconnect(self, sid: str) -> None:
        """Stop tracking a socket. Safe to call for unknown sids."""
        if self.sockets.pop(sid, None) is None:
            return

        for room in list(self.rooms):
            self.rooms[room].discard(sid)
            # Clean up empty rooms
            if not self.rooms[room]:
                del self.rooms[room]

        logger.info(f"WebSocket {sid} disconnected. Total connections: {len(self.sockets)}")

    def join_room(self, sid: str, room: str) -> bool:
        if sid not in self.sockets:
            return False
        self.rooms.setdefault(room, set()).add(sid)
        return True

    def leave_room(self, sid: str, room: str) -> bool:
        members = self.rooms.get(room)
        if not members or sid not in members:
            return False
        members.discard(sid)
        if not members:
            del self.rooms[room]
        return True

    async def emit_to_room(
        self,
        room: str,
        event: str,
        data: Any,
        schema: type[BaseModel] | None = None,
    ) -> int:
        """
        Send an event to every socket in a room.

        Args:
            room: Room name
            event: Event name, sent as {"event": event, "data": ...}
            data: Event payload
            schema: Optional pydantic model; the payload is validated through
                it, which drops unknown fields and coerces types

        Returns:
            int: Number of sockets the event was sent to
        """
        if schema is not None:
            payload = schema.model_validate(data).model_dump(mode="json")
        else:
            payload = jsonable_encoder(data)

        message = {"event": event, "data": payload}
        dead_connections: Set[str] = set()
        sent_count = 0

        for sid in list(self.rooms.get(room, ())):
            try:
                await self.sockets[sid].send_json(message)
                sent_count += 1
            except Exception as e:
                logger.warning(f"Failed to send to WebSocket {sid}: {e}")
                dead_connections.add(sid)

        # Clean up any dead connections
        for sid in dead_connections:
            self.disconnect(sid)

        logger.debug(f"Emitted {event} to room {room}, sent to {sent_count} sockets")
        return sent_count

    async def disconnect_all(self, code: int = GOING_AWAY) -> int:
        """
        Force-close every connection.

        Returns:
            int: Number of sockets that were closed
        """
        closed = 0
        for sid, websocket in list(self.sockets.items()):
            try:
                await websocket.close(code=code)
                closed += 1
            except Exception as e:
                logger.debug(f"WebSocket {sid} was already closed: {e}")
            self.disconnect(sid)
        return closed

    def close(self) -> None:
        """Refuse new connections from now on."""
        self.closed = True

    def get_connection_count(self, room: str | None = None) -> int:
        if room is not None:
            return len(self.rooms.get(room, ()))
        return len(self.sockets)

    def get_active_rooms(self) -> list[str]:
        return list(self.rooms.keys())
