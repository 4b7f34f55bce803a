# =============================================================================
# apphost/web/websocket/bridge.py - Realtime Bridge
# =============================================================================
# Lets realtime clients call the REST API over a WebSocket. A request event
# is replayed against the same FastAPI application as an in-process HTTP
# call, so routes behave identically over both transports.
#
# Connect: ws://host/ws
#
# Client -> server:
#   {"event": "request", "id": 7,
#    "data": {"method": "GET", "url": "/catalog/products", "query": {...}, "body": {...}}}
#   "ping"
#
# Server -> client:
#   {"event": "connected", "sid": "..."}
#   {"event": "response", "id": 7, "data": {"status": 200, "body": [...]}}
#   {"event": "<name>", "data": {...}}          (emit_to_room)
#   "pong"
#
# Routes reached through the bridge receive a `wsid` header with the socket
# id, which join_room()/leave_room() use to manage room membership.
# =============================================================================

import json
import logging
from typing import Any

import httpx
from fastapi import APIRouter, FastAPI, Request, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from apphost.lib.log import scoped_logger
from apphost.web.websocket.manager import ConnectionManager

logger = logging.getLogger(__name__)

router = APIRouter()

SOCKET_ID_HEADER = "wsid"


class RealtimeBridge:
    """
    Connection manager plus the in-process HTTP client used to replay
    socket requests.
    """

    def __init__(self, web: FastAPI, app_logger: logging.Logger | None = None):
        self.manager = ConnectionManager()
        self.logger = scoped_logger(app_logger or logger, "web sockets")
        self.client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=web, raise_app_exceptions=False),
            base_url="http://apphost.internal",
        )

    async def handle_message(self, sid: str, message: Any) -> dict[str, Any]:
        """
        Replay a request event as an HTTP call.

        Raises:
            ValueError: If the message is not a request event
        """
        if not isinstance(message, dict) or message.get("event") != "request":
            raise ValueError("expected a request event")

        data = message.get("data")
        if not isinstance(data, dict) or not data.get("method") or not data.get("url"):
            raise ValueError("request data must contain method and url")

        response = await self.client.request(
            data["method"].upper(),
            data["url"],
            params=data.get("query"),
            json=data.get("body"),
            headers={SOCKET_ID_HEADER: sid},
        )

        body: Any = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = response.text

        return {
            "event": "response",
            "id": message.get("id"),
            "data": {"status": response.status_code, "body": body},
        }

    async def disconnect_all(self) -> int:
        return await self.manager.disconnect_all()

    async def close(self) -> None:
        """Refuse new sockets and release the in-process client."""
        self.manager.close()
        await self.client.aclose()


def register_realtime_bridge(web: FastAPI, app_logger: logging.Logger | None = None) -> RealtimeBridge:
    """Attach the bridge to a FastAPI app as web.state.io and add the /ws route."""
    bridge = RealtimeBridge(web, app_logger)
    web.state.io = bridge
    web.include_router(router, tags=["Realtime"])
    return bridge


# =============================================================================
# Room Helpers (for route handlers)
# =============================================================================

def join_room(request: Request, room: str) -> bool:
    """
    Add the calling socket to a room.

    Returns False for plain HTTP requests, which have no socket.
    """
    sid = request.headers.get(SOCKET_ID_HEADER)
    if not sid:
        return False
    return request.app.state.io.manager.join_room(sid, room)


def leave_room(request: Request, room: str) -> bool:
    sid = request.headers.get(SOCKET_ID_HEADER)
    if not sid:
        return False
    return request.app.state.io.manager.leave_room(sid, room)


# =============================================================================
# Endpoint
# =============================================================================

@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    """
    Realtime endpoint: replays request events against the REST API and
    delivers room events.
    """
    bridge: RealtimeBridge = websocket.app.state.io

    sid = await bridge.manager.connect(websocket)
    if sid is None:
        return

    try:
        await websocket.send_json({"event": "connected", "sid": sid})

        # Stops once disconnect_all() closed the socket from the server side
        while websocket.application_state == WebSocketState.CONNECTED:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))

            text = message.get("text")
            if text is None:
                bridge.logger.error(f"Malformed message from socket {sid}: binary frames are not supported")
                continue

            # Handle ping/pong for keepalive
            if text == "ping":
                await websocket.send_text("pong")
                continue

            try:
                reply = await bridge.handle_message(sid, json.loads(text))
            except Exception as e:
                # A bad message must not take the connection down
                bridge.logger.error(f"Malformed message from socket {sid}: {e}")
                continue

            await websocket.send_json(reply)

    except WebSocketDisconnect:
        logger.debug(f"WebSocket client {sid} disconnected")
    finally:
        bridge.manager.disconnect(sid)
