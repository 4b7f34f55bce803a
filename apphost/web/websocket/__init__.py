# =============================================================================
# apphost/web/websocket/ - Realtime Module
# =============================================================================
# Provides the realtime bridge of the web server.
#
# Usage:
#   # Inside a route reached over the bridge
#   from apphost.web.websocket import join_room
#
#   @api.post("/orders/{order_id}/watch")
#   async def watch(order_id: str, request: Request):
#       join_room(request, f"order:{order_id}")
#
#   # Anywhere with access to the application
#   await app.server.io.manager.emit_to_room(f"order:{order_id}", "order_updated", order.to_dict())
# =============================================================================

from apphost.web.websocket.manager import ConnectionManager
from apphost.web.websocket.bridge import (
    RealtimeBridge,
    join_room,
    leave_room,
    register_realtime_bridge,
)

__all__ = [
    "ConnectionManager",
    "RealtimeBridge",
    "join_room",
    "leave_room",
    "register_realtime_bridge",
]
