"""WebSocket module for real-time chat.

This module provides:
- Presence registry (who is connected, through which session)
- Delivery router (persist, then fan out)
- Connection sessions and the Socket.IO hub
"""

from chat_server.websocket.presence import PresenceRegistry, get_presence_registry
from chat_server.websocket.router import DeliveryRouter, get_delivery_router, init_delivery_router
from chat_server.websocket.session import ConnectionSession
from chat_server.websocket.hub import WebSocketHub, init_websocket_hub, get_websocket_hub

__all__ = [
    'PresenceRegistry', 'get_presence_registry',
    'DeliveryRouter', 'get_delivery_router', 'init_delivery_router',
    'ConnectionSession',
    'WebSocketHub', 'init_websocket_hub', 'get_websocket_hub',
]
