"""Socket.IO entry point for chat.

Authenticates each connection, keeps the sid -> session table and routes
the chat events of a connection to its session.
"""
import logging
import threading
from typing import Dict, Optional

from flask import Flask, request
from flask_socketio import SocketIO, emit

from chat_server.exception import UnauthorizedError
from chat_server.security.authentication import authenticate_token
from chat_server.utils.audit import log_activity, STATUS_FAILURE
from chat_server.websocket.router import DeliveryRouter, get_delivery_router
from chat_server.websocket.session import ConnectionSession, EVENT_ERROR

logger = logging.getLogger(__name__)


def _extract_token(auth) -> Optional[str]:
    """Token from the auth payload, the Authorization header or ?token=."""
    token = None
    if auth and isinstance(auth, dict):
        token = auth.get('token')

    if not token:
        header = request.headers.get('Authorization', '')
        if header.startswith('Bearer '):
            token = header.split(' ', 1)[1]

    if not token:
        token = request.args.get('token')

    return token or None


class WebSocketHub:
    """Binds Socket.IO connections to chat sessions."""

    def __init__(self, socketio: SocketIO = None, router: DeliveryRouter = None):
        self.socketio = socketio
        self.router = router
        self.sessions: Dict[str, ConnectionSession] = {}
        self._lock = threading.Lock()
        self._initialized = False

    def init_app(self, app: Flask, socketio: SocketIO, router: DeliveryRouter = None):
        """Initialize the WebSocket hub."""
        logger.debug(f"WS_HUB: init app={app.name}, mode={getattr(socketio, 'async_mode', '?')}")

        self.socketio = socketio
        self.app = app
        self.router = router or self.router or get_delivery_router()

        self._register_handlers()

        self._initialized = True
        logger.debug("WS_HUB: initialized")

    def _register_handlers(self):
        """Register WebSocket event handlers."""

        @self.socketio.on_error_default
        def default_error_handler(e):
            logger.error(f"WS error: {e}")

        # =====================================================================
        # Connection Events
        # =====================================================================

        @self.socketio.on('connect')
        def handle_connect(auth=None):
            """Authenticate and register a new connection; refuse it on a bad token."""
            socket_id = request.sid
            logger.debug(f"WS connect: sid={socket_id}, ip={request.remote_addr}")

            try:
                user_id = authenticate_token(_extract_token(auth))
            except UnauthorizedError as e:
                logger.warning(f"WS auth failed: sid={socket_id}: {e}")
                log_activity(
                    None,
                    'connect',
                    status=STATUS_FAILURE,
                    event_type='security',
                    resource_type='session',
                    error_message=str(e),
                )
                return False

            session = ConnectionSession(self.socketio, self.router, user_id, socket_id)
            with self._lock:
                self.sessions[socket_id] = session

            logger.info(f"WS connected: user={user_id}, sid={socket_id}")
            self.router.connect(user_id, session)
            return True

        @self.socketio.on('disconnect')
        def handle_disconnect(reason=None):
            """Release the registry entry held by this connection."""
            socket_id = request.sid
            with self._lock:
                session = self.sessions.pop(socket_id, None)

            if session is None:
                return

            logger.info(f"WS disconnected: user={session.user_id}, sid={socket_id}, reason={reason}")
            session.closed = True
            self.router.disconnect(session.user_id, session)

        # =====================================================================
        # Chat Events
        # =====================================================================

        @self.socketio.on('chat:send')
        def handle_send(data=None):
            session = self._get_session()
            if session is None:
                return self._unauthenticated()
            return session.on_send(data)

        @self.socketio.on('chat:read')
        def handle_read(data=None):
            session = self._get_session()
            if session is None:
                return self._unauthenticated()
            return session.on_read(data)

        @self.socketio.on('chat:typing')
        def handle_typing(data=None):
            session = self._get_session()
            if session is None:
                return self._unauthenticated()
            return session.on_typing(data)

    def _get_session(self, socket_id: str = None) -> Optional[ConnectionSession]:
        sid = socket_id or request.sid
        with self._lock:
            return self.sessions.get(sid)

    @staticmethod
    def _unauthenticated():
        emit(EVENT_ERROR, {'code': 'UNAUTHORIZED', 'message': 'Not authenticated'})
        return {'success': False, 'error': 'Not authenticated', 'code': 'UNAUTHORIZED'}

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self.sessions)


# Singleton instance
_websocket_hub: Optional[WebSocketHub] = None


def get_websocket_hub() -> Optional[WebSocketHub]:
    return _websocket_hub


def init_websocket_hub(app: Flask, socketio: SocketIO, router: DeliveryRouter = None) -> WebSocketHub:
    global _websocket_hub
    _websocket_hub = WebSocketHub()
    _websocket_hub.init_app(app, socketio, router)
    return _websocket_hub


def reset_websocket_hub():
    global _websocket_hub
    _websocket_hub = None
