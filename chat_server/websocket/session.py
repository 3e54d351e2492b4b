"""Per-connection session.

A session is created once the socket's token has been validated. It knows
which user it speaks for and how to reach that user's socket, decodes the
inbound chat events and hands them to the delivery router. It never owns
conversation state.
"""
import logging
from typing import Any, Dict

from chat_server.exception import ChatError, ValidationError
from chat_server.utils.time_utils import utc_now, to_iso

logger = logging.getLogger(__name__)

EVENT_ERROR = 'chat:error'


def _field(data: Dict[str, Any], *names, default=None):
    """First present key among names (camelCase first, snake_case aliases after)."""
    for name in names:
        if name in data:
            return data[name]
    return default


def _decode(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError('Event payload must be an object')
    return data


class ConnectionSession:
    """One authenticated Socket.IO connection."""

    def __init__(self, socketio, router, user_id: int, sid: str, namespace: str = '/'):
        self.socketio = socketio
        self.router = router
        self.user_id = user_id
        self.sid = sid
        self.namespace = namespace
        self.connected_at = utc_now()
        self.closed = False

    def __repr__(self):
        return f"<ConnectionSession user={self.user_id} sid={self.sid}>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'socketId': self.sid,
            'connectedAt': to_iso(self.connected_at),
        }

    # =========================================================================
    # Outbound
    # =========================================================================

    def push(self, event: str, payload: Dict[str, Any]) -> bool:
        """Emit to this connection. A transport failure ends the session, it is never raised."""
        if self.closed:
            return False
        try:
            self.socketio.emit(event, payload, to=self.sid, namespace=self.namespace)
            logger.debug(f"SESSION: '{event}' -> user {self.user_id} sid={self.sid}")
            return True
        except Exception:
            logger.exception(f"SESSION: push of '{event}' to user {self.user_id} failed, dropping session")
            self.closed = True
            self.router.disconnect(self.user_id, self)
            return False

    def close(self):
        """Disconnect the socket from the server side (session replaced)."""
        if self.closed:
            return
        self.closed = True
        try:
            self.socketio.server.disconnect(self.sid, namespace=self.namespace)
        except Exception:
            logger.exception(f"SESSION: could not close sid={self.sid} for user {self.user_id}")

    # =========================================================================
    # Inbound
    # =========================================================================

    def on_send(self, data: Any) -> Dict[str, Any]:
        """chat:send {conversationId, text}"""
        try:
            payload = _decode(data)
        except ValidationError as e:
            return self._reject(e)
        return self._dispatch(
            'send',
            lambda: {'message': self.router.send(
                _field(payload, 'conversationId', 'conversation_id'),
                self.user_id,
                _field(payload, 'text', 'content'),
                origin=self,
            ).to_dict()}
        )

    def on_read(self, data: Any) -> Dict[str, Any]:
        """chat:read {conversationId}"""
        try:
            payload = _decode(data)
        except ValidationError as e:
            return self._reject(e)
        return self._dispatch(
            'read',
            lambda: {'senders': sorted(self.router.mark_read(
                _field(payload, 'conversationId', 'conversation_id'),
                self.user_id,
                origin=self,
            ))}
        )

    def on_typing(self, data: Any) -> Dict[str, Any]:
        """chat:typing {conversationId, isTyping}"""
        try:
            payload = _decode(data)
            is_typing = _field(payload, 'isTyping', 'is_typing', default=True)
            if not isinstance(is_typing, bool):
                raise ValidationError('isTyping must be a boolean')
        except ValidationError as e:
            return self._reject(e)
        return self._dispatch(
            'typing',
            lambda: {'notified': self.router.typing(
                _field(payload, 'conversationId', 'conversation_id'),
                self.user_id,
                is_typing,
                origin=self,
            )}
        )

    def _dispatch(self, action: str, call) -> Dict[str, Any]:
        try:
            result = call()
        except ChatError as e:
            # the router has already told this connection
            return {'success': False, 'error': e.message, 'code': e.code}
        except Exception:
            logger.exception(f"SESSION: unexpected failure handling {action} for user {self.user_id}")
            self.push(EVENT_ERROR, {'code': 'SERVER_ERROR', 'message': 'Server error'})
            return {'success': False, 'error': 'Server error', 'code': 'SERVER_ERROR'}
        result['success'] = True
        return result

    def _reject(self, error: ChatError) -> Dict[str, Any]:
        logger.warning(f"SESSION: malformed event from user {self.user_id}: {error.message}")
        self.push(EVENT_ERROR, error.to_dict())
        return {'success': False, 'error': error.message, 'code': error.code}

