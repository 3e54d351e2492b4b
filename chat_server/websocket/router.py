"""Delivery router.

Turns inbound chat actions into store calls and pushes the resulting events
to whichever participants currently hold a live session. The store write
always completes before any event is pushed, so a recipient never sees a
message or read receipt that is not durable.

Sessions passed in here only need ``user_id``, ``push(event, payload)`` and
``close()``.
"""
import logging
from typing import Any, Optional, Set

from chat_server.exception import ChatError, AuthorizationError
from chat_server.messaging.models import Message, PresenceStatus
from chat_server.messaging.repository import ConversationStore, get_conversation_store
from chat_server.utils.audit import log_activity, STATUS_FAILURE
from chat_server.websocket.presence import PresenceRegistry, get_presence_registry

logger = logging.getLogger(__name__)


class DeliveryRouter:
    """Stateless dispatcher over the presence registry and conversation store."""

    # Event names
    EVENT_PRESENCE = 'chat:presence'
    EVENT_MESSAGE = 'chat:message'
    EVENT_MESSAGES_READ = 'chat:messages_read'
    EVENT_TYPING = 'chat:typing'
    EVENT_ERROR = 'chat:error'

    def __init__(self, store: ConversationStore = None, registry: PresenceRegistry = None):
        self.store = store or get_conversation_store()
        self.registry = registry or get_presence_registry()
        self.registry.set_listener(self._broadcast_presence)

    # =========================================================================
    # Connection Lifecycle
    # =========================================================================

    def connect(self, user_id: int, session: Any) -> Optional[Any]:
        """Make session the user's live session; close the one it replaces."""
        previous = self.registry.register(user_id, session)
        if previous is not None and previous is not session:
            logger.info(f"ROUTER: closing replaced session for user {user_id}")
            previous.close()
        log_activity(user_id, 'connect', event_type='presence', resource_type='session')
        return previous

    def disconnect(self, user_id: int, session: Any) -> bool:
        """Drop session from the registry. False when it had already been replaced."""
        removed = self.registry.unregister(user_id, session)
        if removed:
            log_activity(user_id, 'disconnect', event_type='presence', resource_type='session')
        return removed

    def _broadcast_presence(self, user_id: int, status: PresenceStatus, members):
        payload = {'userId': user_id, 'status': status.value}
        logger.debug(f"ROUTER: presence {status.value} for user {user_id} to {len(members)} member(s)")
        for _, session in members:
            session.push(self.EVENT_PRESENCE, payload)

    # =========================================================================
    # Chat Actions
    # =========================================================================

    def send(self, conversation_id: Any, sender_id: int, text: Any, origin: Any = None) -> Message:
        """Persist a message, echo it to the sender and push it to present recipients."""
        try:
            conversation = self.store.require_participant(conversation_id, sender_id)
            message = self.store.append_message(conversation.conversation_id, sender_id, text)
        except ChatError as e:
            self._reject(origin, sender_id, 'send', conversation_id, e)
            raise

        payload = message.to_dict()
        echo = origin or self.registry.lookup(message.sender_id)
        if echo is not None:
            echo.push(self.EVENT_MESSAGE, payload)

        for recipient_id in conversation.other_participants(message.sender_id):
            session = self.registry.lookup(recipient_id)
            if session is None:
                logger.debug(f"ROUTER: user {recipient_id} offline, {message.message_id} waits in store")
                continue
            session.push(self.EVENT_MESSAGE, payload)

        log_activity(
            message.sender_id,
            'send',
            resource_type='message',
            resource_id=message.message_id,
            details={'conversation_id': message.conversation_id},
        )
        return message

    def mark_read(self, conversation_id: Any, reader_id: int, origin: Any = None) -> Set[int]:
        """Mark the conversation read for reader_id and notify the affected senders.

        A call that flips nothing notifies nobody.
        """
        try:
            conversation = self.store.require_participant(conversation_id, reader_id)
            affected = self.store.mark_read(conversation.conversation_id, reader_id)
        except ChatError as e:
            self._reject(origin, reader_id, 'read', conversation_id, e)
            raise

        payload = {'conversationId': conversation.conversation_id, 'readerId': reader_id}
        for sender_id in affected:
            session = self.registry.lookup(sender_id)
            if session is not None:
                session.push(self.EVENT_MESSAGES_READ, payload)

        if affected:
            log_activity(
                reader_id,
                'read',
                resource_type='conversation',
                resource_id=conversation.conversation_id,
                details={'senders': sorted(affected)},
            )
        return affected

    def typing(self, conversation_id: Any, user_id: int, is_typing: bool, origin: Any = None) -> int:
        """Relay a typing indicator to the other present participants. Nothing is stored."""
        try:
            conversation = self.store.require_participant(conversation_id, user_id)
            recipients = self.store.list_participants_except(conversation.conversation_id, user_id)
        except ChatError as e:
            self._reject(origin, user_id, 'typing', conversation_id, e)
            raise

        payload = {
            'conversationId': conversation.conversation_id,
            'userId': user_id,
            'isTyping': bool(is_typing),
        }
        notified = 0
        for other_id in recipients:
            session = self.registry.lookup(other_id)
            if session is not None:
                session.push(self.EVENT_TYPING, payload)
                notified += 1
        return notified

    def _reject(self, origin: Any, user_id: int, action: str, conversation_id: Any, error: ChatError):
        """Report a failed action to its originating session only."""
        logger.warning(f"ROUTER: {action} by user {user_id} rejected ({error.code}): {error.message}")
        if isinstance(error, AuthorizationError):
            log_activity(
                user_id,
                action,
                status=STATUS_FAILURE,
                event_type='security',
                resource_type='conversation',
                resource_id=str(conversation_id) if conversation_id is not None else None,
                error_message=error.message,
            )
        if origin is not None:
            origin.push(self.EVENT_ERROR, error.to_dict())


# Singleton instance
_delivery_router: Optional[DeliveryRouter] = None


def get_delivery_router() -> DeliveryRouter:
    global _delivery_router
    if _delivery_router is None:
        _delivery_router = DeliveryRouter()
    return _delivery_router


def init_delivery_router(store: ConversationStore = None, registry: PresenceRegistry = None) -> DeliveryRouter:
    global _delivery_router
    _delivery_router = DeliveryRouter(store, registry)
    return _delivery_router


def reset_delivery_router():
    global _delivery_router
    _delivery_router = None
