"""Conversation storage and unread counting for marketplace chat."""
from chat_server.messaging.models import Message, Conversation, PresenceStatus, make_pair_key
from chat_server.messaging.unread import UnreadCounter, get_unread_counter, set_unread_counter
from chat_server.messaging.repository import (
    ConversationStore, get_conversation_store, set_conversation_store
)

__all__ = [
    'Message',
    'Conversation',
    'PresenceStatus',
    'make_pair_key',
    'UnreadCounter',
    'get_unread_counter',
    'set_unread_counter',
    'ConversationStore',
    'get_conversation_store',
    'set_conversation_store',
]
