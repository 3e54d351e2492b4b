"""Messaging data models for pairwise marketplace chat.

Collections:
- conversations: one document per pair of users, participants embedded
- chat_messages: individual text messages with a read flag
"""
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum

from chat_server.utils.time_utils import utc_now, to_iso


class PresenceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


def make_pair_key(user_a: int, user_b: int) -> str:
    """Deterministic key for an unordered pair of users."""
    low, high = sorted((user_a, user_b))
    return f"{low}:{high}"


class Message:
    """Message document structure."""

    def __init__(
        self,
        message_id: str,
        conversation_id: str,
        sender_id: int,
        text: str,
        created_at: Optional[datetime] = None,
        is_read: bool = False,
        read_at: Optional[datetime] = None,
        sender_info: Optional[Dict[str, Any]] = None  # Denormalized sender info
    ):
        self.message_id = message_id
        self.conversation_id = conversation_id
        self.sender_id = sender_id
        self.text = text
        self.created_at = created_at or utc_now()
        self.is_read = is_read
        self.read_at = read_at
        # {name, avatar} captured at send time
        self.sender_info = sender_info or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.message_id,
            'conversationId': self.conversation_id,
            'senderId': self.sender_id,
            'senderDisplayName': self.sender_info.get('name'),
            'senderAvatar': self.sender_info.get('avatar'),
            'text': self.text,
            'createdAt': to_iso(self.created_at),
            'isRead': self.is_read,
        }

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            '_id': self.message_id,
            'message_id': self.message_id,
            'conversation_id': self.conversation_id,
            'sender_id': self.sender_id,
            'sender_info': self.sender_info,
            'text': self.text,
            'created_at': self.created_at,
            'is_read': self.is_read,
            'read_at': self.read_at,
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Message':
        return cls(
            message_id=doc.get('message_id') or str(doc.get('_id')),
            conversation_id=doc.get('conversation_id'),
            sender_id=doc.get('sender_id'),
            text=doc.get('text'),
            created_at=doc.get('created_at'),
            is_read=bool(doc.get('is_read', False)),
            read_at=doc.get('read_at'),
            sender_info=doc.get('sender_info'),
        )


class Conversation:
    """Conversation document structure.

    The two participant links live in ``participants`` so they are written
    by the same single-document insert as the conversation itself.
    """

    def __init__(
        self,
        conversation_id: str,
        participants: List[int],
        created_by: Optional[int] = None,
        created_at: Optional[datetime] = None,
        last_activity: Optional[datetime] = None,
    ):
        self.conversation_id = conversation_id
        self.participants = sorted(participants)
        self.created_by = created_by
        self.created_at = created_at or utc_now()
        self.last_activity = last_activity or self.created_at

    @property
    def pair_key(self) -> str:
        return make_pair_key(*self.participants)

    def other_participants(self, user_id: int) -> List[int]:
        return [p for p in self.participants if p != user_id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.conversation_id,
            'participants': self.participants,
            'createdBy': self.created_by,
            'createdAt': to_iso(self.created_at),
            'updatedAt': to_iso(self.last_activity),
        }

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            '_id': self.conversation_id,
            'conversation_id': self.conversation_id,
            'pair_key': self.pair_key,
            'participants': self.participants,
            'created_by': self.created_by,
            'created_at': self.created_at,
            'last_activity': self.last_activity,
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Conversation':
        return cls(
            conversation_id=doc.get('conversation_id') or str(doc.get('_id')),
            participants=doc.get('participants', []),
            created_by=doc.get('created_by'),
            created_at=doc.get('created_at'),
            last_activity=doc.get('last_activity'),
        )
