"""Unread message counts derived from stored read flags."""
import logging
from typing import Dict, List, Optional

from pymongo.errors import PyMongoError

from chat_server.exception import ValidationError, TransientStoreError
from chat_server.repository.mongo_helper import get_collection, CONVERSATIONS, MESSAGES

logger = logging.getLogger(__name__)


class UnreadCounter:
    """Counts messages a user has received but not read.

    Nothing is cached: every count is computed from chat_messages, so it
    always agrees with the last committed mark-read.
    """

    def __init__(self, db=None):
        self.db = db

    @property
    def conversations(self):
        return get_collection(CONVERSATIONS, self.db)

    @property
    def messages(self):
        return get_collection(MESSAGES, self.db)

    @staticmethod
    def _check_user(user_id) -> int:
        if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id <= 0:
            raise ValidationError('user_id must be a positive integer')
        return user_id

    def _conversation_ids(self, user_id: int) -> List[str]:
        return [
            doc['conversation_id']
            for doc in self.conversations.find({'participants': user_id}, {'conversation_id': 1})
        ]

    def count(self, user_id: int) -> int:
        """Total unread messages across every conversation the user is in."""
        user_id = self._check_user(user_id)
        try:
            conversation_ids = self._conversation_ids(user_id)
            if not conversation_ids:
                return 0
            return self.messages.count_documents({
                'conversation_id': {'$in': conversation_ids},
                'sender_id': {'$ne': user_id},
                'is_read': False,
            })
        except PyMongoError as e:
            logger.error(f"Unread count failed for user {user_id}: {e}")
            raise TransientStoreError('Chat storage is temporarily unavailable') from e

    def count_by_conversation(self, user_id: int, conversation_ids: Optional[List[str]] = None) -> Dict[str, int]:
        """Unread messages per conversation; conversations with none are omitted."""
        user_id = self._check_user(user_id)
        try:
            if conversation_ids is None:
                conversation_ids = self._conversation_ids(user_id)
            if not conversation_ids:
                return {}
            pipeline = [
                {'$match': {
                    'conversation_id': {'$in': list(conversation_ids)},
                    'sender_id': {'$ne': user_id},
                    'is_read': False,
                }},
                {'$group': {'_id': '$conversation_id', 'count': {'$sum': 1}}},
            ]
            return {row['_id']: row['count'] for row in self.messages.aggregate(pipeline)}
        except PyMongoError as e:
            logger.error(f"Unread breakdown failed for user {user_id}: {e}")
            raise TransientStoreError('Chat storage is temporarily unavailable') from e


# Singleton instance
_unread_counter: Optional[UnreadCounter] = None


def get_unread_counter() -> UnreadCounter:
    global _unread_counter
    if _unread_counter is None:
        _unread_counter = UnreadCounter()
    return _unread_counter


def set_unread_counter(counter: Optional[UnreadCounter]):
    global _unread_counter
    _unread_counter = counter
