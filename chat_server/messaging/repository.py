"""Conversation store: durable conversations and messages.

Provides:
- find-or-create of the single conversation between two users
- message append (insert + last-activity bump as one unit)
- read-status flips with the set of affected senders
- participant lookups and the per-user conversation listing

Every pymongo failure leaves this module as a TransientStoreError so the
callers only ever see the chat error taxonomy.
"""
import functools
import logging
from datetime import datetime
from typing import Optional, Dict, Any, List, Set, Tuple

from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import config
from chat_server.exception import (
    ValidationError, AuthorizationError, NotFoundError, TransientStoreError
)
from chat_server.messaging.models import Message, Conversation, make_pair_key
from chat_server.messaging.unread import UnreadCounter
from chat_server.repository.mongo_helper import (
    MongoRepositorySingleton, get_collection, CONVERSATIONS, MESSAGES
)
from chat_server.services.profile_service import UserProfileService
from chat_server.utils.generator import generate_conversation_id, generate_message_id
from chat_server.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

# Fresh ids tried when a generated conversation id is already taken
CREATE_ATTEMPTS = 3


def _store_call(func):
    """Translate driver failures into TransientStoreError."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PyMongoError as e:
            logger.error(f"Store failure in {func.__name__}: {e}")
            raise TransientStoreError('Chat storage is temporarily unavailable') from e
    return wrapper


def require_user_id(value: Any, field: str = 'user_id') -> int:
    """Return value as a positive int user id, or raise ValidationError."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f'{field} is required')
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f'{field} must be an integer')
    try:
        user_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer')
    if user_id <= 0:
        raise ValidationError(f'{field} must be positive')
    return user_id


def require_conversation_id(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError('conversationId is required')
    return value.strip()


class ConversationStore:
    """Owns the conversations and chat_messages collections."""

    def __init__(self, db=None, profiles: UserProfileService = None, use_transactions: Optional[bool] = None):
        self.db = db
        self.profiles = profiles or UserProfileService(db)
        self.unread = UnreadCounter(db)
        if use_transactions is None:
            use_transactions = config.MONGO_USE_TRANSACTIONS
        self.use_transactions = use_transactions

    @property
    def conversations(self):
        return get_collection(CONVERSATIONS, self.db)

    @property
    def messages(self):
        return get_collection(MESSAGES, self.db)

    def ensure_indexes(self):
        MongoRepositorySingleton.ensure_indexes(self.db)

    # =========================================================================
    # Conversation Operations
    # =========================================================================

    @_store_call
    def find_or_create_conversation(self, user_a: Any, user_b: Any) -> Tuple[str, bool]:
        """Return (conversation_id, created) for the unordered pair {user_a, user_b}.

        The unique pair_key index decides races: whoever loses the insert
        reads back the winner's row. A clash on the generated id alone is
        retried with a fresh id.
        """
        a = require_user_id(user_a, 'user_a')
        b = require_user_id(user_b, 'user_b')
        if a == b:
            raise ValidationError('A conversation needs two different users')

        pair_key = make_pair_key(a, b)
        existing = self.conversations.find_one({'pair_key': pair_key})
        if existing:
            return existing['conversation_id'], False

        for _ in range(CREATE_ATTEMPTS):
            conversation = Conversation(
                conversation_id=generate_conversation_id(),
                participants=[a, b],
                created_by=a,
            )
            try:
                self.conversations.insert_one(conversation.to_db_doc())
            except DuplicateKeyError:
                winner = self.conversations.find_one({'pair_key': pair_key})
                if winner:
                    logger.debug(f"Conversation race for {pair_key} resolved to {winner['conversation_id']}")
                    return winner['conversation_id'], False
                # No row for the pair, so the generated id was taken
                logger.warning(f"Conversation id {conversation.conversation_id} already in use, regenerating")
                continue

            logger.info(f"Conversation {conversation.conversation_id} created for users {pair_key}")
            return conversation.conversation_id, True

        raise TransientStoreError('Conversation creation conflicted; please retry')

    @_store_call
    def get_conversation(self, conversation_id: Any) -> Conversation:
        conversation_id = require_conversation_id(conversation_id)
        doc = self.conversations.find_one({'conversation_id': conversation_id})
        if not doc:
            raise NotFoundError('Conversation not found')
        return Conversation.from_doc(doc)

    def require_participant(self, conversation_id: Any, user_id: Any) -> Conversation:
        """Return the conversation if user_id takes part in it."""
        user_id = require_user_id(user_id)
        conversation = self.get_conversation(conversation_id)
        if user_id not in conversation.participants:
            raise AuthorizationError('Not authorized to access this conversation')
        return conversation

    def list_participants_except(self, conversation_id: Any, excluded_user_id: Any) -> Set[int]:
        excluded_user_id = require_user_id(excluded_user_id)
        conversation = self.get_conversation(conversation_id)
        return {p for p in conversation.participants if p != excluded_user_id}

    @_store_call
    def conversation_ids_for_user(self, user_id: int) -> List[str]:
        return [
            doc['conversation_id']
            for doc in self.conversations.find({'participants': user_id}, {'conversation_id': 1})
        ]

    @_store_call
    def get_conversations_for_user(self, user_id: Any) -> List[Dict[str, Any]]:
        """List the user's conversations, most recently active first.

        Each entry carries the other participant's profile, the last message
        and the user's unread count for that conversation.
        """
        user_id = require_user_id(user_id)
        docs = list(
            self.conversations.find({'participants': user_id})
            .sort([('last_activity', DESCENDING), ('created_at', DESCENDING)])
        )
        if not docs:
            return []

        conversations = [Conversation.from_doc(doc) for doc in docs]
        unread_counts = self.unread.count_by_conversation(user_id, [c.conversation_id for c in conversations])
        others = {p for c in conversations for p in c.other_participants(user_id)}
        profiles = self.profiles.get_profiles(others)

        result = []
        for conversation in conversations:
            last = self._last_message(conversation.conversation_id)
            entry = conversation.to_dict()
            entry['participants'] = [
                {
                    'id': p,
                    'name': profiles[p]['name'],
                    'avatar': profiles[p]['avatar'],
                }
                for p in conversation.other_participants(user_id)
            ]
            entry['lastMessage'] = last.to_dict() if last else None
            entry['unreadCount'] = unread_counts.get(conversation.conversation_id, 0)
            result.append(entry)
        return result

    def _last_message(self, conversation_id: str) -> Optional[Message]:
        docs = list(
            self.messages.find({'conversation_id': conversation_id})
            .sort('created_at', DESCENDING)
            .limit(1)
        )
        return Message.from_doc(docs[0]) if docs else None

    # =========================================================================
    # Message Operations
    # =========================================================================

    @_store_call
    def append_message(self, conversation_id: Any, sender_id: Any, text: Any) -> Message:
        """Persist a new unread message and bump the conversation's last activity."""
        if not isinstance(text, str) or not text.strip():
            raise ValidationError('Message text is required')
        text = text.strip()
        if len(text) > config.MESSAGE_MAX_LENGTH:
            raise ValidationError(f'Message text exceeds {config.MESSAGE_MAX_LENGTH} characters')

        conversation = self.require_participant(conversation_id, sender_id)
        sender_id = require_user_id(sender_id)
        profile = self.profiles.get_profile(sender_id)

        message = Message(
            message_id=generate_message_id(),
            conversation_id=conversation.conversation_id,
            sender_id=sender_id,
            text=text,
            sender_info={'name': profile['name'], 'avatar': profile['avatar']},
        )
        self._write_message(message)
        logger.debug(f"Message {message.message_id} stored in {message.conversation_id}")
        return message

    def _write_message(self, message: Message):
        doc = message.to_db_doc()
        conv_filter = {'conversation_id': message.conversation_id}
        bump = {'$max': {'last_activity': message.created_at}}

        if self.use_transactions:
            def _unit(session):
                self.messages.insert_one(doc, session=session)
                result = self.conversations.update_one(conv_filter, bump, session=session)
                if result.matched_count == 0:
                    raise NotFoundError('Conversation not found')

            with self._start_session() as session:
                session.with_transaction(_unit)
            return

        self.messages.insert_one(doc)
        try:
            result = self.conversations.update_one(conv_filter, bump)
        except PyMongoError:
            self._discard_message(message.message_id)
            raise
        if result.matched_count == 0:
            self._discard_message(message.message_id)
            raise NotFoundError('Conversation not found')

    def _start_session(self):
        return self.messages.database.client.start_session()

    def _discard_message(self, message_id: str):
        """Remove a message whose conversation bump did not land."""
        try:
            self.messages.delete_one({'_id': message_id})
        except PyMongoError:
            logger.exception(f"Could not discard half-written message {message_id}")

    @_store_call
    def mark_read(self, conversation_id: Any, reader_id: Any) -> Set[int]:
        """Flip unread messages not sent by reader_id to read.

        Returns the senders that had at least one message flipped by this
        call, so a repeated call returns an empty set.
        """
        conversation = self.require_participant(conversation_id, reader_id)
        reader_id = require_user_id(reader_id)
        unread_filter = {
            'conversation_id': conversation.conversation_id,
            'sender_id': {'$ne': reader_id},
            'is_read': False,
        }
        senders = self.messages.distinct('sender_id', unread_filter)

        affected = set()
        now = utc_now()
        for sender_id in senders:
            result = self.messages.update_many(
                {
                    'conversation_id': conversation.conversation_id,
                    'sender_id': sender_id,
                    'is_read': False,
                },
                {'$set': {'is_read': True, 'read_at': now}}
            )
            if result.modified_count > 0:
                affected.add(sender_id)

        if affected:
            logger.debug(f"User {reader_id} read messages from {sorted(affected)} in {conversation.conversation_id}")
        return affected

    @_store_call
    def get_messages(
        self,
        conversation_id: Any,
        user_id: Any,
        before: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[Message]:
        """Messages of a conversation in chronological order, participants only."""
        conversation = self.require_participant(conversation_id, user_id)
        limit = limit or config.MESSAGES_PAGE_SIZE

        query: Dict[str, Any] = {'conversation_id': conversation.conversation_id}
        if before:
            query['created_at'] = {'$lt': before}

        docs = list(self.messages.find(query).sort('created_at', DESCENDING).limit(limit))
        docs.reverse()
        return [Message.from_doc(doc) for doc in docs]


# Singleton instance
_conversation_store: Optional[ConversationStore] = None


def get_conversation_store() -> ConversationStore:
    """Get singleton conversation store bound to the configured database."""
    global _conversation_store
    if _conversation_store is None:
        _conversation_store = ConversationStore()
    return _conversation_store


def set_conversation_store(store: Optional[ConversationStore]):
    """Replace the singleton (tests, alternative runners)."""
    global _conversation_store
    _conversation_store = store
