from pymongo import MongoClient, ASCENDING, DESCENDING
import logging

from config import config

logger = logging.getLogger(__name__)

CONVERSATIONS = 'conversations'
MESSAGES = 'chat_messages'
USERS = 'users'
ACTIVITY_LOGS = 'activity_logs'


class MongoRepositorySingleton:
    _db_instance = None

    @classmethod
    def get_db(cls):
        """Singleton utility to get the MongoDB database object.

        Uses config.MONGO_URI and config.CHAT_DB_NAME. Timeouts come from
        config.MONGO_TIMEOUT_MS so that no store call blocks indefinitely.
        """
        if cls._db_instance is not None:
            return cls._db_instance
        mongo_uri = config.MONGO_URI
        db_name = config.CHAT_DB_NAME
        logger.info(f"[MongoRepositorySingleton] Connecting to MongoDB DB: {db_name}")
        timeout = config.MONGO_TIMEOUT_MS
        client = MongoClient(
            mongo_uri,
            serverSelectionTimeoutMS=timeout,
            connectTimeoutMS=timeout,
            socketTimeoutMS=timeout,
        )
        cls._db_instance = client[db_name]
        return cls._db_instance

    @classmethod
    def set_db(cls, db):
        """Install an already-built database handle (tests, alternative runners)."""
        cls._db_instance = db

    @classmethod
    def reset(cls):
        cls._db_instance = None

    @classmethod
    def get_collection(cls, collection_name, db=None):
        """Return a collection from the configured database."""
        if db is None:
            db = cls.get_db()
        return db[collection_name]

    @classmethod
    def ensure_indexes(cls, db=None):
        """Create the indexes the chat query paths rely on (idempotent).

        The unique pair_key index is what keeps one conversation per pair of
        users; it is not optional.
        """
        if db is None:
            db = cls.get_db()
        db[CONVERSATIONS].create_index([('pair_key', ASCENDING)], unique=True, name='conversations_pair_key')
        db[CONVERSATIONS].create_index([('participants', ASCENDING), ('last_activity', DESCENDING)],
                                       name='conversations_participants_activity')
        db[MESSAGES].create_index([('conversation_id', ASCENDING), ('created_at', ASCENDING)],
                                  name='messages_conversation_created_at')
        db[MESSAGES].create_index([('conversation_id', ASCENDING), ('sender_id', ASCENDING), ('is_read', ASCENDING)],
                                  name='messages_conversation_sender_read')
        db[USERS].create_index([('user_id', ASCENDING)], name='users_user_id')
        logger.info('Ensured chat DB indexes')


def get_db():
    return MongoRepositorySingleton.get_db()


def get_collection(collection_name, db=None):
    return MongoRepositorySingleton.get_collection(collection_name, db)
