"""User profile lookups.

Users are owned by the authentication service; chat only reads display
name and avatar to enrich outbound payloads.
"""
import logging
from typing import Dict, Any, Iterable, Optional

from pymongo.errors import PyMongoError

from chat_server.repository.mongo_helper import get_collection, USERS

logger = logging.getLogger(__name__)


class UserProfileService:
    """Read-only access to the users collection."""

    def __init__(self, db=None):
        self.db = db

    @property
    def users(self):
        return get_collection(USERS, self.db)

    @staticmethod
    def _to_profile(user_id: int, doc: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not doc:
            return {'user_id': user_id, 'name': None, 'avatar': None, 'exists': False}
        return {
            'user_id': user_id,
            'name': doc.get('name') or doc.get('username'),
            'avatar': doc.get('profile_pic') or doc.get('avatar_url'),
            'exists': True,
        }

    def get_profile(self, user_id: int) -> Dict[str, Any]:
        """Return {'user_id', 'name', 'avatar', 'exists'} for a user.

        Profile data is enrichment only: a lookup failure degrades to an
        anonymous profile instead of failing the caller.
        """
        try:
            doc = self.users.find_one({'user_id': user_id, 'active': {'$ne': False}})
        except PyMongoError as e:
            logger.warning(f"Profile lookup failed for user {user_id}: {e}")
            doc = None
        return self._to_profile(user_id, doc)

    def get_profiles(self, user_ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
        ids = list(set(user_ids))
        found = {}
        try:
            for doc in self.users.find({'user_id': {'$in': ids}, 'active': {'$ne': False}}):
                found[doc['user_id']] = doc
        except PyMongoError as e:
            logger.warning(f"Profile lookup failed for users {ids}: {e}")
        return {uid: self._to_profile(uid, found.get(uid)) for uid in ids}

    def user_exists(self, user_id: int) -> bool:
        return self.get_profile(user_id)['exists']
