"""Process-wide map of which users are connected and through which session.

A user has at most one live session. Registering again replaces the old
handle; unregistering is compare-and-swap so a stale session closing late
cannot evict its replacement.

Presence events are emitted while the registry lock is held, so observers
see a user's transitions in the order the registry applied them. The lock
is re-entrant: a push that fails inside a broadcast may unregister its own
session from the same thread.
"""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from chat_server.messaging.models import PresenceStatus

logger = logging.getLogger(__name__)

# (user_id, status, members snapshot)
PresenceListener = Callable[[int, PresenceStatus, List[Tuple[int, Any]]], None]


class PresenceRegistry:
    """Thread-safe user_id -> session handle registry."""

    def __init__(self, on_change: Optional[PresenceListener] = None):
        self._lock = threading.RLock()
        self._sessions: Dict[int, Any] = {}
        self._on_change = on_change

    def set_listener(self, on_change: Optional[PresenceListener]):
        self._on_change = on_change

    def register(self, user_id: int, handle: Any) -> Optional[Any]:
        """Map user_id to handle and return the handle it replaced, if any.

        Presence 'online' goes out only when the user was not already
        present; a replacement is not a presence change.
        """
        with self._lock:
            previous = self._sessions.get(user_id)
            self._sessions[user_id] = handle

            if previous is None:
                logger.info(f"PRESENCE: user {user_id} online")
                self._notify(user_id, PresenceStatus.ONLINE, list(self._sessions.items()))
            else:
                logger.info(f"PRESENCE: user {user_id} session replaced")
            return previous

    def unregister(self, user_id: int, handle: Any) -> bool:
        """Remove the mapping only if it still points at handle."""
        with self._lock:
            if self._sessions.get(user_id) is not handle:
                logger.debug(f"PRESENCE: stale unregister ignored for user {user_id}")
                return False

            del self._sessions[user_id]
            logger.info(f"PRESENCE: user {user_id} offline")
            self._notify(user_id, PresenceStatus.OFFLINE, list(self._sessions.items()))
            return True

    def lookup(self, user_id: int) -> Optional[Any]:
        with self._lock:
            return self._sessions.get(user_id)

    def is_online(self, user_id: int) -> bool:
        return self.lookup(user_id) is not None

    def members(self) -> List[Tuple[int, Any]]:
        """Consistent snapshot of (user_id, handle) pairs."""
        with self._lock:
            return list(self._sessions.items())

    def online_user_ids(self) -> List[int]:
        with self._lock:
            return list(self._sessions.keys())

    def _notify(self, user_id: int, status: PresenceStatus, snapshot: List[Tuple[int, Any]]):
        if not self._on_change:
            return
        try:
            self._on_change(user_id, status, snapshot)
        except Exception:
            logger.exception(f"PRESENCE: listener failed for user {user_id} ({status.value})")


# Singleton instance
_presence_registry: Optional[PresenceRegistry] = None


def get_presence_registry() -> PresenceRegistry:
    global _presence_registry
    if _presence_registry is None:
        _presence_registry = PresenceRegistry()
    return _presence_registry


def reset_presence_registry():
    global _presence_registry
    _presence_registry = None
