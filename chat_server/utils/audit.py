"""Activity log utilities.

Chat operations report what happened (who, which action, outcome) to the
activity log. Writes are fire-and-forget: they run on the shared background
pool and a failing write is logged here and never reaches the operation
that triggered it.
"""
import logging
from typing import Any, Dict, Optional

from config import config
from chat_server.repository.mongo_helper import get_collection, ACTIVITY_LOGS
from chat_server.utils.threading_util.pool import submit_task
from chat_server.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

STATUS_SUCCESS = 'success'
STATUS_FAILURE = 'failure'


def _write_activity_log(entry: Dict[str, Any]) -> Optional[str]:
    try:
        result = get_collection(ACTIVITY_LOGS).insert_one(entry)
        return str(getattr(result, 'inserted_id', None))
    except Exception:
        logger.exception(f"Failed to write activity log for {entry.get('action')} by user {entry.get('user_id')}")
        return None


def log_activity(
    user_id: Optional[int],
    action: str,
    status: str = STATUS_SUCCESS,
    event_type: str = 'chat',
    resource_type: str = 'message',
    resource_id: Optional[str] = None,
    details: Dict[str, Any] = None,
    error_message: Optional[str] = None,
):
    """Queue an activity log entry.

    Args:
        user_id: The acting user (None for system events)
        action: What was attempted (send, read, connect, ...)
        status: success or failure
        event_type: Broad category (chat, security)
        resource_type: Kind of resource touched (message, conversation, presence)
        resource_id: Identifier of the resource, when there is one
        details: Additional structured data
        error_message: Reason for a failure

    Returns:
        The Future of the background write, or None when logging is disabled
        or could not be queued.
    """
    if not config.ACTIVITY_LOG_ENABLED:
        return None

    entry = {
        'user_id': user_id,
        'event_type': event_type,
        'resource_type': resource_type,
        'resource_id': resource_id,
        'action': action,
        'status': status,
        'details': details,
        'error_message': error_message,
        'timestamp': utc_now(),
    }
    entry = {k: v for k, v in entry.items() if v is not None}

    try:
        return submit_task(_write_activity_log, entry)
    except Exception:
        logger.exception(f'Failed to queue activity log for {action}')
        return None
