"""Chat REST API routes.

These endpoints serve users who need history or are not connected; all
writes still go through the delivery router so connected participants get
the same events as for socket traffic.

REST API Endpoints:
- GET  /api/chat/conversations - List conversations
- POST /api/chat/conversations - Find or create a conversation with a user
- GET  /api/chat/conversations/{id} - Message history (marks it read)
- POST /api/chat/conversations/{id} - Send a message
- GET  /api/chat/unread - Total unread count
- GET  /api/chat/presence/{user_id} - Online status of a user
- GET  /api/chat/health - Liveness
"""
import logging

from flask import Blueprint, request

from config import config
from chat_server.exception import ValidationError, NotFoundError
from chat_server.messaging.repository import get_conversation_store, require_user_id
from chat_server.messaging.unread import get_unread_counter
from chat_server.messaging.models import PresenceStatus
from chat_server.security.authentication import user_id_from_payload
from chat_server.utils.decorators import handle_errors, require_auth
from chat_server.utils.helpers import respond_success, parse_limit
from chat_server.utils.time_utils import parse_iso
from chat_server.websocket.router import get_delivery_router

logger = logging.getLogger(__name__)

# Blueprint
chat_bp = Blueprint('chat', __name__, url_prefix='/api/chat')


def _request_json():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


# =============================================================================
# Conversation Endpoints
# =============================================================================

@chat_bp.route('/conversations', methods=['GET'])
@handle_errors
@require_auth
def list_conversations(auth_payload):
    """List the caller's conversations, most recently active first.

    Response:
        {
            "conversations": [{id, participants, lastMessage, unreadCount, ...}],
            "count": 2
        }
    """
    user_id = user_id_from_payload(auth_payload)
    registry = get_delivery_router().registry

    conversations = get_conversation_store().get_conversations_for_user(user_id)
    for conversation in conversations:
        for participant in conversation['participants']:
            participant['online'] = registry.is_online(participant['id'])

    return respond_success({'conversations': conversations, 'count': len(conversations)})


@chat_bp.route('/conversations', methods=['POST'])
@handle_errors
@require_auth
def start_conversation(auth_payload):
    """Find or create the conversation with another user.

    Body:
        recipientId: int - The other user
        initialMessage: str - Optional first message

    Returns 201 when the conversation was created, 200 when it already existed.
    """
    user_id = user_id_from_payload(auth_payload)
    data = _request_json()
    recipient_id = require_user_id(data.get('recipientId', data.get('recipient_id')), 'recipientId')

    store = get_conversation_store()
    if not store.profiles.user_exists(recipient_id):
        raise NotFoundError('Recipient not found')

    conversation_id, created = store.find_or_create_conversation(user_id, recipient_id)
    logger.info(f"User {user_id} opened conversation {conversation_id} with {recipient_id} (created={created})")

    body = {'conversationId': conversation_id, 'created': created}
    initial = data.get('initialMessage', data.get('initial_message'))
    if initial:
        message = get_delivery_router().send(conversation_id, user_id, initial)
        body['message'] = message.to_dict()

    return respond_success(body, status=201 if created else 200)


@chat_bp.route('/conversations/<conversation_id>', methods=['GET'])
@handle_errors
@require_auth
def get_conversation_messages(conversation_id, auth_payload):
    """Message history of a conversation, oldest first.

    Query Params:
        before: ISO timestamp - Only messages created before this instant
        limit: int - Page size (default MESSAGES_PAGE_SIZE)

    Viewing the history marks the conversation read for the caller.
    """
    user_id = user_id_from_payload(auth_payload)
    limit = parse_limit(request.args, default_limit=config.MESSAGES_PAGE_SIZE)
    before = None
    if request.args.get('before'):
        before = parse_iso(request.args.get('before'))
        if before is None:
            raise ValidationError('before must be an ISO-8601 timestamp')

    store = get_conversation_store()
    messages = store.get_messages(conversation_id, user_id, before=before, limit=limit)
    get_delivery_router().mark_read(conversation_id, user_id)

    return respond_success({
        'conversationId': conversation_id,
        'messages': [m.to_dict() for m in messages],
        'count': len(messages),
    })


@chat_bp.route('/conversations/<conversation_id>', methods=['POST'])
@handle_errors
@require_auth
def send_message(conversation_id, auth_payload):
    """Send a message.

    Body:
        text: str - Message text
    """
    user_id = user_id_from_payload(auth_payload)
    data = _request_json()

    message = get_delivery_router().send(conversation_id, user_id, data.get('text'))
    return respond_success({'message': message.to_dict()}, status=201)


# =============================================================================
# Unread / Presence
# =============================================================================

@chat_bp.route('/unread', methods=['GET'])
@handle_errors
@require_auth
def unread_count(auth_payload):
    user_id = user_id_from_payload(auth_payload)
    return respond_success({'count': get_unread_counter().count(user_id)})


@chat_bp.route('/presence/<int:user_id>', methods=['GET'])
@handle_errors
@require_auth
def presence(user_id, auth_payload):
    status = PresenceStatus.ONLINE if get_delivery_router().registry.is_online(user_id) else PresenceStatus.OFFLINE
    return respond_success({'userId': user_id, 'status': status.value})


@chat_bp.route('/health', methods=['GET'])
def health():
    return respond_success({'status': 'ok', 'service': config.APP_NAME, 'version': config.APP_VERSION})
