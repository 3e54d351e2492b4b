"""Typed failures raised by the conversation store and delivery router.

Every error carries a stable ``code`` that is sent to the originating
connection in a ``chat:error`` event and an HTTP status used by the
retrieval API.
"""


class ChatError(Exception):
    """Base class for rejected chat operations."""
    code = 'CHAT_ERROR'
    status = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'code': self.code, 'message': self.message}


class ValidationError(ChatError):
    """Empty text or malformed identifiers. No side effects."""
    code = 'INVALID_DATA'
    status = 400


class AuthorizationError(ChatError):
    """A non-participant acted on a conversation. No side effects."""
    code = 'FORBIDDEN'
    status = 403


class NotFoundError(ChatError):
    code = 'NOT_FOUND'
    status = 404


class TransientStoreError(ChatError):
    """Persistence temporarily unavailable; the client decides whether to retry."""
    code = 'SERVICE_UNAVAILABLE'
    status = 503
