from chat_server.exception.ChatError import (
    ChatError, ValidationError, AuthorizationError, NotFoundError, TransientStoreError
)
from chat_server.exception.UnauthorizedError import UnauthorizedError

__all__ = [
    'ChatError', 'ValidationError', 'AuthorizationError', 'NotFoundError',
    'TransientStoreError', 'UnauthorizedError',
]
