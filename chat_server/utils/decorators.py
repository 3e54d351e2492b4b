"""Route decorators for common patterns like error handling and authentication.

This module provides reusable decorators to reduce boilerplate in route handlers.
"""
import functools
import logging
from typing import Callable

from flask import request

from chat_server.exception import ChatError, UnauthorizedError
from chat_server.utils.helpers import respond_error
from chat_server.security.authentication import get_auth_payload

logger = logging.getLogger(__name__)


def handle_errors(func: Callable) -> Callable:
    """Decorator to map exceptions raised by route handlers to JSON responses.

    Catches:
    - UnauthorizedError -> 401
    - ChatError subclasses -> their own status (400/403/404/503)
    - ValueError -> 400
    - Other exceptions -> 500
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except UnauthorizedError as e:
            logger.warning("Unauthorized: %s", e)
            return respond_error(str(e), status=401, code='UNAUTHORIZED')
        except ChatError as e:
            logger.warning("%s in %s: %s", e.code, func.__name__, e.message)
            return respond_error(e.message, status=e.status, code=e.code)
        except ValueError as e:
            logger.warning("Validation error: %s", e)
            return respond_error(str(e), status=400, code='INVALID_DATA')
        except Exception:
            logger.exception("Unexpected error in %s", func.__name__)
            return respond_error('Server error', status=500)
    return wrapper


def require_auth(func: Callable) -> Callable:
    """Decorator to require authentication and inject payload into handler.

    The decorated function receives `auth_payload` as a keyword argument.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        payload = get_auth_payload(request)
        kwargs['auth_payload'] = payload
        return func(*args, **kwargs)
    return wrapper
