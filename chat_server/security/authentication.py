"""Bearer token validation for HTTP requests and socket connections.

Tokens are issued by the authentication service; this module only checks
them and extracts the user identity.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError, ExpiredSignatureError

from config import config
from chat_server.exception.UnauthorizedError import UnauthorizedError


class AuthSecurity:
    secret_key = None
    algorithm = 'HS256'
    access_token_expire_minutes = 7 * 24 * 60

    @classmethod
    def configure(cls, secret_key, algorithm='HS256', access_token_expire_minutes=7*24*60):
        cls.secret_key = secret_key
        cls.algorithm = algorithm
        cls.access_token_expire_minutes = access_token_expire_minutes

    @classmethod
    def configure_from_config(cls):
        secret = config.JWT_SECRET
        if not secret:
            raise RuntimeError('JWT_SECRET environment variable is required')
        cls.configure(
            secret_key=secret,
            algorithm=config.JWT_ALGORITHM,
            access_token_expire_minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES,
        )

    @classmethod
    def encode_token(cls, data: dict, expires_delta: timedelta = None) -> str:
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=cls.access_token_expire_minutes))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, cls.secret_key, algorithm=cls.algorithm)

    @classmethod
    def decode_token(cls, token: str) -> dict:
        if not token or token.count('.') != 2:
            raise UnauthorizedError("Malformed or missing token. Please provide a valid JWT token.")
        if not cls.secret_key:
            raise UnauthorizedError("Token validation is not configured.")
        try:
            return jwt.decode(token, cls.secret_key, algorithms=[cls.algorithm])
        except ExpiredSignatureError:
            raise UnauthorizedError("Token expired. Please login again or refresh your session.")
        except JWTError as e:
            raise UnauthorizedError(f"Invalid token: {e}")


def user_id_from_payload(payload: dict) -> int:
    """Return the numeric user id carried by a decoded token."""
    raw = payload.get('user_id', payload.get('id'))
    try:
        user_id = int(raw)
    except (TypeError, ValueError):
        raise UnauthorizedError('Token does not identify a user')
    if user_id <= 0:
        raise UnauthorizedError('Token does not identify a user')
    return user_id


def authenticate_token(token: Optional[str]) -> int:
    """Validate a bearer token and return the user id, or raise UnauthorizedError."""
    return user_id_from_payload(AuthSecurity.decode_token(token))


def get_auth_payload(request):
    """
    Extracts and decodes the Bearer token from the Authorization header in the request.
    Raises UnauthorizedError if missing or invalid.
    Returns the decoded payload.
    """
    auth_header = request.headers.get('Authorization')
    if not auth_header or not auth_header.startswith('Bearer '):
        raise UnauthorizedError('Missing or invalid token')
    token = auth_header.split(' ', 1)[1]
    return AuthSecurity.decode_token(token)
