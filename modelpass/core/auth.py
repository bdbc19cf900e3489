import jwt
from fastapi import Request

from modelpass.core.config import settings
from modelpass.core.errors import Unauthenticated, http_error


def decode_caller_token(token: str) -> str:
    """Validate a caller bearer token and return the caller id.

    Raises Unauthenticated when the token is expired, forged or has no subject.
    """
    try:
        payload = jwt.decode(
            token, settings.AUTH_JWT_SECRET, algorithms=[settings.AUTH_JWT_ALGORITHM]
        )
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Caller token has expired") from None
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid caller token") from None

    caller_id = payload.get("sub")
    if not caller_id:
        raise Unauthenticated("Caller token has no subject")
    return str(caller_id)


def get_current_caller(request: Request) -> str:
    """Extract the caller id from the ``Authorization: Bearer`` header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise http_error(Unauthenticated("Authentication required"))

    if not auth_header.startswith("Bearer "):
        raise http_error(Unauthenticated("Invalid authorization header format"))

    token = auth_header[7:]
    if not token:
        raise http_error(Unauthenticated("Bearer token is required"))

    try:
        return decode_caller_token(token)
    except Unauthenticated as exc:
        raise http_error(exc) from None
