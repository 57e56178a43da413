"""
Security utilities for JWT bearer token validation.

Tokens are issued by the identity provider. This module only verifies them
and extracts the subject (user UUID).
"""

from typing import Any, Dict
from uuid import UUID

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from core.config import settings


class SecurityError(Exception):
    """Base exception for security-related errors."""

    pass


class TokenExpiredError(SecurityError):
    """Raised when a token has expired."""

    pass


class TokenInvalidError(SecurityError):
    """Raised when a token is invalid."""

    pass


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT token.

    Args:
        token: JWT token string

    Returns:
        Decoded token payload

    Raises:
        TokenExpiredError: If token has expired
        TokenInvalidError: If token is invalid
    """
    try:
        return jwt.decode(
            token,
            settings.security.jwt_secret_key_property,
            algorithms=[settings.security.algorithm],
            audience=settings.security.jwt_audience,
            issuer=settings.security.jwt_issuer,
        )
    except ExpiredSignatureError:
        raise TokenExpiredError("Token has expired")
    except InvalidTokenError as e:
        raise TokenInvalidError(f"Invalid token: {str(e)}")


def get_user_id_from_token(payload: Dict[str, Any]) -> UUID:
    """Extract the user UUID from a decoded token.

    Raises:
        TokenInvalidError: If the subject is missing or not a UUID
    """
    subject = payload.get("sub")
    if not subject:
        raise TokenInvalidError("Token has no subject")
    try:
        return UUID(str(subject))
    except ValueError:
        raise TokenInvalidError("Token subject is not a valid user id")
