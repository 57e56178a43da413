"""
Authentication dependencies for FastAPI.

Resolves the bearer token to the acting user. What that user may do is
decided by the service layer through core.permissions.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_session
from core.security import SecurityError, decode_token, get_user_id_from_token
from db.models import User
from repositories.user_repository import UserRepository

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


class AuthenticationError(HTTPException):
    """Custom authentication error."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Get the current authenticated user from the JWT token.

    Args:
        credentials: HTTP Bearer credentials containing the JWT token
        db: Database session

    Returns:
        Active User for the token subject

    Raises:
        AuthenticationError: If token is missing or invalid, or the user is
            unknown or revoked
    """
    if credentials is None:
        raise AuthenticationError()

    try:
        payload = decode_token(credentials.credentials)
        user_id = get_user_id_from_token(payload)
    except SecurityError as e:
        raise AuthenticationError(str(e))

    user = await UserRepository.find_active_by_id(db, user_id)
    if user is None:
        raise AuthenticationError("User not found or inactive")

    return user
