"""
Authentication module for Task Manager API.
Resolves the bearer token on a request into the caller's identity.
"""
import logging
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from .database import get_db
from .exceptions import Unauthenticated
from .security import decode_token
from ..repositories.user_repository import UserRepository

# Configure logging
logger = logging.getLogger(__name__)

# Security scheme; missing credentials are reported as 401 by get_current_user
security = HTTPBearer(
    scheme_name="Bearer Token",
    description="Bearer token returned by /register or /login",
    auto_error=False
)


class CurrentUser:
    """
    Represents the current authenticated user.

    Passed explicitly into every service call. ``token_id`` identifies the
    token that authenticated this request, which is what logout revokes.
    """

    def __init__(self, user_id: int, email: str, name: str, token_id: Optional[str] = None):
        self.user_id = user_id
        self.email = email
        self.name = name
        self.token_id = token_id

    def __str__(self):
        return f"User(id={self.user_id}, email={self.email})"

    def __repr__(self):
        return self.__str__()

    @classmethod
    def from_user(cls, user, token_id: Optional[str] = None) -> "CurrentUser":
        """Create CurrentUser from a User row."""
        return cls(
            user_id=user.id,
            email=user.email,
            name=user.name,
            token_id=token_id
        )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> CurrentUser:
    """
    Dependency to get current authenticated user.

    Args:
        credentials: HTTP Bearer credentials from request
        db: Database session

    Returns:
        CurrentUser: Current authenticated user

    Raises:
        Unauthenticated: If the token is missing, invalid, expired or revoked
    """
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()

    payload = decode_token(credentials.credentials)
    users = UserRepository(db)

    token = users.get_token(payload["jti"])
    if token is None or str(token.user_id) != str(payload["sub"]):
        logger.warning("Rejected revoked or unknown token")
        raise Unauthenticated()

    user = users.get(token.user_id)
    if user is None:
        raise Unauthenticated()

    if users.touch_token(token):
        db.commit()

    current_user = CurrentUser.from_user(user, token_id=token.jti)
    logger.debug(f"Authenticated user: {current_user}")
    return current_user
