"""
Credential store: user records and the issued-token table.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..models.user import AccessToken, User

logger = logging.getLogger(__name__)

TOKEN_TOUCH_INTERVAL = timedelta(minutes=1)


class UserRepository:
    """Reads and writes ``users`` and ``access_tokens``. Callers own the commit."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.execute(
            select(User).where(User.email == email)
        ).scalar_one_or_none()

    def exists(self, user_id: int) -> bool:
        return self.db.execute(
            select(User.id).where(User.id == user_id)
        ).first() is not None

    def create(self, name: str, email: str, password_hash: str) -> User:
        user = User(name=name, email=email, password_hash=password_hash)
        self.db.add(user)
        self.db.flush()
        return user

    # Tokens

    def add_token(self, user_id: int, jti: str, expires_at: datetime, name: str = "api_token") -> AccessToken:
        token = AccessToken(user_id=user_id, jti=jti, expires_at=expires_at, name=name)
        self.db.add(token)
        self.db.flush()
        return token

    def get_token(self, jti: str) -> Optional[AccessToken]:
        return self.db.execute(
            select(AccessToken).where(AccessToken.jti == jti)
        ).scalar_one_or_none()

    def touch_token(self, token: AccessToken, now: Optional[datetime] = None) -> bool:
        """
        Record that ``token`` was used. Skipped when the last recorded use is
        younger than ``TOKEN_TOUCH_INTERVAL``; returns whether anything changed.
        """
        now = now or datetime.now(timezone.utc)
        last_used = token.last_used_at
        if last_used is not None:
            if last_used.tzinfo is None:
                # SQLite hands timestamps back without a zone
                last_used = last_used.replace(tzinfo=timezone.utc)
            if now - last_used < TOKEN_TOUCH_INTERVAL:
                return False
        token.last_used_at = now
        return True

    def delete_token(self, jti: str) -> bool:
        result = self.db.execute(delete(AccessToken).where(AccessToken.jti == jti))
        return result.rowcount > 0
