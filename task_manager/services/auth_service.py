"""
Registration, login and logout.
"""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.auth import CurrentUser
from ..core.exceptions import InvalidCredentials, ValidationError
from ..core.security import create_access_token, get_password_hash, verify_password
from ..models.user import User
from ..repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
EMAIL_TAKEN = "The email has already been taken."
PASSWORD_MISMATCH = "The password field confirmation does not match."


class AuthService:
    """Credential use cases on top of the user/token store."""

    def __init__(self, db: Session):
        self.db = db
        self.users = UserRepository(db)

    def issue_token(self, user: User) -> str:
        token, jti, expires_at = create_access_token(user.id)
        self.users.add_token(user.id, jti, expires_at)
        return token

    def register(self, name: str, email: str, password: str, password_confirmation: Optional[str] = None) -> str:
        """
        Create a user and return a fresh bearer token for it.

        Every failed rule is reported in one ``ValidationError``. The
        confirmation is checked only when one is given.
        """
        email = email.strip().lower()

        errors = {}
        if self.users.get_by_email(email) is not None:
            errors["email"] = [EMAIL_TAKEN]
        if len(password) < MIN_PASSWORD_LENGTH:
            errors["password"] = [f"The password field must be at least {MIN_PASSWORD_LENGTH} characters."]
        if password_confirmation is not None and password_confirmation != password:
            errors.setdefault("password", []).append(PASSWORD_MISMATCH)
        if errors:
            raise ValidationError(errors)

        try:
            user = self.users.create(name=name.strip(), email=email, password_hash=get_password_hash(password))
            token = self.issue_token(user)
            self.db.commit()
        except IntegrityError:
            # Lost a race against another registration with the same email
            self.db.rollback()
            raise ValidationError.for_field("email", EMAIL_TAKEN)

        logger.info(f"Registered user {user.id} ({email})")
        return token

    def login(self, email: str, password: str) -> str:
        user = self.users.get_by_email(email.strip().lower())
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Failed login attempt")
            raise InvalidCredentials()

        token = self.issue_token(user)
        self.db.commit()
        logger.info(f"Login: user {user.id}")
        return token

    def logout(self, current_user: CurrentUser) -> bool:
        """Revoke the token that authenticated ``current_user``; other tokens stay valid."""
        if not current_user.token_id:
            return False
        revoked = self.users.delete_token(current_user.token_id)
        self.db.commit()
        logger.info(f"Logout: user {current_user.user_id}")
        return revoked
