import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import get_settings
from .exceptions import Unauthenticated

settings = get_settings()

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


def create_access_token(
    user_id: int, expires_delta: Optional[timedelta] = None
) -> Tuple[str, str, datetime]:
    """
    Issue a signed JWT for ``user_id``.

    Returns the encoded token, its unique ``jti`` (the key the token store
    revokes by) and its expiry.
    """
    jti = uuid.uuid4().hex
    expire = datetime.now(timezone.utc) + (
        expires_delta if expires_delta else timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = {"sub": str(user_id), "jti": jti, "exp": expire}
    encoded = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    return encoded, jti, expire


def decode_token(token: str) -> dict:
    """Decode and verify a token, raising ``Unauthenticated`` if it is unusable."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        raise Unauthenticated()
    if not payload.get("sub") or not payload.get("jti"):
        raise Unauthenticated()
    return payload
