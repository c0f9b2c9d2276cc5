from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from meetread.core.config import settings
from meetread.core.logging import get_logger

logger = get_logger("core.security")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a plain text password."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain text password against a hash."""
    return pwd_context.verify(plain_password, hashed_password)


def create_session_token(data: dict, expires_delta: timedelta | None = None) -> tuple[str, datetime]:
    """Sign a session token. Returns the token and its expiry."""
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.SESSION_EXPIRE_MINUTES))
    to_encode.update({"iat": now, "exp": expire})
    encoded = jwt.encode(
        to_encode, settings.SESSION_SECRET_KEY, algorithm=settings.SESSION_ALGORITHM
    )
    return encoded, expire


def decode_session_token(token: str) -> dict | None:
    """Verify signature and expiry of a session token. Returns payload or None."""
    try:
        return jwt.decode(
            token, settings.SESSION_SECRET_KEY, algorithms=[settings.SESSION_ALGORITHM]
        )
    except JWTError as e:
        logger.warning(f"Session token rejected: {e}")
        return None
