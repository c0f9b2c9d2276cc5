from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from meetread.core.exceptions import ConflictError
from meetread.core.logging import get_logger
from meetread.core.security import hash_password, verify_password, create_session_token, decode_session_token
from meetread.db.models import User, UserRole
from meetread.services.user import get_user_by_email, get_user_by_id

logger = get_logger("services.auth")


async def register_user(
    db: AsyncSession, name: str, email: str, password: str, phone_number: str
) -> User:
    """Register a new member account."""
    email = email.lower()
    if await get_user_by_email(db, email):
        raise ConflictError("Email is already registered, please use another email")

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        phone_number=phone_number,
        role=UserRole.USER,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)

    logger.info(f"User registered: {user.email} (id={user.id})")
    return user


async def authenticate_user(
    db: AsyncSession, email: str, password: str
) -> Optional[User]:
    """Return the user when the credentials match, else None."""
    user = await get_user_by_email(db, email)

    if not user:
        logger.warning(f"Login failed: unknown email {email}")
        return None

    if not verify_password(password, user.password_hash):
        logger.warning(f"Login failed: wrong password for {email}")
        return None

    logger.info(f"Login successful: {user.email} (id={user.id})")
    return user


async def authenticate_admin(
    db: AsyncSession, email: str, password: str
) -> Optional[User]:
    """Like authenticate_user, but only for ADMIN accounts.

    Raises PermissionError when the email does not belong to an admin.
    """
    user = await get_user_by_email(db, email)
    if not user or user.role != UserRole.ADMIN:
        logger.warning(f"Admin login refused: {email} is not an admin")
        raise PermissionError("Admin account not found or has no access")

    if not verify_password(password, user.password_hash):
        logger.warning(f"Admin login failed: wrong password for {email}")
        return None

    logger.info(f"Admin login successful: {user.email} (id={user.id})")
    return user


def create_user_session(user: User) -> tuple[str, datetime]:
    """Sign a session token for a user."""
    return create_session_token(
        data={
            "sub": str(user.id),
            "role": user.role.value,
            "name": user.name,
            "email": user.email,
        }
    )


async def resolve_acting_user(db: AsyncSession, token: Optional[str]) -> Optional[User]:
    """Map a session token to its user; None when missing, invalid, expired or orphaned."""
    if not token:
        return None

    payload = decode_session_token(token)
    if payload is None:
        return None

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        return None

    return await get_user_by_id(db, int(subject))
