from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from meetread.core.exceptions import ConflictError, NotFoundError
from meetread.core.logging import get_logger
from meetread.core.security import hash_password, verify_password
from meetread.db.models import User, UserRole
from meetread.services.borrow import release_requests_of

logger = get_logger("services.user")


async def get_users(db: AsyncSession, role: Optional[UserRole] = None) -> List[User]:
    """All users, newest first."""
    query = select(User)
    if role is not None:
        query = query.where(User.role == role)
    result = await db.execute(query.order_by(User.created_at.desc(), User.id.desc()))
    return list(result.scalars().all())


async def get_user_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    """Get a single user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def _ensure_email_free(db: AsyncSession, email: str, user_id: int) -> None:
    other = await get_user_by_email(db, email)
    if other and other.id != user_id:
        raise ConflictError("Email is already used by another user")


async def update_user(
    db: AsyncSession, user_id: int, update_data: dict, actor_id: int
) -> User:
    """Admin edit of name, email, role or password."""
    user = await get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")

    if update_data.get("email"):
        update_data["email"] = update_data["email"].lower()
        await _ensure_email_free(db, update_data["email"], user.id)

    if user.is_built_in and update_data.get("role") not in (None, UserRole.ADMIN):
        raise ValueError("The built-in admin account cannot be demoted")

    password = update_data.pop("password", None)
    if password:
        update_data["password_hash"] = hash_password(password)

    for key, value in update_data.items():
        if value is not None:
            setattr(user, key, value)

    await db.flush()
    await db.refresh(user)

    logger.info(f"User updated: id={user_id} fields={sorted(update_data)} by actor={actor_id}")
    return user


async def delete_user(db: AsyncSession, user_id: int, actor_id: int) -> None:
    """Delete a user. The built-in admin is protected."""
    user = await get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")

    if user.is_built_in:
        raise ValueError("Cannot delete the built-in admin account")

    # the user's requests cascade away with the row; free their books first
    await release_requests_of(db, user.id)
    await db.delete(user)
    await db.flush()

    logger.info(f"User deleted: id={user_id} by actor={actor_id}")


async def update_profile(db: AsyncSession, user: User, update_data: dict) -> User:
    """Self-service profile edit.

    Blank phone number or profile image clears the field.
    """
    if update_data.get("email"):
        update_data["email"] = update_data["email"].lower()
        await _ensure_email_free(db, update_data["email"], user.id)

    for key in ("phone_number", "profile_image"):
        if key in update_data and update_data[key] is not None:
            update_data[key] = update_data[key].strip() or None

    for key, value in update_data.items():
        if key in ("phone_number", "profile_image") or value is not None:
            setattr(user, key, value)

    await db.flush()
    await db.refresh(user)

    logger.info(f"Profile updated: id={user.id} fields={sorted(update_data)}")
    return user


async def change_password(
    db: AsyncSession, user: User, current_password: str, new_password: str
) -> None:
    """Replace the password after checking the current one."""
    if not verify_password(current_password, user.password_hash):
        logger.warning(f"Password change failed: wrong current password for user={user.id}")
        raise ValueError("Current password is incorrect")

    user.password_hash = hash_password(new_password)
    await db.flush()

    logger.info(f"Password changed: user={user.id}")
