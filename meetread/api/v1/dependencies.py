from typing import Annotated, Optional
from collections.abc import Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from meetread.core.config import settings
from meetread.core.logging import get_logger, current_user_id_ctx
from meetread.db.session import get_db
from meetread.db.models import User, UserRole
from meetread.services.auth import resolve_acting_user

logger = get_logger("api.dependencies")

bearer_scheme = HTTPBearer(auto_error=False)


def get_session_token(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> Optional[str]:
    """Session token from the Authorization header, falling back to the session cookie."""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


async def get_optional_user(
    token: Annotated[Optional[str], Depends(get_session_token)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Optional[User]:
    """The acting user, or None for anonymous callers."""
    user = await resolve_acting_user(db, token)
    if user is not None:
        current_user_id_ctx.set(user.id)
    return user


async def get_current_user(
    user: Annotated[Optional[User], Depends(get_optional_user)],
) -> User:
    """The acting user; 401 when the session is missing or invalid."""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="You must sign in first",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_role(*roles: UserRole) -> Callable:
    """Dependency factory that checks if the current user has one of the required roles."""

    async def role_checker(
        current_user: Annotated[User, Depends(get_current_user)],
    ) -> User:
        if current_user.role not in roles:
            logger.warning(
                f"Access denied: user={current_user.id} role={current_user.role.value} "
                f"required={[r.value for r in roles]}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have access",
            )
        return current_user

    return role_checker

