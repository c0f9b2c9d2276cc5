from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from meetread.core.exceptions import ConflictError, NotFoundError
from meetread.db.session import get_db
from meetread.db.models import User, UserRole
from meetread.api.v1.dependencies import require_role
from meetread.schemas.common import DataResponse, SuccessResponse
from meetread.schemas.user import AdminUserUpdate, UserResponse
from meetread.services.user import get_users, update_user, delete_user

router = APIRouter(prefix="/admin/users", tags=["Users"])

AdminUser = Annotated[User, Depends(require_role(UserRole.ADMIN))]


@router.get(
    "",
    response_model=DataResponse[List[UserResponse]],
    summary="List users",
    description="Every account, newest first. Requires Admin role.",
    responses={
        401: {"description": "Not authenticated"},
        403: {"description": "Insufficient permissions"},
    },
)
async def list_users(
    current_user: AdminUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    role: UserRole | None = None,
):
    """List all users (Admin only)."""
    users = await get_users(db, role=role)
    return DataResponse(data=[UserResponse.model_validate(u) for u in users])


@router.patch(
    "/{user_id}",
    response_model=DataResponse[UserResponse],
    summary="Update a user",
    description="Change a user's name, email, role or password. Requires Admin role.",
    responses={
        400: {"description": "Invalid data, nothing to change, or built-in admin demotion"},
        401: {"description": "Not authenticated"},
        403: {"description": "Insufficient permissions"},
        404: {"description": "User not found"},
        409: {"description": "Email already used by another user"},
    },
)
async def update_user_endpoint(
    user_id: int,
    data: AdminUserUpdate,
    current_user: AdminUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Update a user (Admin only)."""
    try:
        user = await update_user(db, user_id, data.model_dump(exclude_unset=True), current_user.id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return DataResponse(data=UserResponse.model_validate(user))


@router.delete(
    "/{user_id}",
    response_model=SuccessResponse,
    summary="Delete a user",
    description="Delete a user account. The built-in admin cannot be deleted. Requires Admin role.",
    responses={
        400: {"description": "Cannot delete built-in admin"},
        401: {"description": "Not authenticated"},
        403: {"description": "Insufficient permissions"},
        404: {"description": "User not found"},
    },
)
async def delete_user_endpoint(
    user_id: int,
    current_user: AdminUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete a user (Admin only)."""
    try:
        await delete_user(db, user_id, current_user.id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return SuccessResponse()
