from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from meetread.core.exceptions import ConflictError
from meetread.db.session import get_db
from meetread.db.models import User
from meetread.api.v1.dependencies import get_current_user
from meetread.api.v1.endpoints.auth import set_session_cookie
from meetread.schemas.common import DataResponse, MessageResponse
from meetread.schemas.user import PasswordChange, ProfileResponse, ProfileUpdate
from meetread.services.auth import create_user_session
from meetread.services.user import change_password, update_profile

router = APIRouter(prefix="/profile", tags=["Profile"])


@router.put(
    "",
    response_model=DataResponse[ProfileResponse],
    summary="Update my profile",
    description=(
        "Change name, email, phone number or profile image. An empty phone number or "
        "image clears it. The session cookie is reissued with the new details."
    ),
    responses={
        400: {"description": "Invalid data or nothing to change"},
        401: {"description": "Not authenticated"},
        409: {"description": "Email already used by another user"},
    },
)
async def update_profile_endpoint(
    data: ProfileUpdate,
    response: Response,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        user = await update_profile(db, current_user, data.model_dump(exclude_unset=True))
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    token, expires = create_user_session(user)
    set_session_cookie(response, token, expires)
    return DataResponse(data=ProfileResponse.model_validate(user))


@router.put(
    "/password",
    response_model=MessageResponse,
    summary="Change my password",
    responses={
        400: {"description": "Invalid data or wrong current password"},
        401: {"description": "Not authenticated"},
    },
)
async def change_password_endpoint(
    data: PasswordChange,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        await change_password(db, current_user, data.current_password, data.new_password)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return MessageResponse(message="Password updated")
