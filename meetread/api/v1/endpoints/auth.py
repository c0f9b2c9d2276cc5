from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from meetread.core.config import settings
from meetread.core.exceptions import ConflictError
from meetread.db.session import get_db
from meetread.api.v1.dependencies import get_optional_user
from meetread.db.models import User
from meetread.schemas.auth import (
    AdminLoginRequest,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    SessionResponse,
    SessionUser,
)
from meetread.schemas.common import MessageResponse, SuccessResponse
from meetread.services.auth import (
    authenticate_admin,
    authenticate_user,
    create_user_session,
    register_user,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def set_session_cookie(response: Response, token: str, expires: datetime) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        expires=expires,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def _login_response(response: Response, user: User) -> LoginResponse:
    token, expires = create_user_session(user)
    set_session_cookie(response, token, expires)
    return LoginResponse(user=SessionUser.model_validate(user), access_token=token)


@router.post(
    "/register",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
    description="Create a member account. The phone number is the owner's WhatsApp contact.",
    responses={
        400: {"description": "Invalid data"},
        409: {"description": "Email already registered"},
    },
)
async def register(
    data: RegisterRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        await register_user(db, data.name, data.email, data.password, data.phone_number)
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return MessageResponse(message="Registration successful")


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Login",
    description="Authenticate with email and password. Sets the session cookie and returns the token.",
    responses={
        400: {"description": "Invalid data"},
        401: {"description": "Invalid email or password"},
    },
)
async def login(
    data: LoginRequest,
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    user = await authenticate_user(db, data.email, data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _login_response(response, user)


@router.post(
    "/admin/login",
    response_model=LoginResponse,
    summary="Admin login",
    description="Like `/auth/login`, but only accounts with the ADMIN role may sign in.",
    responses={
        400: {"description": "Invalid data"},
        401: {"description": "Wrong password"},
        403: {"description": "Account is not an admin"},
    },
)
async def admin_login(
    data: AdminLoginRequest,
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        user = await authenticate_admin(db, data.email, data.password)
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _login_response(response, user)


@router.post(
    "/logout",
    response_model=SuccessResponse,
    summary="Logout",
    description="Clear the session cookie.",
)
async def logout(response: Response):
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )
    return SuccessResponse()


@router.get(
    "/session",
    response_model=SessionResponse,
    summary="Current session",
    description="The signed-in user, or `null` when there is no valid session.",
)
async def session(
    user: Annotated[Optional[User], Depends(get_optional_user)],
):
    return SessionResponse(user=SessionUser.model_validate(user) if user else None)
