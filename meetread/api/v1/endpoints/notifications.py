from typing import Annotated, List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from meetread.db.session import get_db
from meetread.db.models import User
from meetread.api.v1.dependencies import get_current_user
from meetread.schemas.common import DataResponse
from meetread.schemas.notification import NotificationResponse
from meetread.services.notification import get_notifications_for_user

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get(
    "",
    response_model=DataResponse[List[NotificationResponse]],
    summary="My notifications",
    description="Latest approval, rejection, cancellation, extension and return events on my requests.",
    responses={401: {"description": "Not authenticated"}},
)
async def list_notifications(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    notifications = await get_notifications_for_user(db, current_user.id)
    return DataResponse(data=[NotificationResponse.from_notification(n) for n in notifications])
