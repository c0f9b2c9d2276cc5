from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from meetread.core.config import settings
from meetread.core.logging import get_logger
from meetread.db.models import BorrowNotification, BorrowRequest, NotificationType

logger = get_logger("services.notification")


async def create_borrow_notification(
    db: AsyncSession,
    request_id: int,
    notification_type: NotificationType,
    message: Optional[str] = None,
) -> BorrowNotification:
    """Record a lifecycle event in the requester's inbox."""
    notification = BorrowNotification(
        request_id=request_id,
        type=notification_type,
        message=message,
    )
    db.add(notification)
    await db.flush()

    logger.info(
        f"Borrow notification created: request={request_id} type={notification_type.value}"
    )
    return notification


async def get_notifications_for_user(
    db: AsyncSession, user_id: int, limit: Optional[int] = None
) -> List[BorrowNotification]:
    """Most recent notifications on requests made by `user_id`."""
    result = await db.execute(
        select(BorrowNotification)
        .join(BorrowRequest, BorrowNotification.request_id == BorrowRequest.id)
        .where(BorrowRequest.requester_id == user_id)
        .order_by(BorrowNotification.created_at.desc(), BorrowNotification.id.desc())
        .limit(limit or settings.NOTIFICATION_FEED_LIMIT)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())
