from datetime import datetime
from typing import Optional

from meetread.db.models import BorrowNotification, BorrowRequestStatus, NotificationType
from meetread.schemas.common import CamelModel


class NotificationBook(CamelModel):
    id: int
    title: str


class NotificationResponse(CamelModel):
    id: int
    type: NotificationType
    status: BorrowRequestStatus
    message: Optional[str]
    created_at: datetime
    book: NotificationBook

    @classmethod
    def from_notification(cls, notification: BorrowNotification) -> "NotificationResponse":
        request = notification.request
        return cls(
            id=notification.id,
            type=notification.type,
            status=request.status,
            message=notification.message,
            created_at=notification.created_at,
            book=NotificationBook(id=request.book.id, title=request.book.title),
        )
