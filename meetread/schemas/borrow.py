from datetime import datetime
from typing import Optional

from pydantic import Field

from meetread.db.models import BookStatus, BorrowRequest, BorrowRequestStatus
from meetread.schemas.common import CamelModel, OptionalMessage


class BorrowRequestCreate(CamelModel):
    book_id: int = Field(..., ge=1)
    message: OptionalMessage = None


class BorrowDecision(CamelModel):
    message: OptionalMessage = None


class BorrowDueDate(CamelModel):
    due_date: datetime
    message: OptionalMessage = None


class WhatsappLinkResponse(CamelModel):
    whatsapp_url: str


class BorrowStatusResponse(CamelModel):
    id: int
    status: BorrowRequestStatus


class BorrowApprovedResponse(CamelModel):
    id: int
    status: BorrowRequestStatus
    due_date: datetime


class BorrowExtendedResponse(CamelModel):
    id: int
    due_date: datetime


class BorrowBookSummary(CamelModel):
    id: int
    title: str
    cover_image_url: Optional[str]
    status: BookStatus
    due_date: Optional[datetime]
    owner_name: str


class BorrowRequesterSummary(CamelModel):
    id: int
    name: str
    phone_number: Optional[str]


class BorrowRequestResponse(CamelModel):
    id: int
    status: BorrowRequestStatus
    message: Optional[str]
    owner_message: Optional[str]
    owner_decision_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    whatsapp_url: Optional[str]
    book: BorrowBookSummary

    @classmethod
    def from_request(cls, borrow_request: BorrowRequest) -> "BorrowRequestResponse":
        book = borrow_request.book
        return cls(
            id=borrow_request.id,
            status=borrow_request.status,
            message=borrow_request.message,
            owner_message=borrow_request.owner_message,
            owner_decision_at=borrow_request.owner_decision_at,
            created_at=borrow_request.created_at,
            updated_at=borrow_request.updated_at,
            whatsapp_url=borrow_request.whatsapp_url,
            book=BorrowBookSummary(
                id=book.id,
                title=book.title,
                cover_image_url=book.cover_image_url,
                status=book.status,
                due_date=book.due_date,
                owner_name=book.owner.name if book.owner else "Pemilik",
            ),
        )


class IncomingBorrowRequestResponse(BorrowRequestResponse):
    requester: BorrowRequesterSummary

    @classmethod
    def from_request(cls, borrow_request: BorrowRequest) -> "IncomingBorrowRequestResponse":
        base = BorrowRequestResponse.from_request(borrow_request)
        requester = borrow_request.requester
        return cls(
            **base.model_dump(),
            requester=BorrowRequesterSummary(
                id=requester.id, name=requester.name, phone_number=requester.phone_number
            ),
        )
