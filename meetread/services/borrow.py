from datetime import datetime, timezone
from typing import Optional, List, Dict

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from meetread.core.exceptions import ConflictError, NotFoundError
from meetread.core.logging import get_logger
from meetread.core.whatsapp import build_whatsapp_url, compose_borrow_message, normalize_phone_number
from meetread.db.models import (
    Book,
    BookStatus,
    BorrowRequest,
    BorrowRequestStatus,
    NotificationType,
    User,
)
from meetread.services.notification import create_borrow_notification

logger = get_logger("services.borrow")

VALID_TRANSITIONS: Dict[BorrowRequestStatus, List[BorrowRequestStatus]] = {
    BorrowRequestStatus.PENDING: [
        BorrowRequestStatus.APPROVED,
        BorrowRequestStatus.REJECTED,
        BorrowRequestStatus.CANCELLED,
    ],
    BorrowRequestStatus.APPROVED: [BorrowRequestStatus.RETURNED],
}

SIBLING_CANCELLED_MESSAGE = "Permintaan dibatalkan karena buku sudah dipinjam."


def resolve_book_status(lendable: bool, available_copies: int) -> BookStatus:
    """Status of a book with no pending or approved request on it."""
    if not lendable:
        return BookStatus.UNAVAILABLE
    if available_copies > 0:
        return BookStatus.AVAILABLE
    return BookStatus.RESERVED


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _clean_message(message: Optional[str]) -> Optional[str]:
    if message is None:
        return None
    message = message.strip()
    return message or None


def _ensure_future(due_date: datetime, now: datetime) -> datetime:
    due_date = _as_aware(due_date)
    if due_date <= now:
        raise ValueError("Due date must be after the current time")
    return due_date


def _ensure_book_owner(borrow_request: BorrowRequest, actor: User) -> None:
    if borrow_request.book.owner_id != actor.id:
        logger.warning(
            f"Borrow request access denied: request={borrow_request.id} actor={actor.id}"
        )
        raise PermissionError("You do not have access to this request")


def _ensure_transition(
    borrow_request: BorrowRequest, new_status: BorrowRequestStatus, error: str
) -> None:
    allowed_next = VALID_TRANSITIONS.get(borrow_request.status, [])
    if new_status not in allowed_next:
        raise ValueError(error)


def _release_book(book: Book) -> None:
    book.status = resolve_book_status(book.lendable, book.available_copies)
    book.borrower_id = None
    book.due_date = None


def _transition_fields(transition: str, borrow_request: BorrowRequest, book: Book) -> dict:
    """Structured fields merged into the JSON log line of a lifecycle event."""
    return {
        "extra_data": {
            "transition": transition,
            "borrow_request_id": borrow_request.id,
            "book_id": book.id,
            "book_status": book.status.value,
        }
    }


async def _count_pending(db: AsyncSession, book_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(BorrowRequest)
        .where(
            BorrowRequest.book_id == book_id,
            BorrowRequest.status == BorrowRequestStatus.PENDING,
        )
    )
    return result.scalar()


async def get_borrow_request_by_id(db: AsyncSession, request_id: int) -> Optional[BorrowRequest]:
    """Get a single borrow request by ID."""
    result = await db.execute(
        select(BorrowRequest)
        .where(BorrowRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _require_request(db: AsyncSession, request_id: int) -> BorrowRequest:
    borrow_request = await get_borrow_request_by_id(db, request_id)
    if not borrow_request:
        raise NotFoundError("Borrow request not found")
    return borrow_request


async def create_borrow_request(
    db: AsyncSession,
    requester: User,
    book_id: int,
    message: Optional[str] = None,
) -> BorrowRequest:
    """Open a PENDING request on an available book and mark the book PENDING.

    The returned request carries the WhatsApp link the requester uses to
    contact the owner.
    """
    result = await db.execute(
        select(Book).where(Book.id == book_id).execution_options(populate_existing=True)
    )
    book = result.scalar_one_or_none()
    if not book:
        raise NotFoundError("Book not found")

    owner = book.owner
    if book.owner_id is None or owner is None:
        raise ValueError("This book has no owner yet, contact the admin to borrow it")
    if book.owner_id == requester.id:
        raise ValueError("You cannot borrow your own book")
    if not owner.phone_number:
        raise ValueError("The owner has not added a WhatsApp number, please choose another book")

    if book.status != BookStatus.AVAILABLE:
        raise ConflictError("This book is not available for borrowing")

    existing = await db.execute(
        select(BorrowRequest.id).where(
            BorrowRequest.book_id == book.id,
            BorrowRequest.requester_id == requester.id,
            BorrowRequest.status == BorrowRequestStatus.PENDING,
        ).limit(1)
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("You have already sent a borrow request for this book")

    phone = normalize_phone_number(owner.phone_number)
    if not phone:
        raise ValueError("The owner's WhatsApp number is invalid")

    message = _clean_message(message)
    whatsapp_url = build_whatsapp_url(
        phone, compose_borrow_message(owner.name, requester.name, book.title, message)
    )

    borrow_request = BorrowRequest(
        book=book,
        requester=requester,
        status=BorrowRequestStatus.PENDING,
        message=message,
        whatsapp_url=whatsapp_url,
    )
    db.add(borrow_request)
    book.status = BookStatus.PENDING
    await db.flush()
    await db.refresh(borrow_request)

    logger.info(
        f"Borrow request created: id={borrow_request.id} book={book.id} "
        f"requester={requester.id} owner={owner.id}",
        extra=_transition_fields("created", borrow_request, book),
    )
    return borrow_request


async def approve_borrow_request(
    db: AsyncSession,
    owner: User,
    request_id: int,
    due_date: datetime,
    message: Optional[str] = None,
) -> BorrowRequest:
    """Lend the book to the requester and cancel every competing pending request."""
    now = datetime.now(timezone.utc)
    due_date = _ensure_future(due_date, now)

    borrow_request = await _require_request(db, request_id)
    _ensure_book_owner(borrow_request, owner)
    _ensure_transition(
        borrow_request, BorrowRequestStatus.APPROVED, "This request has already been processed"
    )

    message = _clean_message(message)
    book = borrow_request.book

    borrow_request.status = BorrowRequestStatus.APPROVED
    borrow_request.owner_decision_at = now
    borrow_request.owner_message = message

    book.status = BookStatus.BORROWED
    book.borrower_id = borrow_request.requester_id
    book.due_date = due_date
    book.available_copies = max(0, book.available_copies - 1)

    # The book tracks a single borrower, so the other pending requests cannot be served
    result = await db.execute(
        select(BorrowRequest).where(
            BorrowRequest.book_id == book.id,
            BorrowRequest.id != borrow_request.id,
            BorrowRequest.status == BorrowRequestStatus.PENDING,
        )
    )
    siblings = list(result.scalars().all())
    for sibling in siblings:
        sibling.status = BorrowRequestStatus.CANCELLED
        sibling.owner_decision_at = now
        sibling.owner_message = SIBLING_CANCELLED_MESSAGE

    await db.flush()

    await create_borrow_notification(
        db, borrow_request.id, NotificationType.APPROVED, message
    )
    for sibling in siblings:
        await create_borrow_notification(
            db, sibling.id, NotificationType.CANCELLED, SIBLING_CANCELLED_MESSAGE
        )

    logger.info(
        f"Borrow request approved: id={borrow_request.id} book={book.id} "
        f"borrower={borrow_request.requester_id} due={due_date.isoformat()} "
        f"cancelled={[s.id for s in siblings]} by owner={owner.id}",
        extra=_transition_fields("approved", borrow_request, book),
    )
    return borrow_request


async def reject_borrow_request(
    db: AsyncSession,
    owner: User,
    request_id: int,
    message: Optional[str] = None,
) -> BorrowRequest:
    """Turn down a pending request; frees the book once nothing else is pending."""
    borrow_request = await _require_request(db, request_id)
    _ensure_book_owner(borrow_request, owner)
    _ensure_transition(
        borrow_request, BorrowRequestStatus.REJECTED, "This request has already been processed"
    )

    message = _clean_message(message)
    book = borrow_request.book

    borrow_request.status = BorrowRequestStatus.REJECTED
    borrow_request.owner_decision_at = datetime.now(timezone.utc)
    borrow_request.owner_message = message
    await db.flush()

    if await _count_pending(db, book.id) == 0:
        _release_book(book)
        await db.flush()

    await create_borrow_notification(
        db, borrow_request.id, NotificationType.REJECTED, message
    )

    logger.info(
        f"Borrow request rejected: id={borrow_request.id} book={book.id} "
        f"book_status={book.status.value} by owner={owner.id}",
        extra=_transition_fields("rejected", borrow_request, book),
    )
    return borrow_request


async def complete_borrow_request(
    db: AsyncSession,
    owner: User,
    request_id: int,
    message: Optional[str] = None,
) -> BorrowRequest:
    """Record the return of a lent book and put its copy back on the shelf."""
    borrow_request = await _require_request(db, request_id)
    _ensure_book_owner(borrow_request, owner)
    _ensure_transition(
        borrow_request, BorrowRequestStatus.RETURNED, "This request is not currently on loan"
    )

    message = _clean_message(message)
    book = borrow_request.book

    borrow_request.status = BorrowRequestStatus.RETURNED
    borrow_request.owner_decision_at = datetime.now(timezone.utc)
    borrow_request.owner_message = message

    book.available_copies = min(book.total_copies, book.available_copies + 1)
    _release_book(book)
    await db.flush()

    await create_borrow_notification(
        db, borrow_request.id, NotificationType.RETURNED, message
    )

    logger.info(
        f"Borrow request completed: id={borrow_request.id} book={book.id} "
        f"available={book.available_copies}/{book.total_copies} by owner={owner.id}",
        extra=_transition_fields("returned", borrow_request, book),
    )
    return borrow_request


async def extend_borrow_request(
    db: AsyncSession,
    owner: User,
    request_id: int,
    due_date: datetime,
    message: Optional[str] = None,
) -> BorrowRequest:
    """Move the due date of an ongoing loan. The request status is unchanged."""
    now = datetime.now(timezone.utc)
    due_date = _ensure_future(due_date, now)

    borrow_request = await _require_request(db, request_id)
    _ensure_book_owner(borrow_request, owner)
    if borrow_request.status != BorrowRequestStatus.APPROVED:
        raise ValueError("The due date can only be extended while the book is on loan")

    message = _clean_message(message)
    book = borrow_request.book

    book.due_date = due_date
    borrow_request.owner_decision_at = now
    if message is not None:
        borrow_request.owner_message = message
    await db.flush()

    await create_borrow_notification(
        db, borrow_request.id, NotificationType.EXTENDED, message
    )

    logger.info(
        f"Borrow request extended: id={borrow_request.id} book={book.id} "
        f"due={due_date.isoformat()} by owner={owner.id}",
        extra=_transition_fields("extended", borrow_request, book),
    )
    return borrow_request


async def cancel_borrow_request(
    db: AsyncSession,
    requester: User,
    request_id: int,
) -> BorrowRequest:
    """Withdraw one's own pending request."""
    borrow_request = await _require_request(db, request_id)
    if borrow_request.requester_id != requester.id:
        raise PermissionError("You can only cancel your own requests")
    _ensure_transition(
        borrow_request, BorrowRequestStatus.CANCELLED, "Only pending requests can be cancelled"
    )

    book = borrow_request.book
    borrow_request.status = BorrowRequestStatus.CANCELLED
    await db.flush()

    if await _count_pending(db, book.id) == 0:
        _release_book(book)
        await db.flush()

    logger.info(
        f"Borrow request cancelled: id={borrow_request.id} book={book.id} "
        f"by requester={requester.id}",
        extra=_transition_fields("cancelled", borrow_request, book),
    )
    return borrow_request


async def release_requests_of(db: AsyncSession, requester_id: int) -> int:
    """Close a requester's open requests and free the books they hold.

    Used before the account is removed, since its requests go with it.
    Returns the number of requests closed.
    """
    result = await db.execute(
        select(BorrowRequest)
        .where(
            BorrowRequest.requester_id == requester_id,
            BorrowRequest.status.in_(
                [BorrowRequestStatus.PENDING, BorrowRequestStatus.APPROVED]
            ),
        )
        .execution_options(populate_existing=True)
    )
    open_requests = list(result.scalars().all())

    for borrow_request in open_requests:
        book = borrow_request.book
        if borrow_request.status == BorrowRequestStatus.APPROVED:
            book.available_copies = min(book.total_copies, book.available_copies + 1)
            _release_book(book)
        borrow_request.status = BorrowRequestStatus.CANCELLED
    await db.flush()

    for borrow_request in open_requests:
        book = borrow_request.book
        if book.status == BookStatus.PENDING and await _count_pending(db, book.id) == 0:
            _release_book(book)
    await db.flush()

    if open_requests:
        logger.info(
            f"Borrow requests released: requester={requester_id} "
            f"requests={[r.id for r in open_requests]}"
        )
    return len(open_requests)


async def get_requests_by_requester(
    db: AsyncSession, requester_id: int, limit: Optional[int] = None
) -> List[BorrowRequest]:
    """Requests made by a user, newest first."""
    query = (
        select(BorrowRequest)
        .where(BorrowRequest.requester_id == requester_id)
        .order_by(BorrowRequest.created_at.desc(), BorrowRequest.id.desc())
    )
    if limit:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_requests_for_owner(
    db: AsyncSession,
    owner_id: int,
    status: Optional[BorrowRequestStatus] = None,
) -> List[BorrowRequest]:
    """Requests made on books owned by `owner_id`, newest first."""
    query = (
        select(BorrowRequest)
        .join(Book, BorrowRequest.book_id == Book.id)
        .where(Book.owner_id == owner_id)
    )
    if status:
        query = query.where(BorrowRequest.status == status)
    query = query.order_by(BorrowRequest.created_at.desc(), BorrowRequest.id.desc())

    result = await db.execute(query)
    return list(result.scalars().all())
