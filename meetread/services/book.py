import math
from typing import Optional, List, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from meetread.core.exceptions import ConflictError, NotFoundError
from meetread.core.logging import get_logger
from meetread.db.models import Book, BookSource, BookStatus
from meetread.services.borrow import resolve_book_status

logger = get_logger("services.book")

# Statuses driven by the borrow lifecycle; edits to the record must not reset them
LIFECYCLE_STATUSES = {BookStatus.BORROWED, BookStatus.PENDING}

SORTABLE_COLUMNS = {"created_at", "title", "author", "published_year", "available_copies"}


def _check_copies(total_copies: int, available_copies: int) -> None:
    if available_copies > total_copies:
        raise ValueError("Available copies cannot exceed total copies")


async def _ensure_isbn_free(db: AsyncSession, isbn: Optional[str], book_id: Optional[int] = None) -> None:
    if not isbn:
        return
    query = select(Book.id).where(Book.isbn == isbn)
    if book_id is not None:
        query = query.where(Book.id != book_id)
    result = await db.execute(query.limit(1))
    if result.scalar_one_or_none() is not None:
        raise ConflictError("ISBN is already registered, use another ISBN")


async def _flush_unique(db: AsyncSession) -> None:
    try:
        await db.flush()
    except IntegrityError as e:
        raise ConflictError("ISBN is already registered, use another ISBN") from e


async def create_book(db: AsyncSession, data: dict, actor_id: int) -> Book:
    """Add a catalog book (no owner)."""
    if data.get("available_copies") is None:
        data["available_copies"] = data["total_copies"]
    _check_copies(data["total_copies"], data["available_copies"])
    await _ensure_isbn_free(db, data.get("isbn"))

    book = Book(
        **data,
        owner_id=None,
        source=BookSource.CATALOG,
        status=BookStatus.AVAILABLE if data["available_copies"] > 0 else BookStatus.RESERVED,
    )
    db.add(book)
    await _flush_unique(db)
    await db.refresh(book)

    logger.info(f"Book created: id={book.id} title='{book.title}' by actor={actor_id}")
    return book


async def get_books(
    db: AsyncSession,
    page: int = 1,
    size: int = 20,
    category: Optional[str] = None,
    author: Optional[str] = None,
    available: Optional[bool] = None,
    search: Optional[str] = None,
    owner_id: Optional[int] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Tuple[List[Book], int]:
    """List books with filtering, sorting, and pagination."""
    filters = []
    if category:
        filters.append(Book.category.ilike(f"%{category}%"))
    if author:
        filters.append(Book.author.ilike(f"%{author}%"))
    if available is True:
        filters.append(Book.status == BookStatus.AVAILABLE)
    if owner_id is not None:
        filters.append(Book.owner_id == owner_id)
    if search:
        filters.append(
            Book.title.ilike(f"%{search}%")
            | Book.author.ilike(f"%{search}%")
            | Book.isbn.ilike(f"%{search}%")
            | Book.category.ilike(f"%{search}%")
        )

    query = select(Book).where(*filters)
    count_query = select(func.count()).select_from(Book).where(*filters)

    sort_column = getattr(Book, sort_by if sort_by in SORTABLE_COLUMNS else "created_at")
    if sort_order == "asc":
        query = query.order_by(sort_column.asc(), Book.id.asc())
    else:
        query = query.order_by(sort_column.desc(), Book.id.desc())

    offset = (page - 1) * size
    query = query.offset(offset).limit(size)

    result = await db.execute(query)
    books = list(result.scalars().all())

    total_result = await db.execute(count_query)
    total = total_result.scalar()

    return books, total


async def get_book_by_id(db: AsyncSession, book_id: int) -> Optional[Book]:
    """Get a single book by ID."""
    result = await db.execute(select(Book).where(Book.id == book_id))
    return result.scalar_one_or_none()


async def update_book(db: AsyncSession, book_id: int, data: dict, actor_id: int) -> Book:
    """Replace the catalog fields of a book; lifecycle statuses survive the edit."""
    book = await get_book_by_id(db, book_id)
    if not book:
        raise NotFoundError("Book not found")

    if data.get("available_copies") is None:
        data["available_copies"] = data["total_copies"]
    _check_copies(data["total_copies"], data["available_copies"])
    await _ensure_isbn_free(db, data.get("isbn"), book_id=book.id)

    for key, value in data.items():
        setattr(book, key, value)

    if book.status not in LIFECYCLE_STATUSES:
        book.status = BookStatus.AVAILABLE if book.available_copies > 0 else BookStatus.RESERVED

    await _flush_unique(db)
    await db.refresh(book)

    logger.info(f"Book updated: id={book_id} status={book.status.value} by actor={actor_id}")
    return book


async def delete_book(db: AsyncSession, book_id: int, actor_id: int) -> None:
    """Delete a book along with its borrow history."""
    book = await get_book_by_id(db, book_id)
    if not book:
        raise NotFoundError("Book not found")

    await db.delete(book)
    await db.flush()

    logger.info(f"Book deleted: id={book_id} by actor={actor_id}")


# ─── Collections: books owned by a regular user ─────────────────


def _collection_status(
    requested: Optional[BookStatus],
    lendable: bool,
    available_copies: int,
    current: Optional[BookStatus] = None,
) -> BookStatus:
    if requested is not None:
        return requested
    if not lendable:
        return BookStatus.UNAVAILABLE
    if current in LIFECYCLE_STATUSES:
        return current
    return resolve_book_status(lendable, available_copies)


async def get_collection(db: AsyncSession, owner_id: int) -> List[Book]:
    """All books owned by `owner_id`, newest first."""
    result = await db.execute(
        select(Book).where(Book.owner_id == owner_id).order_by(Book.created_at.desc(), Book.id.desc())
    )
    return list(result.scalars().all())


async def create_collection_book(db: AsyncSession, owner_id: int, data: dict) -> Book:
    """Register a book in the caller's personal collection."""
    _check_copies(data["total_copies"], data["available_copies"])
    await _ensure_isbn_free(db, data.get("isbn"))

    requested_status = data.pop("status", None)
    book = Book(
        **data,
        owner_id=owner_id,
        source=BookSource.USER,
        status=_collection_status(requested_status, data["lendable"], data["available_copies"]),
    )
    db.add(book)
    await _flush_unique(db)
    await db.refresh(book)

    logger.info(f"Collection book created: id={book.id} owner={owner_id} status={book.status.value}")
    return book


async def _get_owned_book(db: AsyncSession, owner_id: int, book_id: int) -> Book:
    result = await db.execute(
        select(Book).where(Book.id == book_id, Book.owner_id == owner_id)
    )
    book = result.scalar_one_or_none()
    if not book:
        raise NotFoundError("Collection book not found")
    return book


async def update_collection_book(db: AsyncSession, owner_id: int, book_id: int, data: dict) -> Book:
    """Edit one of the caller's own books."""
    book = await _get_owned_book(db, owner_id, book_id)
    _check_copies(data["total_copies"], data["available_copies"])
    await _ensure_isbn_free(db, data.get("isbn"), book_id=book.id)

    requested_status = data.pop("status", None)
    next_status = _collection_status(
        requested_status, data["lendable"], data["available_copies"], current=book.status
    )
    for key, value in data.items():
        setattr(book, key, value)
    book.source = BookSource.USER
    book.status = next_status

    await _flush_unique(db)
    await db.refresh(book)

    logger.info(f"Collection book updated: id={book_id} owner={owner_id} status={book.status.value}")
    return book


async def delete_collection_book(db: AsyncSession, owner_id: int, book_id: int) -> None:
    """Remove one of the caller's own books."""
    book = await _get_owned_book(db, owner_id, book_id)
    await db.delete(book)
    await db.flush()

    logger.info(f"Collection book deleted: id={book_id} owner={owner_id}")


def calculate_pages(total: int, size: int) -> int:
    return math.ceil(total / size) if size > 0 else 0
