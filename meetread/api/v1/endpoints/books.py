from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from meetread.core.exceptions import ConflictError, NotFoundError
from meetread.db.session import get_db
from meetread.db.models import User, UserRole
from meetread.api.v1.dependencies import require_role
from meetread.schemas.book import BookInput, BookResponse, BookListResponse
from meetread.schemas.common import DataResponse, SuccessResponse
from meetread.services.book import (
    create_book,
    get_books,
    get_book_by_id,
    update_book,
    delete_book,
    calculate_pages,
)

router = APIRouter(prefix="/books", tags=["Books"])

AdminOnly = Annotated[User, Depends(require_role(UserRole.ADMIN))]


@router.get(
    "",
    response_model=BookListResponse,
    summary="Browse books",
    description=(
        "Paginated list of every book, catalog and personal collections alike, "
        "with optional filters for category, author, availability and free-text search."
    ),
    responses={200: {"description": "Paginated list of books"}},
)
async def list_books(
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    category: str | None = None,
    author: str | None = None,
    available: bool | None = None,
    search: str | None = None,
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
):
    """List books (public)."""
    books, total = await get_books(
        db, page=page, size=size, category=category,
        author=author, available=available, search=search,
        sort_by=sort_by, sort_order=sort_order,
    )
    return BookListResponse(
        items=[BookResponse.model_validate(b) for b in books],
        total=total,
        page=page,
        size=size,
        pages=calculate_pages(total, size),
    )


@router.get(
    "/{book_id}",
    response_model=DataResponse[BookResponse],
    summary="Get book details",
    responses={404: {"description": "Book not found"}},
)
async def get_book_endpoint(
    book_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    book = await get_book_by_id(db, book_id)
    if not book:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return DataResponse(data=BookResponse.model_validate(book))


@router.post(
    "",
    response_model=DataResponse[BookResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Add a catalog book",
    description="Add a book owned by the library itself. Requires Admin role.",
    responses={
        400: {"description": "Invalid data"},
        401: {"description": "Not authenticated"},
        403: {"description": "Insufficient permissions"},
        409: {"description": "ISBN already registered"},
    },
)
async def create_book_endpoint(
    data: BookInput,
    current_user: AdminOnly,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        book = await create_book(db, data.to_record(), current_user.id)
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return DataResponse(data=BookResponse.model_validate(book))


@router.put(
    "/{book_id}",
    response_model=DataResponse[BookResponse],
    summary="Update a catalog book",
    description=(
        "Replace a book's details. A book that is pending or borrowed keeps its status. "
        "Requires Admin role."
    ),
    responses={
        400: {"description": "Invalid data"},
        401: {"description": "Not authenticated"},
        403: {"description": "Insufficient permissions"},
        404: {"description": "Book not found"},
        409: {"description": "ISBN already registered"},
    },
)
async def update_book_endpoint(
    book_id: int,
    data: BookInput,
    current_user: AdminOnly,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        book = await update_book(db, book_id, data.to_record(), current_user.id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return DataResponse(data=BookResponse.model_validate(book))


@router.delete(
    "/{book_id}",
    response_model=SuccessResponse,
    summary="Delete a book",
    description="Delete a book and its borrow history. Requires Admin role.",
    responses={
        401: {"description": "Not authenticated"},
        403: {"description": "Insufficient permissions"},
        404: {"description": "Book not found"},
    },
)
async def delete_book_endpoint(
    book_id: int,
    current_user: AdminOnly,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        await delete_book(db, book_id, current_user.id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return SuccessResponse()
