from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from meetread.core.exceptions import ConflictError, NotFoundError
from meetread.db.session import get_db
from meetread.db.models import User
from meetread.api.v1.dependencies import get_current_user
from meetread.schemas.book import BookResponse, CollectionBookInput
from meetread.schemas.common import DataResponse, SuccessResponse
from meetread.services.book import (
    create_collection_book,
    delete_collection_book,
    get_collection,
    update_collection_book,
)

router = APIRouter(prefix="/collections", tags=["Collections"])

_OWN_BOOK_RESPONSES = {
    400: {"description": "Invalid data"},
    401: {"description": "Not authenticated"},
    404: {"description": "Book not found in your collection"},
    409: {"description": "ISBN already registered"},
}


@router.get(
    "",
    response_model=DataResponse[List[BookResponse]],
    summary="My collection",
    description="Books owned by the current user, newest first.",
    responses={401: {"description": "Not authenticated"}},
)
async def list_collection(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    books = await get_collection(db, current_user.id)
    return DataResponse(data=[BookResponse.model_validate(b) for b in books])


@router.post(
    "",
    response_model=DataResponse[BookResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Add a book to my collection",
    description=(
        "Register a personally owned book other users can request to borrow. "
        "Status defaults to UNAVAILABLE when not lendable, otherwise AVAILABLE or RESERVED "
        "depending on available copies."
    ),
    responses={
        400: {"description": "Invalid data"},
        401: {"description": "Not authenticated"},
        409: {"description": "ISBN already registered"},
    },
)
async def create_collection_endpoint(
    data: CollectionBookInput,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        book = await create_collection_book(db, current_user.id, data.to_record())
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return DataResponse(data=BookResponse.model_validate(book))


@router.put(
    "/{book_id}",
    response_model=DataResponse[BookResponse],
    summary="Update a book in my collection",
    description="A pending or borrowed book keeps its status unless one is given explicitly.",
    responses=_OWN_BOOK_RESPONSES,
)
async def update_collection_endpoint(
    book_id: int,
    data: CollectionBookInput,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        book = await update_collection_book(db, current_user.id, book_id, data.to_record())
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
    summary="Remove a book from my collection",
    responses={
        401: {"description": "Not authenticated"},
        404: {"description": "Book not found in your collection"},
    },
)
async def delete_collection_endpoint(
    book_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        await delete_collection_book(db, current_user.id, book_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return SuccessResponse()
