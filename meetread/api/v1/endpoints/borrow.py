from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from meetread.core.exceptions import ConflictError, NotFoundError
from meetread.db.session import get_db
from meetread.db.models import BorrowRequestStatus, User
from meetread.api.v1.dependencies import get_current_user
from meetread.schemas.borrow import (
    BorrowApprovedResponse,
    BorrowDecision,
    BorrowDueDate,
    BorrowExtendedResponse,
    BorrowRequestCreate,
    BorrowRequestResponse,
    BorrowStatusResponse,
    IncomingBorrowRequestResponse,
    WhatsappLinkResponse,
)
from meetread.schemas.common import DataResponse
from meetread.services.borrow import (
    approve_borrow_request,
    cancel_borrow_request,
    complete_borrow_request,
    create_borrow_request,
    extend_borrow_request,
    get_requests_by_requester,
    get_requests_for_owner,
    reject_borrow_request,
)

router = APIRouter(prefix="/borrow", tags=["Borrowing"])

_TRANSITION_RESPONSES = {
    400: {"description": "Request is not in a state that allows this action"},
    401: {"description": "Not authenticated"},
    403: {"description": "Caller does not own the book"},
    404: {"description": "Borrow request not found"},
}


@router.post(
    "/request",
    response_model=DataResponse[WhatsappLinkResponse],
    summary="Request to borrow a book",
    description=(
        "Open a pending borrow request on an available book owned by another user. "
        "Returns a WhatsApp link prefilled with a message to the owner."
    ),
    responses={
        400: {"description": "Book has no owner, owner has no phone number, or own book"},
        401: {"description": "Not authenticated"},
        404: {"description": "Book not found"},
        409: {"description": "Book not available or request already pending"},
    },
)
async def create_request_endpoint(
    data: BorrowRequestCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        borrow_request = await create_borrow_request(
            db, requester=current_user, book_id=data.book_id, message=data.message
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return DataResponse(data=WhatsappLinkResponse(whatsapp_url=borrow_request.whatsapp_url))


@router.get(
    "/requests/me",
    response_model=DataResponse[List[BorrowRequestResponse]],
    summary="My borrow requests",
    description="Requests made by the current user, newest first.",
    responses={401: {"description": "Not authenticated"}},
)
async def my_requests_endpoint(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: int | None = Query(None, ge=1, le=100),
):
    requests = await get_requests_by_requester(db, current_user.id, limit=limit)
    return DataResponse(data=[BorrowRequestResponse.from_request(r) for r in requests])


@router.get(
    "/requests/incoming",
    response_model=DataResponse[List[IncomingBorrowRequestResponse]],
    summary="Requests on my books",
    description="Borrow requests made on books owned by the current user, optionally filtered by status.",
    responses={401: {"description": "Not authenticated"}},
)
async def incoming_requests_endpoint(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    request_status: BorrowRequestStatus | None = Query(None, alias="status"),
):
    requests = await get_requests_for_owner(db, current_user.id, status=request_status)
    return DataResponse(data=[IncomingBorrowRequestResponse.from_request(r) for r in requests])


@router.post(
    "/requests/{request_id}/approve",
    response_model=DataResponse[BorrowApprovedResponse],
    summary="Approve a borrow request",
    description=(
        "Owner lends the book until `dueDate`. Every other pending request on the "
        "same book is cancelled."
    ),
    responses=_TRANSITION_RESPONSES,
)
async def approve_request_endpoint(
    request_id: int,
    data: BorrowDueDate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        borrow_request = await approve_borrow_request(
            db, owner=current_user, request_id=request_id,
            due_date=data.due_date, message=data.message,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return DataResponse(
        data=BorrowApprovedResponse(
            id=borrow_request.id,
            status=borrow_request.status,
            due_date=borrow_request.book.due_date,
        )
    )


@router.post(
    "/requests/{request_id}/reject",
    response_model=DataResponse[BorrowStatusResponse],
    summary="Reject a borrow request",
    description="Owner turns down a pending request.",
    responses=_TRANSITION_RESPONSES,
)
async def reject_request_endpoint(
    request_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    data: BorrowDecision | None = None,
):
    try:
        borrow_request = await reject_borrow_request(
            db, owner=current_user, request_id=request_id,
            message=data.message if data else None,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return DataResponse(data=BorrowStatusResponse(id=borrow_request.id, status=borrow_request.status))


@router.post(
    "/requests/{request_id}/complete",
    response_model=DataResponse[BorrowStatusResponse],
    summary="Mark a book as returned",
    description="Owner confirms the borrower returned the book; the copy becomes available again.",
    responses=_TRANSITION_RESPONSES,
)
async def complete_request_endpoint(
    request_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    data: BorrowDecision | None = None,
):
    try:
        borrow_request = await complete_borrow_request(
            db, owner=current_user, request_id=request_id,
            message=data.message if data else None,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return DataResponse(data=BorrowStatusResponse(id=borrow_request.id, status=borrow_request.status))


@router.post(
    "/requests/{request_id}/extend",
    response_model=DataResponse[BorrowExtendedResponse],
    summary="Extend the due date",
    description="Owner moves the due date of an ongoing loan to a later date.",
    responses=_TRANSITION_RESPONSES,
)
async def extend_request_endpoint(
    request_id: int,
    data: BorrowDueDate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        borrow_request = await extend_borrow_request(
            db, owner=current_user, request_id=request_id,
            due_date=data.due_date, message=data.message,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return DataResponse(
        data=BorrowExtendedResponse(id=borrow_request.id, due_date=borrow_request.book.due_date)
    )


@router.post(
    "/requests/{request_id}/cancel",
    response_model=DataResponse[BorrowStatusResponse],
    summary="Cancel my borrow request",
    description="Requester withdraws a request that is still pending.",
    responses={
        400: {"description": "Request is no longer pending"},
        401: {"description": "Not authenticated"},
        403: {"description": "Request belongs to another user"},
        404: {"description": "Borrow request not found"},
    },
)
async def cancel_request_endpoint(
    request_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        borrow_request = await cancel_borrow_request(db, requester=current_user, request_id=request_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return DataResponse(data=BorrowStatusResponse(id=borrow_request.id, status=borrow_request.status))
