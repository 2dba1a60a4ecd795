"""
API v1 routes - administrator endpoints.

Listing, approving and rejecting registration requests. Every endpoint
requires a bearer session; the approval gate turns non-administrators
away with 403. Conflict details are precise here because administrators
need to know who won a race.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.dependencies import get_approval_gate, get_current_actor
from src.api.models import (
    ApproveBody,
    DecisionResponse,
    ErrorResponse,
    RegistrationRequestList,
    RejectBody,
)
from src.domain.approval import ApprovalGate
from src.domain.exceptions import Forbidden, InvalidState, MissingReason, NotFound
from src.domain.models import Actor, RegistrationStatus

router = APIRouter(prefix="/admin/registration-requests", tags=["admin"])

_ADMIN_ERRORS = {
    401: {"model": ErrorResponse, "description": "Missing or invalid session"},
    403: {"model": ErrorResponse, "description": "Administrator role required"},
}


def _forbidden() -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator role required")


@router.get(
    "",
    response_model=RegistrationRequestList,
    responses=_ADMIN_ERRORS,
    summary="List registration requests",
)
def list_registration_requests(
    status_filter: RegistrationStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    gate: ApprovalGate = Depends(get_approval_gate),
) -> RegistrationRequestList:
    try:
        result = gate.list_requests(actor, status_filter, page, limit)
    except Forbidden:
        raise _forbidden() from None
    return RegistrationRequestList.from_page(result)


@router.post(
    "/{request_id}/approve",
    response_model=DecisionResponse,
    responses={
        **_ADMIN_ERRORS,
        404: {"model": ErrorResponse, "description": "Unknown request"},
        409: {"model": ErrorResponse, "description": "Request is not pending"},
    },
    summary="Approve a registration request",
)
def approve_registration_request(
    request_id: str,
    body: ApproveBody | None = None,
    actor: Actor = Depends(get_current_actor),
    gate: ApprovalGate = Depends(get_approval_gate),
) -> DecisionResponse:
    notes = body.notes if body is not None else None
    try:
        request = gate.approve(actor, request_id, notes)
    except Forbidden:
        raise _forbidden() from None
    except NotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Registration request not found"
        ) from None
    except InvalidState as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.describe()) from None
    return DecisionResponse(
        message="Registration request approved", request_id=request.id, status=request.status
    )


@router.post(
    "/{request_id}/reject",
    response_model=DecisionResponse,
    responses={
        **_ADMIN_ERRORS,
        404: {"model": ErrorResponse, "description": "Unknown request"},
        409: {"model": ErrorResponse, "description": "Request is not pending"},
    },
    summary="Reject a registration request",
)
def reject_registration_request(
    request_id: str,
    body: RejectBody,
    actor: Actor = Depends(get_current_actor),
    gate: ApprovalGate = Depends(get_approval_gate),
) -> DecisionResponse:
    try:
        request = gate.reject(actor, request_id, body.reason, body.notes)
    except Forbidden:
        raise _forbidden() from None
    except MissingReason:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="A rejection reason is required"
        ) from None
    except NotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Registration request not found"
        ) from None
    except InvalidState as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.describe()) from None
    return DecisionResponse(
        message="Registration request rejected", request_id=request.id, status=request.status
    )
