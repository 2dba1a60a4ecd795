"""
API v1 routes - applicant endpoints.

Defines REST endpoints an applicant uses to request access, prove email
ownership, check progress and complete registration.

Applicant-facing answers are coarse: a request for an address that already
has an account or an open request gets the same 202 receipt as a new one,
and a wrong code looks the same as an unknown email.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from src.api.dependencies import get_registration_service
from src.api.models import (
    CompleteRegistrationBody,
    CompleteRegistrationResponse,
    ErrorResponse,
    MessageResponse,
    RequestRegistrationBody,
    RequestRegistrationResponse,
    StatusResponse,
    UserProfileResponse,
    VerifyEmailBody,
)
from src.domain.exceptions import (
    AccountExists,
    DuplicateRequest,
    EmailNotVerified,
    InvalidCode,
    InvalidOrExpiredToken,
    NotApproved,
    NotFound,
    TooManyAttempts,
    ValidationFailed,
)
from src.domain.models import RequestReceipt
from src.domain.registration import RegistrationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/registration", tags=["registration"])


@router.post(
    "/request",
    response_model=RequestRegistrationResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        422: {"description": "Validation error"},
    },
    summary="Request registration",
    description="Submit contact details and the requested role. "
    "A 6-digit verification code is sent to the email address. "
    "Calling again before verifying re-sends a fresh code. The answer does not "
    "reveal whether the address already has an account or an open request.",
)
def request_registration(
    body: RequestRegistrationBody,
    service: RegistrationService = Depends(get_registration_service),
) -> RequestRegistrationResponse:
    try:
        receipt = service.request_registration(body.email, body.first_name, body.last_name, body.role)
    except (DuplicateRequest, AccountExists) as e:
        logger.info("Registration request refused: %s", type(e).__name__)
        # Unlinked id, shaped like a real one
        receipt = RequestReceipt(request_id=str(uuid.uuid4()))
    except ValidationFailed as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from None
    return RequestRegistrationResponse(message=receipt.message, request_id=receipt.request_id)


@router.post(
    "/verify-email",
    response_model=MessageResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid or expired code"},
        429: {"model": ErrorResponse, "description": "Too many attempts"},
        422: {"description": "Validation error"},
    },
    summary="Verify email with code",
    description="Submit the 6-digit code received by email. Verifying again after success is a no-op.",
)
def verify_email(
    body: VerifyEmailBody,
    service: RegistrationService = Depends(get_registration_service),
) -> MessageResponse:
    try:
        service.verify_email(body.email, body.code)
    except (InvalidCode, NotFound):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired verification code",
        ) from None
    except TooManyAttempts:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many verification attempts; request a new code",
        ) from None
    return MessageResponse(message="Email verified")


@router.get(
    "/status/{email}",
    response_model=StatusResponse,
    summary="Registration status",
    description="Status of the latest request for an email address.",
)
def registration_status(
    email: str,
    service: RegistrationService = Depends(get_registration_service),
) -> StatusResponse:
    return StatusResponse(status=service.get_status(email))


@router.post(
    "/complete",
    response_model=CompleteRegistrationResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid or expired completion token"},
        409: {"model": ErrorResponse, "description": "Request not approved or email not verified"},
        422: {"description": "Validation error"},
    },
    summary="Complete registration",
    description="Set a password using the completion token sent after approval. "
    "Returns a session token and the new user's profile.",
)
def complete_registration(
    body: CompleteRegistrationBody,
    service: RegistrationService = Depends(get_registration_service),
) -> CompleteRegistrationResponse:
    try:
        result = service.complete_registration(body.email, body.password, body.token)
    except NotApproved as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message) from None
    except EmailNotVerified:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email address has not been verified",
        ) from None
    except InvalidOrExpiredToken:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired completion token",
        ) from None
    except AccountExists:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Registration failed") from None
    except ValidationFailed as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from None
    return CompleteRegistrationResponse(
        token=result.session_credential,
        user=UserProfileResponse.from_domain(result.user),
    )
