"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
"""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from src.domain.models import Page, RegistrationRequest, RegistrationStatus, Role, UserProfile

# bcrypt only looks at the first 72 bytes of a password
_MAX_PASSWORD_BYTES = 72


class RequestRegistrationBody(BaseModel):
    """Request model for a new registration request."""

    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: Role = Field(..., description="One of INTAKE_STAFF, CLINICIAN, QA_REVIEWER, BILLER")


class RequestRegistrationResponse(BaseModel):
    """Generic acknowledgment; identical whether the row is new or re-sent."""

    message: str
    request_id: str


class VerifyEmailBody(BaseModel):
    """Request model for email verification."""

    email: EmailStr
    code: str = Field(
        ...,
        min_length=6,
        max_length=6,
        pattern=r"^\d{6}$",
        description="6-digit verification code",
    )


class MessageResponse(BaseModel):
    message: str


class StatusResponse(BaseModel):
    status: RegistrationStatus


class CompleteRegistrationBody(BaseModel):
    """
    Request model for completing an approved registration.

    There is no role field: the account role comes from the
    approved request.
    """

    email: EmailStr
    password: str = Field(..., min_length=8, description="New password (min 8 characters)")
    token: str = Field(..., min_length=1, max_length=256, description="Completion token from the approval email")

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode()) > _MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {_MAX_PASSWORD_BYTES} bytes")
        return value


class UserProfileResponse(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    role: Role
    is_active: bool

    @classmethod
    def from_domain(cls, profile: UserProfile) -> "UserProfileResponse":
        return cls(
            id=profile.id,
            email=profile.email,
            first_name=profile.first_name,
            last_name=profile.last_name,
            role=profile.role,
            is_active=profile.is_active,
        )


class CompleteRegistrationResponse(BaseModel):
    """Session credential plus public profile."""

    token: str
    user: UserProfileResponse


class RegistrationRequestView(BaseModel):
    """Administrator view of a request. Never includes digests."""

    id: str
    email: str
    first_name: str
    last_name: str
    role: Role
    status: RegistrationStatus
    email_verified: bool
    email_verified_at: datetime | None
    verification_attempts: int
    requested_at: datetime
    decided_at: datetime | None
    decided_by: str | None
    admin_notes: str | None
    rejection_reason: str | None
    completed_at: datetime | None

    @classmethod
    def from_domain(cls, request: RegistrationRequest) -> "RegistrationRequestView":
        return cls(
            id=request.id,
            email=request.email,
            first_name=request.first_name,
            last_name=request.last_name,
            role=request.requested_role,
            status=request.status,
            email_verified=request.email_verified_at is not None,
            email_verified_at=request.email_verified_at,
            verification_attempts=request.verification_attempts,
            requested_at=request.requested_at,
            decided_at=request.decided_at,
            decided_by=request.decided_by,
            admin_notes=request.admin_notes,
            rejection_reason=request.rejection_reason,
            completed_at=request.completed_at,
        )


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class RegistrationRequestList(BaseModel):
    requests: list[RegistrationRequestView]
    pagination: Pagination

    @classmethod
    def from_page(cls, page: Page) -> "RegistrationRequestList":
        return cls(
            requests=[RegistrationRequestView.from_domain(r) for r in page.items],
            pagination=Pagination(page=page.page, limit=page.limit, total=page.total, pages=page.pages),
        )


class ApproveBody(BaseModel):
    notes: str | None = Field(None, max_length=2000)


class RejectBody(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)
    notes: str | None = Field(None, max_length=2000)


class DecisionResponse(BaseModel):
    message: str
    request_id: str
    status: RegistrationStatus


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
