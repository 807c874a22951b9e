"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
"""

from datetime import date

from pydantic import BaseModel, EmailStr, Field

from src.domain.ports import AccessLevel, ProfileFields, RecoveryMode


class EmailRequest(BaseModel):
    """Request model carrying only an email (registration start and resend)."""

    email: EmailStr


class RegisterResponse(BaseModel):
    """Response model for registration start or resend."""

    message: str
    email: str


class ConfirmRequest(BaseModel):
    """Request model for registration confirmation."""

    code: str = Field(..., min_length=4, max_length=64, description="One-time registration code")


class ConfirmResponse(BaseModel):
    """Response model for successful confirmation."""

    user_id: int
    setup_code: str = Field(..., description="One-time code required to set the first password")


class PasswordRequest(BaseModel):
    """
    Request model for setting a password.

    First-time setup carries the setup_code from confirmation; changing
    an existing password authenticates with HTTP BASIC AUTH instead.
    """

    password: str = Field(
        ..., min_length=8, max_length=72, description="User password (8 to 72 characters)"
    )
    setup_code: str | None = Field(None, min_length=4, max_length=64)


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


class LoginRequest(BaseModel):
    """Request model for login."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)


class LoginResponse(BaseModel):
    """Response model for successful login."""

    user_id: int
    company_id: int | None = None
    master_id: int | None = None


class ProfileRequest(BaseModel):
    """Request model for profile completion."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=32)
    birth_date: date | None = None
    national_id: str | None = Field(None, max_length=32)
    country: str | None = Field(None, max_length=64)
    description: str | None = Field(None, max_length=1000)

    def to_fields(self) -> ProfileFields:
        return ProfileFields(
            first_name=self.first_name,
            last_name=self.last_name,
            phone=self.phone,
            birth_date=self.birth_date,
            national_id=self.national_id,
            country=self.country,
            description=self.description,
        )


class ProfileResponse(BaseModel):
    """Response model for profile completion."""

    email: str


class ProfileStatusResponse(BaseModel):
    """Response model for the profile completion check."""

    completed: bool


class RecoveryRequest(BaseModel):
    """Request model for starting recovery."""

    email: EmailStr
    mode: RecoveryMode = Field(
        RecoveryMode.FORGOTTEN,
        description="0 = password forgotten, 1 = resend recovery code, 2 = password changed notice",
    )


class RecoveryCompleteRequest(BaseModel):
    """Request model for completing recovery."""

    code: str = Field(..., min_length=4, max_length=64, description="One-time recovery code")
    password: str = Field(..., min_length=8, max_length=72, description="New password")


class CompanyRequest(BaseModel):
    """Request model for company creation."""

    master_id: int
    name: str = Field(..., min_length=1, max_length=200)


class CompanyResponse(BaseModel):
    """Response model for company creation."""

    company_id: int


class AssignmentRequest(BaseModel):
    """Request model for assigning a user to a company."""

    user_id: int
    access_level: AccessLevel = Field(
        ..., description="0 = No Access, 1 = Reader, 2 = Editor, 3 = Creator, 4 = Admin"
    )


class MemberRequest(ProfileRequest):
    """Request model for adding a member directly to a company."""

    email: EmailStr
    access_level: AccessLevel
    password: str | None = Field(
        None,
        min_length=8,
        max_length=72,
        description="Omit to invite the member by email instead",
    )


class MemberUpdateRequest(ProfileRequest):
    """Request model for editing a member's email and profile."""

    email: EmailStr


class MemberCreatedResponse(BaseModel):
    """Response model for an added member."""

    user_id: int
    email: str


class MemberResponse(BaseModel):
    """One company member."""

    user_id: int
    company_id: int
    email: str
    first_name: str | None
    last_name: str | None
    access_level: AccessLevel


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
