"""
API v1 routes.

Defines REST endpoints for the account lifecycle and tenant provisioning.
Failure details are generic: an unknown account and a wrong password
produce the same response.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from src.api.dependencies import (
    get_account_service,
    get_authenticated_user_id,
    get_optional_basic_auth_credentials,
    get_tenant_registry,
)
from src.api.models import (
    AssignmentRequest,
    CompanyRequest,
    CompanyResponse,
    ConfirmRequest,
    ConfirmResponse,
    EmailRequest,
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    MemberCreatedResponse,
    MemberRequest,
    MemberResponse,
    MemberUpdateRequest,
    MessageResponse,
    PasswordRequest,
    ProfileRequest,
    ProfileResponse,
    ProfileStatusResponse,
    RecoveryCompleteRequest,
    RecoveryRequest,
    RegisterResponse,
)
from src.domain.accounts import AccountService
from src.domain.exceptions import (
    AccountAlreadyActive,
    AccountNotVerified,
    AuthError,
    CompanyNotFound,
    DuplicateAssignment,
    DuplicateEmail,
    InvalidOrExpiredCode,
    NoSuchUser,
)
from src.domain.tenancy import TenantRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["v1"])

_INVALID_CODE = "Invalid or expired code"
_RECOVERY_ACCEPTED = "If the account exists, an email has been sent"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Basic"},
    )


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        409: {"model": ErrorResponse, "description": "Email already registered"},
        422: {"description": "Validation error"},
    },
    summary="Register a new user",
    description="Submit an email to begin registration. "
    "A one-time confirmation code will be sent to the provided email. "
    "Repeating the call for a pending registration resends the code.",
)
def register(
    request_data: EmailRequest,
    service: AccountService = Depends(get_account_service),
) -> RegisterResponse:
    """
    Start registration and send confirmation code.

    - **email**: Valid email address to register
    """
    try:
        receipt = service.start_registration(request_data.email)
    except DuplicateEmail:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Registration failed",
        ) from None
    return RegisterResponse(message="Confirmation code sent", email=receipt.email)


@router.post(
    "/register/resend",
    response_model=RegisterResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={409: {"model": ErrorResponse, "description": "No pending registration"}},
    summary="Resend registration code",
)
def resend_registration_code(
    request_data: EmailRequest,
    service: AccountService = Depends(get_account_service),
) -> RegisterResponse:
    try:
        receipt = service.resend_registration_code(request_data.email)
    except (NoSuchUser, AccountAlreadyActive):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Registration failed",
        ) from None
    return RegisterResponse(message="Confirmation code sent", email=receipt.email)


@router.post(
    "/register/confirm",
    response_model=ConfirmResponse,
    responses={400: {"model": ErrorResponse, "description": _INVALID_CODE}},
    summary="Confirm registration code",
    description="Consume the one-time code received by email. "
    "The account becomes active once a password is set.",
)
def confirm_registration(
    request_data: ConfirmRequest,
    service: AccountService = Depends(get_account_service),
) -> ConfirmResponse:
    try:
        confirmation = service.confirm_registration(request_data.code)
    except InvalidOrExpiredCode:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_INVALID_CODE) from None
    return ConfirmResponse(user_id=confirmation.user_id, setup_code=confirmation.setup_code)


@router.put(
    "/users/{user_id}/password",
    response_model=MessageResponse,
    responses={
        400: {"model": ErrorResponse, "description": _INVALID_CODE},
        401: {"model": ErrorResponse, "description": "Authentication required"},
        404: {"model": ErrorResponse, "description": "User not found"},
        409: {"model": ErrorResponse, "description": "Email not verified"},
    },
    summary="Set or change password",
    description="First-time setup sends the setup_code returned by confirmation. "
    "Changing an existing password requires HTTP BASIC AUTH with the current "
    "email and password.",
)
def set_password(
    user_id: int,
    request_data: PasswordRequest,
    credentials: tuple[str, str] | None = Depends(get_optional_basic_auth_credentials),
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    if credentials is not None:
        email, current_password = credentials
        try:
            service.change_password(user_id, email, current_password, request_data.password)
        except (NoSuchUser, AuthError):
            raise _unauthorized("Invalid credentials") from None
        return MessageResponse(message="Password changed")

    if request_data.setup_code is None:
        raise _unauthorized("Authentication required")

    try:
        service.set_password(user_id, request_data.password, request_data.setup_code)
    except NoSuchUser:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from None
    except AccountAlreadyActive:
        raise _unauthorized("Authentication required") from None
    except AccountNotVerified:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Email not verified"
        ) from None
    except InvalidOrExpiredCode:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_INVALID_CODE) from None
    return MessageResponse(message="Password set")


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid credentials"}},
    summary="Log in with email and password",
)
def login(
    request_data: LoginRequest,
    service: AccountService = Depends(get_account_service),
) -> LoginResponse:
    """
    Authenticate and resolve the company context.

    Unknown email and wrong password return the identical 401 response.
    """
    try:
        result = service.login(request_data.email, request_data.password)
    except (NoSuchUser, AuthError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        ) from None

    if result.context is None:
        return LoginResponse(user_id=result.user_id)
    return LoginResponse(
        user_id=result.user_id,
        company_id=result.context.company_id,
        master_id=result.context.master_id,
    )


@router.put(
    "/users/{user_id}/profile",
    response_model=ProfileResponse,
    responses={404: {"model": ErrorResponse, "description": "User not found"}},
    summary="Complete user profile",
    description="Store profile attributes. The first completion seeds the "
    "standard roles and sends a welcome email; repeats only update the profile.",
)
def complete_profile(
    user_id: int,
    request_data: ProfileRequest,
    service: AccountService = Depends(get_account_service),
) -> ProfileResponse:
    try:
        completion = service.complete_profile(user_id, request_data.to_fields())
    except NoSuchUser:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from None
    return ProfileResponse(email=completion.email)


@router.get(
    "/users/{user_id}/profile/completed",
    response_model=ProfileStatusResponse,
    responses={404: {"model": ErrorResponse, "description": "User not found"}},
    summary="Check whether the profile is completed",
)
def check_profile_completed(
    user_id: int,
    service: AccountService = Depends(get_account_service),
) -> ProfileStatusResponse:
    try:
        completed = service.check_profile_completed(user_id)
    except NoSuchUser:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from None
    return ProfileStatusResponse(completed=completed)


@router.post(
    "/recovery",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start password recovery",
    description="Send a recovery code (mode 0), resend it (mode 1) or send a "
    "password-changed notice (mode 2). The response does not reveal "
    "whether the email belongs to an account.",
)
def start_recovery(
    request_data: RecoveryRequest,
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    try:
        service.start_recovery(request_data.email, request_data.mode)
    except NoSuchUser:
        logger.info("Recovery requested for unknown email")
    return MessageResponse(message=_RECOVERY_ACCEPTED)


@router.post(
    "/recovery/complete",
    response_model=MessageResponse,
    responses={400: {"model": ErrorResponse, "description": _INVALID_CODE}},
    summary="Complete password recovery",
)
def complete_recovery(
    request_data: RecoveryCompleteRequest,
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    try:
        service.complete_recovery(request_data.code, request_data.password)
    except InvalidOrExpiredCode:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_INVALID_CODE) from None
    return MessageResponse(message="Password changed")


@router.post(
    "/companies",
    response_model=CompanyResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse, "description": "Master user not found"}},
    summary="Create a company",
)
def create_company(
    request_data: CompanyRequest,
    registry: TenantRegistry = Depends(get_tenant_registry),
) -> CompanyResponse:
    try:
        company_id = registry.create_company(request_data.master_id, request_data.name)
    except NoSuchUser:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Master user not found"
        ) from None
    return CompanyResponse(company_id=company_id)


@router.post(
    "/companies/{company_id}/users",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse, "description": "Company or user not found"},
        409: {"model": ErrorResponse, "description": "Assignment already exists"},
    },
    summary="Assign a user to a company",
)
def assign_user_to_company(
    company_id: int,
    request_data: AssignmentRequest,
    registry: TenantRegistry = Depends(get_tenant_registry),
) -> MessageResponse:
    try:
        registry.assign_user_to_company(company_id, request_data.user_id, request_data.access_level)
    except DuplicateAssignment:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Assignment already exists"
        ) from None
    except (CompanyNotFound, NoSuchUser):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Company or user not found"
        ) from None
    return MessageResponse(message="User assigned")


@router.get(
    "/companies/members",
    response_model=list[MemberResponse],
    responses={401: {"model": ErrorResponse, "description": "Invalid credentials"}},
    summary="List members of a master's companies",
    description="The master is the caller authenticated with HTTP BASIC AUTH.",
)
def list_members(
    company_id: int | None = Query(None),
    master_id: int = Depends(get_authenticated_user_id),
    registry: TenantRegistry = Depends(get_tenant_registry),
) -> list[MemberResponse]:
    return [
        MemberResponse(
            user_id=member.user_id,
            company_id=member.company_id,
            email=member.email,
            first_name=member.first_name,
            last_name=member.last_name,
            access_level=member.access_level,
        )
        for member in registry.list_members(master_id, company_id)
    ]


@router.post(
    "/companies/{company_id}/members",
    response_model=MemberCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse, "description": "Company not found"},
        409: {"model": ErrorResponse, "description": "Member could not be added"},
    },
    summary="Add a member to a company",
    description="Create an account inside the company. With a password the "
    "member can log in at once; without one an invitation code is emailed.",
)
def add_member(
    company_id: int,
    request_data: MemberRequest,
    registry: TenantRegistry = Depends(get_tenant_registry),
) -> MemberCreatedResponse:
    try:
        receipt = registry.add_member(
            company_id,
            request_data.email,
            request_data.to_fields(),
            request_data.access_level,
            password=request_data.password,
        )
    except DuplicateEmail:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Member could not be added"
        ) from None
    except CompanyNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found") from None
    return MemberCreatedResponse(user_id=receipt.user_id, email=receipt.email)


@router.put(
    "/companies/members/{user_id}",
    response_model=MessageResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
        404: {"model": ErrorResponse, "description": "Member not found"},
        409: {"model": ErrorResponse, "description": "Member could not be updated"},
    },
    summary="Edit a member",
    description="Replace a member's email and profile. The caller, authenticated "
    "with HTTP BASIC AUTH, must master one of the member's companies.",
)
def update_member(
    user_id: int,
    request_data: MemberUpdateRequest,
    master_id: int = Depends(get_authenticated_user_id),
    registry: TenantRegistry = Depends(get_tenant_registry),
) -> MessageResponse:
    try:
        registry.update_member(master_id, user_id, request_data.email, request_data.to_fields())
    except NoSuchUser:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found") from None
    except DuplicateEmail:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Member could not be updated"
        ) from None
    return MessageResponse(message="Member updated")


@router.delete(
    "/companies/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
        404: {"model": ErrorResponse, "description": "Member not found"},
    },
    summary="Remove a member",
    description="The caller, authenticated with HTTP BASIC AUTH, must master "
    "one of the member's companies.",
)
def remove_member(
    user_id: int,
    master_id: int = Depends(get_authenticated_user_id),
    registry: TenantRegistry = Depends(get_tenant_registry),
) -> Response:
    try:
        registry.remove_member(master_id, user_id)
    except NoSuchUser:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found") from None
    return Response(status_code=status.HTTP_204_NO_CONTENT)
