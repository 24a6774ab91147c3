"""HTTP route definitions for the identity service."""

from __future__ import annotations

import logging

import jwt
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ..domain.contracts import (
    ConfirmationOutcome,
    RegisterInput,
    TokenBundle,
    UserProjection,
)
from ..domain.errors import AuthFailure, ErrorCode
from ..domain.service import AuthOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/auth", tags=["auth"])

bearer_scheme = HTTPBearer(auto_error=False)

RESEND_CONFIRMATION_MESSAGE = (
    "If an account with that email exists and is unconfirmed, a confirmation email has been sent."
)

_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.DUPLICATE_EMAIL: status.HTTP_409_CONFLICT,
    ErrorCode.USER_CREATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.EMAIL_NOT_CONFIRMED: status.HTTP_403_FORBIDDEN,
    ErrorCode.INVALID_OR_EXPIRED_REFRESH_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.TOKEN_INVALID: status.HTTP_400_BAD_REQUEST,
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(_CamelModel):
    """Payload accepted when registering a new tenant."""

    email: EmailStr
    password: str = Field(..., min_length=1)
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=100)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=100)
    tenant_name: str = Field(..., alias="tenantName", min_length=1, max_length=200)


class RegisterResponse(_CamelModel):
    account_id: str = Field(..., alias="accountId")
    tenant_id: str = Field(..., alias="tenantId")
    confirmation_email_sent: bool = Field(..., alias="confirmationEmailSent")
    requires_email_confirmation: bool = Field(True, alias="requiresEmailConfirmation")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserResponse(_CamelModel):
    """Public projection of an account."""

    id: str
    email: str
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    tenant_id: str = Field(..., alias="tenantId")

    @classmethod
    def from_domain(cls, user: UserProjection) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            tenant_id=user.tenant_id,
        )


class TokenResponse(BaseModel):
    """Token issuance response containing the bearer token and metadata."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int

    @classmethod
    def from_domain(cls, bundle: TokenBundle) -> "TokenResponse":
        return cls(
            access_token=bundle.access_token,
            refresh_token=bundle.refresh_token,
            token_type=bundle.token_type,
            expires_in=bundle.expires_in,
        )


class LoginResponse(TokenResponse):
    user: UserResponse


class RefreshTokenRequest(BaseModel):
    """Request body for exchanging refresh tokens for new access credentials."""

    refresh_token: str


class ResendConfirmationRequest(BaseModel):
    email: EmailStr


class MessageResponse(BaseModel):
    message: str


class ConfirmEmailResponse(BaseModel):
    outcome: ConfirmationOutcome


def get_service(request: Request) -> AuthOrchestrator:
    """Resolve the `AuthOrchestrator` stored on the FastAPI application state."""
    service: AuthOrchestrator = request.app.state.auth_service
    return service


def failure_response(failure: AuthFailure) -> JSONResponse:
    """Map a typed failure onto its stable client-visible JSON error."""
    body: dict[str, object] = {"error": failure.code.value, "message": failure.message}
    if failure.details:
        body["details"] = failure.details
    if failure.email_confirmation_required:
        body["emailConfirmationRequired"] = True
    return JSONResponse(
        status_code=_STATUS_BY_CODE.get(failure.code, status.HTTP_400_BAD_REQUEST),
        content=body,
    )


def current_account_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    service: AuthOrchestrator = Depends(get_service),
) -> str:
    """Return the ``sub`` claim of a valid bearer access token."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing bearer token")
    try:
        claims = service.issuer.decode(credentials.credentials)
    except jwt.PyJWTError as exc:
        logger.info("rejected access token: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid access token"
        ) from exc
    return claims["sub"]


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
)
def register(payload: RegisterRequest, service: AuthOrchestrator = Depends(get_service)):
    """Register a tenant together with its first administrator account."""
    result = service.register(
        RegisterInput(
            email=payload.email,
            password=payload.password,
            first_name=payload.first_name,
            last_name=payload.last_name,
            tenant_name=payload.tenant_name,
        )
    )
    if isinstance(result, AuthFailure):
        return failure_response(result)
    return RegisterResponse(
        account_id=result.account_id,
        tenant_id=result.tenant_id,
        confirmation_email_sent=result.confirmation_email_sent,
        requires_email_confirmation=result.requires_email_confirmation,
    )


@router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest, service: AuthOrchestrator = Depends(get_service)):
    """Exchange email and password for a token bundle."""
    result = service.login(payload.email, payload.password)
    if isinstance(result, AuthFailure):
        return failure_response(result)
    tokens = TokenResponse.from_domain(result.tokens)
    return LoginResponse(**tokens.model_dump(), user=UserResponse.from_domain(result.user))


@router.post("/refresh", response_model=TokenResponse)
def refresh(payload: RefreshTokenRequest, service: AuthOrchestrator = Depends(get_service)):
    """Rotate a refresh token into a new access/refresh pair."""
    result = service.refresh(payload.refresh_token)
    if isinstance(result, AuthFailure):
        return failure_response(result)
    return TokenResponse.from_domain(result)


@router.get("/confirm-email", response_model=ConfirmEmailResponse)
def confirm_email(
    account_id: str = Query(..., alias="accountId"),
    token: str = Query(...),
    service: AuthOrchestrator = Depends(get_service),
):
    """Confirm an email address from the link sent at registration."""
    outcome = service.confirm_email(account_id, token)
    if outcome is ConfirmationOutcome.USER_NOT_FOUND:
        return failure_response(AuthFailure(ErrorCode.USER_NOT_FOUND))
    if outcome is ConfirmationOutcome.TOKEN_INVALID:
        return failure_response(AuthFailure(ErrorCode.TOKEN_INVALID))
    return ConfirmEmailResponse(outcome=outcome)


@router.post(
    "/resend-confirmation",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def resend_confirmation(
    payload: ResendConfirmationRequest,
    service: AuthOrchestrator = Depends(get_service),
) -> MessageResponse:
    """Queue a new confirmation email without revealing whether the address exists."""
    service.resend_confirmation(payload.email)
    return MessageResponse(message=RESEND_CONFIRMATION_MESSAGE)


@router.post("/logout", response_model=MessageResponse)
def logout() -> MessageResponse:
    """Access tokens are stateless; the client discards them."""
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
def me(
    account_id: str = Depends(current_account_id),
    service: AuthOrchestrator = Depends(get_service),
):
    """Return the account identified by the bearer token."""
    result = service.get_current_user(account_id)
    if isinstance(result, AuthFailure):
        return failure_response(result)
    return UserResponse.from_domain(result)
