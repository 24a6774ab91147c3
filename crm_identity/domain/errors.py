"""Error taxonomy shared by the auth components and the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ErrorCode(str, Enum):
    """Stable, client-visible error codes."""

    DUPLICATE_EMAIL = "DuplicateEmail"
    USER_CREATION_FAILED = "UserCreationFailed"
    INVALID_CREDENTIALS = "InvalidCredentials"
    EMAIL_NOT_CONFIRMED = "EmailNotConfirmed"
    INVALID_OR_EXPIRED_REFRESH_TOKEN = "InvalidOrExpiredRefreshToken"
    USER_NOT_FOUND = "UserNotFound"
    TOKEN_INVALID = "TokenInvalid"
    ALREADY_CONFIRMED = "AlreadyConfirmed"
    TENANT_ORPHANED = "TenantOrphaned"


PUBLIC_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.DUPLICATE_EMAIL: "Email is already registered",
    ErrorCode.USER_CREATION_FAILED: "User creation failed",
    ErrorCode.INVALID_CREDENTIALS: "Invalid email or password",
    ErrorCode.EMAIL_NOT_CONFIRMED: "Please confirm your email address before logging in",
    ErrorCode.INVALID_OR_EXPIRED_REFRESH_TOKEN: "Invalid or expired refresh token",
    ErrorCode.USER_NOT_FOUND: "User not found",
    ErrorCode.TOKEN_INVALID: "Invalid confirmation token",
    ErrorCode.ALREADY_CONFIRMED: "Email already confirmed",
}


@dataclass(slots=True)
class AuthFailure:
    """Typed failure outcome returned instead of raising for business errors.

    ``orphaned_tenant_id`` is internal bookkeeping for operators and is never
    serialised back to the caller.
    """

    code: ErrorCode
    details: list[str] = field(default_factory=list)
    email_confirmation_required: bool = False
    orphaned_tenant_id: str | None = None

    @property
    def message(self) -> str:
        return PUBLIC_MESSAGES.get(self.code, "Request failed")

    @property
    def fatal(self) -> bool:
        return self.orphaned_tenant_id is not None


class InvalidOrExpiredRefreshToken(Exception):
    """Raised by refresh token stores when redemption is not possible."""


class SigningKeyMisconfigured(RuntimeError):
    """Raised at startup when the JWT signing secret is missing or too short."""


class AccountCreationError(Exception):
    """Raised when an account cannot be persisted for a freshly created tenant.

    ``duplicate_email`` is set when the insert lost a race for the email.
    """

    def __init__(
        self, message: str, details: list[str] | None = None, *, duplicate_email: bool = False
    ) -> None:
        super().__init__(message)
        self.details = details or []
        self.duplicate_email = duplicate_email
