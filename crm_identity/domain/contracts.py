"""Domain-level request contracts and result types shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .account import Account


@dataclass(slots=True)
class RegisterInput:
    """Validated inputs required to register a tenant and its first account."""

    email: str
    password: str
    first_name: str
    last_name: str
    tenant_name: str


@dataclass(slots=True)
class RegistrationResult:
    account_id: str
    tenant_id: str
    confirmation_email_sent: bool
    requires_email_confirmation: bool = True


@dataclass(slots=True)
class RefreshTokenRecord:
    """Outstanding refresh token metadata, keyed externally by the token value."""

    account_id: str
    issued_at: datetime
    expires_at: datetime


@dataclass(slots=True)
class TokenBundle:
    """Encapsulates the access/refresh token pair returned to API consumers."""

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"


@dataclass(slots=True)
class UserProjection:
    """Public-safe view of an account."""

    id: str
    email: str
    first_name: str
    last_name: str
    tenant_id: str

    @classmethod
    def from_account(cls, account: Account) -> "UserProjection":
        return cls(
            id=account.account_id,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            tenant_id=account.tenant_id,
        )


@dataclass(slots=True)
class LoginResult:
    tokens: TokenBundle
    user: UserProjection


class ConfirmationOutcome(str, Enum):
    CONFIRMED = "Confirmed"
    ALREADY_CONFIRMED = "AlreadyConfirmed"
    USER_NOT_FOUND = "UserNotFound"
    TOKEN_INVALID = "TokenInvalid"
