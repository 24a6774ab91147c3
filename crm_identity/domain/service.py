"""Auth orchestrator composing registration, login, refresh and confirmation."""

from __future__ import annotations

import logging

from ..metrics import TOKEN_REFRESHES
from ..repository import AccountRepository
from ..security.tokens import TokenIssuer
from .confirmation import EmailConfirmationFlow
from .contracts import (
    ConfirmationOutcome,
    LoginResult,
    RegisterInput,
    RegistrationResult,
    TokenBundle,
    UserProjection,
)
from .credentials import CredentialValidator
from .errors import AuthFailure, ErrorCode, InvalidOrExpiredRefreshToken
from .registration import TenantRegistrar

logger = logging.getLogger(__name__)


class AuthOrchestrator:
    """Facade exposing the auth workflows to the transport layer.

    Business failures come back as :class:`AuthFailure` values; only
    infrastructure errors propagate as exceptions.
    """

    def __init__(
        self,
        repository: AccountRepository,
        issuer: TokenIssuer,
        confirmation: EmailConfirmationFlow,
    ) -> None:
        """Wire the component graph around a shared repository and token issuer."""
        self._repository = repository
        self._issuer = issuer
        self._confirmation = confirmation
        self._registrar = TenantRegistrar(repository, confirmation)
        self._credentials = CredentialValidator(repository, issuer)

    @property
    def issuer(self) -> TokenIssuer:
        """Expose the issuer so the HTTP layer can decode bearer tokens."""
        return self._issuer

    def register(self, payload: RegisterInput) -> RegistrationResult | AuthFailure:
        """Create a tenant with its first account and send the confirmation email."""
        return self._registrar.register(payload)

    def login(self, email: str, password: str) -> LoginResult | AuthFailure:
        """Authenticate a confirmed account and issue a token bundle."""
        return self._credentials.login(email, password)

    def refresh(self, refresh_token: str) -> TokenBundle | AuthFailure:
        """Exchange a refresh token for a new access/refresh pair.

        Parameters
        ----------
        refresh_token:
            Opaque token previously issued alongside an access token. It is
            consumed by this call whether or not a new pair is produced.
        """
        try:
            if not refresh_token:
                raise InvalidOrExpiredRefreshToken("empty refresh token")
            account_id = self._issuer.redeem(refresh_token)
        except InvalidOrExpiredRefreshToken as exc:
            logger.info("refresh rejected: %s", exc)
            TOKEN_REFRESHES.labels(outcome="rejected").inc()
            return AuthFailure(ErrorCode.INVALID_OR_EXPIRED_REFRESH_TOKEN)

        account = self._repository.get_account(account_id)
        if account is None:
            logger.warning("refresh token redeemed for missing account %s", account_id)
            TOKEN_REFRESHES.labels(outcome="rejected").inc()
            return AuthFailure(ErrorCode.INVALID_OR_EXPIRED_REFRESH_TOKEN)

        TOKEN_REFRESHES.labels(outcome="success").inc()
        return self._issuer.issue(account)

    def confirm_email(self, account_id: str, token: str) -> ConfirmationOutcome:
        """Confirm the account email with a previously mailed token."""
        return self._confirmation.confirm_email(account_id, token)

    def resend_confirmation(self, email: str) -> None:
        """Resend the confirmation email for an unconfirmed account, silently otherwise."""
        self._confirmation.resend_confirmation(email)

    def get_current_user(self, account_id: str) -> UserProjection | AuthFailure:
        """Return the public projection of the account, or ``UserNotFound``."""
        account = self._repository.get_account(account_id)
        if account is None:
            return AuthFailure(ErrorCode.USER_NOT_FOUND)
        return UserProjection.from_account(account)
