"""Email/password verification gated on email confirmation."""

from __future__ import annotations

import logging

from ..metrics import LOGINS
from ..notifications.email import redact_email
from ..repository import AccountRepository
from ..security.passwords import verify_password
from ..security.tokens import TokenIssuer
from .contracts import LoginResult, UserProjection
from .errors import AuthFailure, ErrorCode

logger = logging.getLogger(__name__)


class CredentialValidator:
    """Checks email and password and issues tokens for confirmed accounts."""

    def __init__(self, repository: AccountRepository, issuer: TokenIssuer) -> None:
        """Wire the validator to account lookup and token issuance."""
        self._repository = repository
        self._issuer = issuer

    def login(self, email: str, password: str) -> LoginResult | AuthFailure:
        """Verify credentials and issue tokens.

        Unknown emails and wrong passwords produce the same failure, and both
        paths pay for one bcrypt comparison.
        """
        account = self._repository.find_account_by_email(email)
        password_ok = verify_password(password, account.password_hash if account else None)
        if account is None or not password_ok:
            logger.warning("login failed for %s: invalid credentials", redact_email(email))
            LOGINS.labels(outcome=ErrorCode.INVALID_CREDENTIALS.value).inc()
            return AuthFailure(ErrorCode.INVALID_CREDENTIALS)

        if not account.email_confirmed:
            logger.info("login refused for account %s: email not confirmed", account.account_id)
            LOGINS.labels(outcome=ErrorCode.EMAIL_NOT_CONFIRMED.value).inc()
            return AuthFailure(ErrorCode.EMAIL_NOT_CONFIRMED, email_confirmation_required=True)

        tokens = self._issuer.issue(account)
        LOGINS.labels(outcome="success").inc()
        logger.info("account %s logged in", account.account_id)
        return LoginResult(tokens=tokens, user=UserProjection.from_account(account))
