"""Email confirmation token issuance and state transitions."""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from ..background import BackgroundDispatcher
from ..metrics import EMAIL_CONFIRMATIONS
from ..notifications.email import EmailSender, confirmation_email, redact_email, welcome_email
from ..repository import AccountRepository
from ..security.confirmation_tokens import IdentityTokenProvider
from .account import Account
from .contracts import ConfirmationOutcome

logger = logging.getLogger(__name__)

CONFIRM_EMAIL_PATH = "/v1/auth/confirm-email"


class EmailConfirmationFlow:
    """Issues confirmation tokens and moves accounts to the confirmed state."""

    def __init__(
        self,
        repository: AccountRepository,
        token_provider: IdentityTokenProvider,
        email_sender: EmailSender,
        dispatcher: BackgroundDispatcher,
        public_base_url: str,
        link_ttl_hours: int = 24,
    ) -> None:
        """Wire the flow; ``link_ttl_hours`` is quoted in the confirmation email."""
        self._repository = repository
        self._tokens = token_provider
        self._email = email_sender
        self._dispatcher = dispatcher
        self._base_url = public_base_url.rstrip("/")
        self._link_ttl_hours = link_ttl_hours

    def generate_confirmation_token(self, account: Account) -> str:
        """Return a token bound to the account's current confirmation state."""
        return self._tokens.generate(account)

    def confirmation_link(self, account: Account, token: str) -> str:
        """Build the public URL that confirms ``account`` with ``token``."""
        query = urlencode({"accountId": account.account_id, "token": token})
        return f"{self._base_url}{CONFIRM_EMAIL_PATH}?{query}"

    def send_confirmation(self, account: Account) -> bool:
        """Generate a fresh token and deliver it; returns ``False`` on any delivery failure."""
        token = self.generate_confirmation_token(account)
        subject, body = confirmation_email(
            account.first_name, self.confirmation_link(account, token), self._link_ttl_hours
        )
        try:
            sent = self._email.send(account.email, subject, body)
        except Exception:
            logger.exception("confirmation email to %s raised", redact_email(account.email))
            return False
        if not sent:
            logger.warning("confirmation email to %s was not delivered", redact_email(account.email))
        return sent

    def confirm_email(self, account_id: str, token: str) -> ConfirmationOutcome:
        """Validate ``token`` for the account and mark its email as confirmed.

        An already-confirmed account short-circuits before the token is looked
        at, and no welcome email is sent for it.
        """
        account = self._repository.get_account(account_id)
        if account is None:
            outcome = ConfirmationOutcome.USER_NOT_FOUND
        elif account.email_confirmed:
            outcome = ConfirmationOutcome.ALREADY_CONFIRMED
        elif not self._tokens.verify(account, token):
            outcome = ConfirmationOutcome.TOKEN_INVALID
        elif not self._repository.mark_email_confirmed(account.account_id):
            # another request confirmed it between our read and write
            outcome = ConfirmationOutcome.ALREADY_CONFIRMED
        else:
            outcome = ConfirmationOutcome.CONFIRMED
            self._dispatcher.submit(
                f"welcome email for {account.account_id}",
                self._send_welcome,
                account.email,
                account.first_name,
            )

        EMAIL_CONFIRMATIONS.labels(outcome=outcome.value).inc()
        logger.info("email confirmation for account %s: %s", account_id, outcome.value)
        return outcome

    def resend_confirmation(self, email: str) -> None:
        """Send a new confirmation email when the account exists and is unconfirmed.

        Returns nothing so callers cannot tell whether the address is registered.
        """
        account = self._repository.find_account_by_email(email)
        if account is None:
            logger.info("resend confirmation requested for unknown email %s", redact_email(email))
            return
        if account.email_confirmed:
            logger.info("resend confirmation skipped; account %s already confirmed", account.account_id)
            return
        self.send_confirmation(account)

    def _send_welcome(self, email: str, first_name: str) -> bool:
        subject, body = welcome_email(first_name)
        return self._email.send(email, subject, body)
