"""Tenant plus first-account registration with compensating rollback."""

from __future__ import annotations

import logging

from ..metrics import ORPHANED_TENANTS, REGISTRATIONS
from ..notifications.email import redact_email
from ..repository import AccountRepository
from ..security.passwords import hash_password, password_policy_violations
from .account import ADMIN_ROLE, Account, Tenant
from .confirmation import EmailConfirmationFlow
from .contracts import RegisterInput, RegistrationResult
from .errors import AccountCreationError, AuthFailure, ErrorCode

logger = logging.getLogger(__name__)


class TenantRegistrar:
    """Creates a tenant and its first administrator account.

    The two writes are not one transaction. When the account cannot be
    created the tenant is deleted again; if that delete fails the tenant is
    reported as orphaned and the caller still receives ``UserCreationFailed``.
    """

    def __init__(self, repository: AccountRepository, confirmation: EmailConfirmationFlow) -> None:
        """Wire the registrar to persistence and the confirmation email flow."""
        self._repository = repository
        self._confirmation = confirmation

    def register(self, payload: RegisterInput) -> RegistrationResult | AuthFailure:
        """Create the tenant and its Admin account, then send the confirmation email."""
        if self._repository.find_account_by_email(payload.email) is not None:
            logger.info("registration rejected for %s: duplicate email", redact_email(payload.email))
            REGISTRATIONS.labels(outcome=ErrorCode.DUPLICATE_EMAIL.value).inc()
            return AuthFailure(ErrorCode.DUPLICATE_EMAIL)

        tenant = self._repository.create_tenant(name=payload.tenant_name, email=payload.email)
        try:
            account = self._create_account(tenant, payload)
        except AccountCreationError as exc:
            failure = self._compensate(tenant, exc)
            REGISTRATIONS.labels(outcome=failure.code.value).inc()
            return failure
        except Exception as exc:
            # infrastructure failure: undo the tenant, then let the app surface a 500
            self._compensate(tenant, AccountCreationError(str(exc)))
            REGISTRATIONS.labels(outcome="error").inc()
            raise

        self._repository.add_role(account.account_id, ADMIN_ROLE)
        account.roles = account.roles | {ADMIN_ROLE}

        email_sent = self._confirmation.send_confirmation(account)
        REGISTRATIONS.labels(outcome="success").inc()
        logger.info(
            "registered account %s in new tenant %s (confirmation email sent: %s)",
            account.account_id,
            tenant.tenant_id,
            email_sent,
        )
        return RegistrationResult(
            account_id=account.account_id,
            tenant_id=tenant.tenant_id,
            confirmation_email_sent=email_sent,
        )

    def _create_account(self, tenant: Tenant, payload: RegisterInput) -> Account:
        violations = password_policy_violations(payload.password)
        if violations:
            raise AccountCreationError("password rejected by policy", violations)
        return self._repository.create_account(
            tenant_id=tenant.tenant_id,
            email=payload.email,
            password_hash=hash_password(payload.password),
            first_name=payload.first_name,
            last_name=payload.last_name,
        )

    def _compensate(self, tenant: Tenant, cause: AccountCreationError) -> AuthFailure:
        """Delete ``tenant`` and describe the failure; a lost email race stays ``DuplicateEmail``."""
        logger.warning(
            "account creation failed for tenant %s, removing tenant: %s", tenant.tenant_id, cause
        )
        if cause.duplicate_email:
            failure = AuthFailure(ErrorCode.DUPLICATE_EMAIL)
        else:
            failure = AuthFailure(ErrorCode.USER_CREATION_FAILED, details=cause.details)
        try:
            self._repository.delete_tenant(tenant.tenant_id)
        except Exception:
            ORPHANED_TENANTS.inc()
            logger.critical(
                "%s: compensating delete failed, tenant %s requires operator cleanup",
                ErrorCode.TENANT_ORPHANED.value,
                tenant.tenant_id,
                exc_info=True,
            )
            failure.orphaned_tenant_id = tenant.tenant_id
        return failure
