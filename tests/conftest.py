from __future__ import annotations

import dataclasses
import threading
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from crm_identity.background import BackgroundDispatcher
from crm_identity.config import Settings
from crm_identity.domain.account import Account, Tenant
from crm_identity.domain.contracts import RegisterInput
from crm_identity.domain.errors import AccountCreationError
from crm_identity.main import build_auth_service
from crm_identity.security.confirmation_tokens import JwtConfirmationTokenProvider
from crm_identity.security.refresh_store import InMemoryRefreshTokenStore

TEST_SECRET = "unit-test-signing-secret-with-more-than-32-bytes"
PASSWORD = "Pw123456!"


class FakeRepository:
    """In-memory repository mimicking Postgres-backed behaviors."""

    def __init__(self) -> None:
        self.tenants: dict[str, Tenant] = {}
        self.accounts: dict[str, Account] = {}
        self.account_error: Exception | None = None
        self.fail_tenant_delete = False
        # simulates a concurrent registration that is not yet visible to lookups
        self.hide_accounts_from_lookup = False
        self._lock = threading.Lock()

    def create_tenant(self, *, name: str, email: str) -> Tenant:
        now = datetime.now(timezone.utc)
        tenant = Tenant(tenant_id=str(uuid.uuid4()), name=name, email=email, created_at=now, updated_at=now)
        self.tenants[tenant.tenant_id] = tenant
        return tenant

    def delete_tenant(self, tenant_id: str) -> None:
        if self.fail_tenant_delete:
            raise ConnectionError("database unavailable")
        self.tenants.pop(tenant_id, None)

    def create_account(
        self,
        *,
        tenant_id: str,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
    ) -> Account:
        if self.account_error is not None:
            raise self.account_error
        if tenant_id not in self.tenants:
            raise AccountCreationError("unknown tenant")
        if self._by_email(email) is not None:
            raise AccountCreationError("duplicate email", duplicate_email=True)
        account = Account(
            account_id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            created_at=datetime.now(timezone.utc),
        )
        self.accounts[account.account_id] = account
        return dataclasses.replace(account)

    def add_role(self, account_id: str, role: str) -> None:
        account = self.accounts[account_id]
        account.roles = account.roles | {role}

    def find_account_by_email(self, email: str) -> Account | None:
        if self.hide_accounts_from_lookup:
            return None
        account = self._by_email(email)
        return dataclasses.replace(account) if account else None

    def _by_email(self, email: str) -> Account | None:
        for account in self.accounts.values():
            if account.email.lower() == email.lower():
                return account
        return None

    def get_account(self, account_id: str) -> Account | None:
        account = self.accounts.get(account_id)
        return dataclasses.replace(account) if account else None

    def mark_email_confirmed(self, account_id: str) -> bool:
        with self._lock:
            account = self.accounts[account_id]
            if account.email_confirmed:
                return False
            account.email_confirmed = True
            return True


@dataclasses.dataclass
class SentEmail:
    to: str
    subject: str
    body: str


class FakeEmailSender:
    """Records outgoing mail; can be told to report failure or raise."""

    def __init__(self) -> None:
        self.sent: list[SentEmail] = []
        self.deliver = True
        self.raise_for_subjects: tuple[str, ...] = ()

    def send(self, to: str, subject: str, body: str) -> bool:
        if any(fragment in subject for fragment in self.raise_for_subjects):
            raise RuntimeError("smtp relay exploded")
        self.sent.append(SentEmail(to, subject, body))
        return self.deliver

    def subjects(self) -> list[str]:
        return [mail.subject for mail in self.sent]


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings() -> Settings:
    return Settings(jwt_secret=TEST_SECRET, public_base_url="http://crm.test")


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def store() -> InMemoryRefreshTokenStore:
    return InMemoryRefreshTokenStore()


@pytest.fixture
def dispatcher():
    dispatcher = BackgroundDispatcher(max_workers=2)
    yield dispatcher
    dispatcher.shutdown(wait=True)


@pytest.fixture
def service(settings, repository, store, email_sender, dispatcher):
    return build_auth_service(settings, repository, store, email_sender, dispatcher)


@pytest.fixture
def confirmation_tokens(settings) -> JwtConfirmationTokenProvider:
    return JwtConfirmationTokenProvider(settings)


def register_input(email: str = "a@x.com", password: str = PASSWORD, tenant: str = "AcmeCo") -> RegisterInput:
    return RegisterInput(
        email=email,
        password=password,
        first_name="Amy",
        last_name="Lee",
        tenant_name=tenant,
    )
