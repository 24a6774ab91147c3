from __future__ import annotations

import threading

import pytest

from crm_identity.domain.contracts import LoginResult, TokenBundle
from crm_identity.domain.errors import AuthFailure, ErrorCode

from .conftest import PASSWORD, register_input


@pytest.fixture
def confirmed_account(service, repository):
    result = service.register(register_input())
    repository.mark_email_confirmed(result.account_id)
    return repository.get_account(result.account_id)


def test_login_refused_until_email_confirmed(service, store):
    service.register(register_input())

    result = service.login("a@x.com", PASSWORD)

    assert isinstance(result, AuthFailure)
    assert result.code is ErrorCode.EMAIL_NOT_CONFIRMED
    assert result.email_confirmation_required is True
    assert len(store) == 0


def test_unknown_email_and_wrong_password_are_indistinguishable(service, confirmed_account):
    wrong_password = service.login("a@x.com", "Nope12345!")
    unknown_email = service.login("nobody@x.com", PASSWORD)

    assert isinstance(wrong_password, AuthFailure)
    assert wrong_password == unknown_email
    assert wrong_password.code is ErrorCode.INVALID_CREDENTIALS
    assert wrong_password.message == unknown_email.message


def test_unconfirmed_account_with_wrong_password_gets_invalid_credentials(service):
    service.register(register_input())

    result = service.login("a@x.com", "Wrong12345!")

    assert result.code is ErrorCode.INVALID_CREDENTIALS


def test_login_returns_tokens_and_public_user(service, confirmed_account):
    result = service.login("A@X.com", PASSWORD)

    assert isinstance(result, LoginResult)
    assert result.user.id == confirmed_account.account_id
    assert result.user.email == "a@x.com"
    assert result.user.tenant_id == confirmed_account.tenant_id
    assert not hasattr(result.user, "password_hash")
    claims = service.issuer.decode(result.tokens.access_token)
    assert claims["sub"] == confirmed_account.account_id
    assert claims["tenant_id"] == confirmed_account.tenant_id
    assert claims["roles"] == ["Admin"]


def test_refresh_rotates_and_invalidates_old_token(service, confirmed_account):
    login = service.login("a@x.com", PASSWORD)

    rotated = service.refresh(login.tokens.refresh_token)
    replay = service.refresh(login.tokens.refresh_token)

    assert isinstance(rotated, TokenBundle)
    assert rotated.refresh_token != login.tokens.refresh_token
    assert service.issuer.decode(rotated.access_token)["sub"] == confirmed_account.account_id
    assert isinstance(replay, AuthFailure)
    assert replay.code is ErrorCode.INVALID_OR_EXPIRED_REFRESH_TOKEN
    assert isinstance(service.refresh(rotated.refresh_token), TokenBundle)


@pytest.mark.parametrize("token", ["", "not-a-real-token"])
def test_refresh_with_unknown_token_fails(service, token):
    result = service.refresh(token)

    assert isinstance(result, AuthFailure)
    assert result.code is ErrorCode.INVALID_OR_EXPIRED_REFRESH_TOKEN


def test_refresh_for_deleted_account_fails(service, repository, confirmed_account):
    login = service.login("a@x.com", PASSWORD)
    del repository.accounts[confirmed_account.account_id]

    result = service.refresh(login.tokens.refresh_token)

    assert result.code is ErrorCode.INVALID_OR_EXPIRED_REFRESH_TOKEN


def test_concurrent_refresh_issues_one_new_pair(service, confirmed_account):
    token = service.login("a@x.com", PASSWORD).tokens.refresh_token
    barrier = threading.Barrier(2)
    results: list[object] = []

    def attempt() -> None:
        barrier.wait()
        results.append(service.refresh(token))

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    bundles = [r for r in results if isinstance(r, TokenBundle)]
    failures = [r for r in results if isinstance(r, AuthFailure)]
    assert len(bundles) == 1
    assert len(failures) == 1
    assert failures[0].code is ErrorCode.INVALID_OR_EXPIRED_REFRESH_TOKEN


def test_current_user_projection(service, confirmed_account):
    user = service.get_current_user(confirmed_account.account_id)

    assert user.first_name == "Amy"
    assert user.last_name == "Lee"
    assert service.get_current_user("missing").code is ErrorCode.USER_NOT_FOUND
