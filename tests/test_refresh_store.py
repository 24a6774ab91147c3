"""Tests for the in-memory and Redis-backed refresh token stores."""

from __future__ import annotations

import threading
from datetime import timedelta

import fakeredis
import pytest

from crm_identity.domain.contracts import RefreshTokenRecord
from crm_identity.domain.errors import InvalidOrExpiredRefreshToken
from crm_identity.security.redis_refresh_store import RedisRefreshTokenStore
from crm_identity.security.refresh_store import InMemoryRefreshTokenStore

from .conftest import FakeClock


def _record(clock: FakeClock, account_id: str = "acct-1", **lifetime: float) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        account_id=account_id,
        issued_at=clock(),
        expires_at=clock() + timedelta(**(lifetime or {"days": 7})),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def redis_client() -> fakeredis.FakeStrictRedis:
    client = fakeredis.FakeStrictRedis()
    client.flushall()
    return client


@pytest.fixture(params=["memory", "redis"])
def any_store(request, clock, redis_client):
    if request.param == "memory":
        return InMemoryRefreshTokenStore(clock=clock)
    return RedisRefreshTokenStore(redis_client, key_prefix="test", clock=clock)


def test_redeem_returns_account_and_consumes_token(any_store, clock):
    any_store.put("tok-1", _record(clock))

    assert any_store.redeem("tok-1") == "acct-1"
    with pytest.raises(InvalidOrExpiredRefreshToken):
        any_store.redeem("tok-1")


def test_redeem_unknown_token_fails(any_store):
    with pytest.raises(InvalidOrExpiredRefreshToken):
        any_store.redeem("never-issued")


def test_redeem_expired_token_fails(any_store, clock):
    any_store.put("tok-old", _record(clock, hours=1))
    clock.advance(hours=2)

    with pytest.raises(InvalidOrExpiredRefreshToken):
        any_store.redeem("tok-old")


def test_concurrent_redemption_has_exactly_one_winner(any_store, clock):
    any_store.put("shared", _record(clock))
    workers = 8
    barrier = threading.Barrier(workers)
    successes: list[str] = []
    failures: list[Exception] = []
    lock = threading.Lock()

    def attempt() -> None:
        barrier.wait()
        try:
            account_id = any_store.redeem("shared")
        except InvalidOrExpiredRefreshToken as exc:
            with lock:
                failures.append(exc)
        else:
            with lock:
                successes.append(account_id)

    threads = [threading.Thread(target=attempt) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert successes == ["acct-1"]
    assert len(failures) == workers - 1


def test_memory_store_removes_expired_entry_on_failed_redeem(clock):
    store = InMemoryRefreshTokenStore(clock=clock)
    store.put("tok-old", _record(clock, minutes=5))
    clock.advance(minutes=10)

    with pytest.raises(InvalidOrExpiredRefreshToken):
        store.redeem("tok-old")
    assert "tok-old" not in store


def test_memory_store_put_evicts_expired_entries(clock):
    store = InMemoryRefreshTokenStore(clock=clock)
    store.put("short", _record(clock, minutes=1))
    store.put("long", _record(clock, days=1))
    clock.advance(minutes=5)

    store.put("fresh", _record(clock, days=1))

    assert "short" not in store
    assert "long" in store
    assert len(store) == 2


def test_redis_store_sets_ttl_from_expiry(redis_client, clock):
    store = RedisRefreshTokenStore(redis_client, key_prefix="test", clock=clock)
    store.put("tok", _record(clock, hours=2))

    ttl = redis_client.ttl("test:tok")
    assert 7100 < ttl <= 7200


def test_redis_store_skips_already_expired_records(redis_client, clock):
    store = RedisRefreshTokenStore(redis_client, key_prefix="test", clock=clock)
    record = RefreshTokenRecord(
        account_id="acct-1",
        issued_at=clock() - timedelta(days=8),
        expires_at=clock() - timedelta(days=1),
    )
    store.put("stale", record)

    assert redis_client.exists("test:stale") == 0
