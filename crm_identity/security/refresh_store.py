"""In-memory refresh token store with single-use redemption."""

from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Protocol

from ..domain.contracts import RefreshTokenRecord
from ..domain.errors import InvalidOrExpiredRefreshToken


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RefreshTokenStore(Protocol):
    """Keyed store of outstanding refresh tokens."""

    def put(self, token: str, record: RefreshTokenRecord) -> None: ...

    def redeem(self, token: str) -> str: ...


class InMemoryRefreshTokenStore:
    """Thread-safe refresh token store.

    ``redeem`` checks and removes an entry inside one critical section, so only
    one of several concurrent callers presenting the same token can succeed.
    Expired entries are evicted whenever a new token is stored.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._records: dict[str, RefreshTokenRecord] = {}
        self._lock = Lock()
        self._clock = clock

    def put(self, token: str, record: RefreshTokenRecord) -> None:
        """Store ``record`` under ``token`` after evicting expired entries."""
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            self._records[token] = record

    def redeem(self, token: str) -> str:
        """Remove ``token`` and return its account id; raises if unknown or expired."""
        now = self._clock()
        with self._lock:
            record = self._records.pop(token, None)
        if record is None:
            raise InvalidOrExpiredRefreshToken("invalid refresh token")
        if record.expires_at <= now:
            raise InvalidOrExpiredRefreshToken("refresh token expired")
        return record.account_id

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._records

    def _evict_expired(self, now: datetime) -> None:
        expired = [key for key, record in self._records.items() if record.expires_at <= now]
        for key in expired:
            del self._records[key]
