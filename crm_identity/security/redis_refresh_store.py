"""Redis-backed refresh token store."""

from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from typing import Callable

from redis import Redis

from ..domain.contracts import RefreshTokenRecord
from ..domain.errors import InvalidOrExpiredRefreshToken


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RedisRefreshTokenStore:
    """Distributed refresh token store.

    Entries carry a Redis TTL matching their expiry, so Redis performs the
    eviction. Redemption uses ``GETDEL``, which reads and removes the key in a
    single command.
    """

    def __init__(
        self,
        client: Redis,
        *,
        key_prefix: str = "refresh",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Store the Redis client, key namespace, and clock."""
        self._client = client
        self._key_prefix = key_prefix
        self._clock = clock

    def _key(self, token: str) -> str:
        return f"{self._key_prefix}:{token}"

    def put(self, token: str, record: RefreshTokenRecord) -> None:
        """Persist the token with a TTL equal to its remaining lifetime."""
        ttl = math.ceil((record.expires_at - self._clock()).total_seconds())
        if ttl <= 0:
            return
        payload = json.dumps(
            {
                "account_id": record.account_id,
                "issued_at": record.issued_at.isoformat(),
                "expires_at": record.expires_at.isoformat(),
            }
        )
        self._client.set(self._key(token), payload, ex=ttl)

    def redeem(self, token: str) -> str:
        """Atomically consume the token and return its account identifier."""
        raw = self._client.getdel(self._key(token))
        if raw is None:
            raise InvalidOrExpiredRefreshToken("invalid refresh token")
        data = json.loads(raw)
        if datetime.fromisoformat(data["expires_at"]) <= self._clock():
            raise InvalidOrExpiredRefreshToken("refresh token expired")
        return data["account_id"]
