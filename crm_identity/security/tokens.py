"""Utilities for issuing and validating application JWTs."""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import jwt

from ..config import MIN_SIGNING_KEY_BYTES, Settings
from ..domain.account import Account
from ..domain.contracts import RefreshTokenRecord, TokenBundle
from ..domain.errors import SigningKeyMisconfigured
from .refresh_store import RefreshTokenStore

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
REFRESH_TOKEN_BYTES = 64


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_signing_key(secret: str | None) -> bytes:
    """Return the encoded secret, refusing anything shorter than 256 bits."""
    if not secret:
        raise SigningKeyMisconfigured("JWT_SECRET is not configured")
    key = secret.encode("utf-8")
    if len(key) < MIN_SIGNING_KEY_BYTES:
        raise SigningKeyMisconfigured(
            f"JWT_SECRET must be at least {MIN_SIGNING_KEY_BYTES} bytes long"
        )
    return key


def generate_refresh_token() -> str:
    """Return 512 bits of randomness encoded as URL-safe text."""
    return secrets.token_urlsafe(REFRESH_TOKEN_BYTES)


class TokenIssuer:
    """Builds signed access tokens and stores matching refresh tokens."""

    def __init__(
        self,
        settings: Settings,
        store: RefreshTokenStore,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Validate the signing key eagerly so misconfiguration fails at startup."""
        self._key = validate_signing_key(settings.jwt_secret)
        self._settings = settings
        self._store = store
        self._clock = clock

    def issue(self, account: Account) -> TokenBundle:
        """Issue an access/refresh pair for the given account.

        Parameters
        ----------
        account:
            Account whose identifier, tenant and roles are embedded in the claims.

        Returns
        -------
        TokenBundle
            Bearer access token, opaque refresh token and the access token's
            remaining lifetime in seconds.
        """
        issued_at = self._clock()
        access_expires = issued_at + timedelta(hours=self._settings.access_token_ttl_hours)
        payload: dict[str, Any] = {
            "iss": self._settings.jwt_issuer,
            "aud": self._settings.jwt_audience,
            "sub": account.account_id,
            "tenant_id": account.tenant_id,
            "roles": sorted(account.roles),
            "jti": str(uuid.uuid4()),
            "iat": int(issued_at.timestamp()),
            "exp": int(access_expires.timestamp()),
        }
        access_token = jwt.encode(payload, self._key, algorithm=ALGORITHM)

        refresh_token = generate_refresh_token()
        self._store.put(
            refresh_token,
            RefreshTokenRecord(
                account_id=account.account_id,
                issued_at=issued_at,
                expires_at=issued_at + timedelta(days=self._settings.refresh_token_ttl_days),
            ),
        )
        logger.debug("issued tokens for account %s in tenant %s", account.account_id, account.tenant_id)

        expires_in = max(0, int((access_expires - self._clock()).total_seconds()))
        return TokenBundle(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
        )

    def redeem(self, refresh_token: str) -> str:
        """Consume a refresh token, returning the account it was issued to."""
        return self._store.redeem(refresh_token)

    def decode(self, token: str) -> dict[str, Any]:
        """Decode and verify an access token returning its claims.

        Raises
        ------
        jwt.PyJWTError
            Propagated when the token is invalid, expired, or minted for another
            issuer or audience.
        """
        return jwt.decode(
            token,
            self._key,
            algorithms=[ALGORITHM],
            audience=self._settings.jwt_audience,
            issuer=self._settings.jwt_issuer,
            options={"require": ["exp", "iat", "sub", "jti"]},
        )
