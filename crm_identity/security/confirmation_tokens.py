"""Single-use, time-bounded email confirmation tokens."""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone
from typing import Protocol

import jwt

from ..config import Settings
from ..domain.account import Account
from .tokens import ALGORITHM, validate_signing_key

PURPOSE = "email_confirmation"


class IdentityTokenProvider(Protocol):
    def generate(self, account: Account) -> str: ...

    def verify(self, account: Account, token: str) -> bool: ...


def _security_stamp(account: Account) -> str:
    # Changes once the address is confirmed, which retires outstanding tokens.
    material = f"{account.account_id}:{account.email.lower()}:{int(account.email_confirmed)}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


class JwtConfirmationTokenProvider:
    """Confirmation tokens signed with the service key and bound to the account state."""

    def __init__(self, settings: Settings) -> None:
        self._key = validate_signing_key(settings.jwt_secret)
        self._issuer = settings.jwt_issuer
        self._ttl = timedelta(hours=settings.confirmation_token_ttl_hours)

    def generate(self, account: Account) -> str:
        """Sign a confirmation token that expires after the configured TTL."""
        now = datetime.now(timezone.utc)
        payload = {
            "iss": self._issuer,
            "sub": account.account_id,
            "purpose": PURPOSE,
            "stamp": _security_stamp(account),
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttl).timestamp()),
        }
        return jwt.encode(payload, self._key, algorithm=ALGORITHM)

    def verify(self, account: Account, token: str) -> bool:
        """Return ``True`` only for an unexpired token minted for this account state."""
        try:
            claims = jwt.decode(
                token,
                self._key,
                algorithms=[ALGORITHM],
                issuer=self._issuer,
                options={"require": ["exp", "sub"]},
            )
        except jwt.PyJWTError:
            return False
        return (
            claims.get("purpose") == PURPOSE
            and claims.get("sub") == account.account_id
            and claims.get("stamp") == _security_stamp(account)
        )
