from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


ADMIN_ROLE = "Admin"


@dataclass(slots=True)
class Tenant:
    """Organisation that owns accounts and client records."""

    tenant_id: str
    name: str
    email: str
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class Account:
    """Login-capable identity bound to exactly one tenant."""

    account_id: str
    tenant_id: str
    email: str
    password_hash: str
    first_name: str
    last_name: str
    created_at: datetime
    email_confirmed: bool = False
    roles: frozenset[str] = field(default_factory=frozenset)
