"""Database repository for tenant and account data."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from psycopg import errors as pg_errors
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account, Tenant
from .domain.errors import AccountCreationError

_ACCOUNT_COLUMNS = """
    a.account_id, a.tenant_id, a.email, a.password_hash, a.first_name, a.last_name,
    a.created_at, a.email_confirmed,
    COALESCE(ARRAY_AGG(r.role) FILTER (WHERE r.role IS NOT NULL), '{}')
"""


class AccountRepository:
    """Postgres-backed tenant and account persistence."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def create_tenant(self, *, name: str, email: str) -> Tenant:
        """Insert a tenant row and return it."""
        tenant_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    INSERT INTO tenants (tenant_id, name, email, created_at, updated_at)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING tenant_id, name, email, created_at, updated_at
                    """,
                    (tenant_id, name, email, now, now),
                )
                row = cur.fetchone()
                conn.commit()
        return Tenant(*row)

    def delete_tenant(self, tenant_id: str) -> None:
        """Remove a tenant; used as the compensating step of a failed registration."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM tenants WHERE tenant_id = %s", (tenant_id,))
                conn.commit()

    def create_account(
        self,
        *,
        tenant_id: str,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
    ) -> Account:
        """Persist an account bound to ``tenant_id``.

        Raises
        ------
        AccountCreationError
            When the row violates a constraint. A concurrent registration that
            claimed the same email first sets ``duplicate_email``.
        """
        account_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        try:
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO accounts (
                            account_id, tenant_id, email, email_normalized, password_hash,
                            first_name, last_name, email_confirmed, created_at, updated_at
                        )
                        VALUES (%s, %s, %s, %s, %s, %s, %s, FALSE, %s, %s)
                        """,
                        (
                            account_id,
                            tenant_id,
                            email,
                            email.lower(),
                            password_hash,
                            first_name,
                            last_name,
                            now,
                            now,
                        ),
                    )
                    conn.commit()
        except pg_errors.UniqueViolation as exc:
            raise AccountCreationError(
                "email already registered", duplicate_email=True
            ) from exc
        except pg_errors.IntegrityError as exc:
            raise AccountCreationError("account violates a foreign key or check constraint") from exc
        return Account(
            account_id=account_id,
            tenant_id=tenant_id,
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            created_at=now,
        )

    def add_role(self, account_id: str, role: str) -> None:
        """Grant ``role`` to the account; granting it twice is a no-op."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO account_roles (account_id, role)
                    VALUES (%s, %s)
                    ON CONFLICT (account_id, role) DO NOTHING
                    """,
                    (account_id, role),
                )
                conn.commit()

    def find_account_by_email(self, email: str) -> Account | None:
        """Look an account up by case-insensitive email."""
        return self._fetch_account("a.email_normalized = %s", email.lower())

    def get_account(self, account_id: str) -> Account | None:
        """Load an account by id; ids that are not UUIDs resolve to ``None``."""
        try:
            account_uuid = uuid.UUID(account_id)
        except (TypeError, ValueError):
            return None
        return self._fetch_account("a.account_id = %s", str(account_uuid))

    def mark_email_confirmed(self, account_id: str) -> bool:
        """Flip the confirmation flag; returns ``False`` if it was already set."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE accounts
                    SET email_confirmed = TRUE, updated_at = NOW()
                    WHERE account_id = %s AND email_confirmed = FALSE
                    """,
                    (account_id,),
                )
                updated = cur.rowcount == 1
                conn.commit()
        return updated

    def _fetch_account(self, predicate: str, value: str) -> Account | None:
        query = f"""
            SELECT {_ACCOUNT_COLUMNS}
            FROM accounts a
            LEFT JOIN account_roles r ON r.account_id = a.account_id
            WHERE {predicate}
            GROUP BY a.account_id
        """
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, (value,))
                row = cur.fetchone()
                if not row:
                    return None
        return self._map_record(row)

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=str(row[0]),
            tenant_id=str(row[1]),
            email=row[2],
            password_hash=row[3],
            first_name=row[4],
            last_name=row[5],
            created_at=row[6],
            email_confirmed=row[7],
            roles=frozenset(row[8] or ()),
        )
