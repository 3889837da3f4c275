"""Database repository for relay accounts."""

from __future__ import annotations

import uuid
from datetime import datetime

from psycopg import errors
from psycopg.rows import tuple_row
from psycopg_pool import AsyncConnectionPool

from .domain.account import Account
from .domain.errors import Conflict

_COLUMNS = """
    account_id::text, email, password_hash, created_at, updated_at, client_id,
    target_emails, allowed_origins, is_verified, is_accepting_emails,
    verification_token, verification_token_expire,
    reset_password_token, reset_password_expire
"""


def _parse_id(account_id: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(account_id))
    except ValueError:
        return None


class AccountRepository:
    """Postgres-backed account store.

    Every mutation is a single-row statement, so each token set, token clear
    and redemption is atomic with respect to the record it touches.
    """

    def __init__(self, pool: AsyncConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    async def _fetch_one(self, query: str, params: tuple, *, write: bool = False) -> Account | None:
        async with self._pool.connection() as conn:
            async with conn.cursor(row_factory=tuple_row) as cur:
                await cur.execute(query, params)
                row = await cur.fetchone()
            if write:
                await conn.commit()
        if not row:
            return None
        return self._map_record(row)

    async def create_account(
        self,
        *,
        email: str,
        password_hash: str,
        verification_token: str,
        verification_token_expire: datetime,
    ) -> Account:
        """Insert a new unverified account; a taken email raises ``Conflict``."""
        try:
            account = await self._fetch_one(
                f"""
                INSERT INTO accounts (
                    account_id, email, password_hash, verification_token, verification_token_expire
                )
                VALUES (%s, %s, %s, %s, %s)
                RETURNING {_COLUMNS}
                """,
                (uuid.uuid4(), email, password_hash, verification_token, verification_token_expire),
                write=True,
            )
        except errors.UniqueViolation as exc:
            raise Conflict("User already exists") from exc
        if account is None:
            raise RuntimeError("account insert returned no row")
        return account

    async def get_account(self, account_id: str) -> Account | None:
        """Fetch an account by identifier or return ``None``."""
        key = _parse_id(account_id)
        if key is None:
            return None
        return await self._fetch_one(f"SELECT {_COLUMNS} FROM accounts WHERE account_id = %s", (key,))

    async def get_by_email(self, email: str) -> Account | None:
        return await self._fetch_one(f"SELECT {_COLUMNS} FROM accounts WHERE email = %s", (email,))

    async def get_by_client_id(self, client_id: str) -> Account | None:
        """Resolve the public routing key used in relay URLs."""
        return await self._fetch_one(
            f"SELECT {_COLUMNS} FROM accounts WHERE client_id = %s", (client_id,)
        )

    async def redeem_verification_token(self, token: str, now: datetime) -> Account | None:
        """Mark the holder of a live verification token verified and clear the token pair."""
        return await self._fetch_one(
            f"""
            UPDATE accounts
            SET is_verified = TRUE,
                verification_token = NULL,
                verification_token_expire = NULL,
                updated_at = NOW()
            WHERE verification_token = %s AND verification_token_expire > %s
            RETURNING {_COLUMNS}
            """,
            (token, now),
            write=True,
        )

    async def get_by_reset_token(self, token: str, now: datetime) -> Account | None:
        """Return the holder of a live password reset token."""
        return await self._fetch_one(
            f"""
            SELECT {_COLUMNS} FROM accounts
            WHERE reset_password_token = %s AND reset_password_expire > %s
            """,
            (token, now),
        )

    async def redeem_reset_token(self, token: str, password_hash: str, now: datetime) -> Account | None:
        """Store a new password for the holder of a live reset token and clear the token pair."""
        return await self._fetch_one(
            f"""
            UPDATE accounts
            SET password_hash = %s,
                reset_password_token = NULL,
                reset_password_expire = NULL,
                updated_at = NOW()
            WHERE reset_password_token = %s AND reset_password_expire > %s
            RETURNING {_COLUMNS}
            """,
            (password_hash, token, now),
            write=True,
        )

    async def set_verification_token(
        self, account_id: str, token: str | None, expires_at: datetime | None
    ) -> Account | None:
        return await self._fetch_one(
            f"""
            UPDATE accounts
            SET verification_token = %s, verification_token_expire = %s, updated_at = NOW()
            WHERE account_id = %s
            RETURNING {_COLUMNS}
            """,
            (token, expires_at, _parse_id(account_id)),
            write=True,
        )

    async def set_reset_token(
        self, account_id: str, token: str | None, expires_at: datetime | None
    ) -> Account | None:
        """Set or, with ``None`` values, clear the password reset token pair."""
        return await self._fetch_one(
            f"""
            UPDATE accounts
            SET reset_password_token = %s, reset_password_expire = %s, updated_at = NOW()
            WHERE account_id = %s
            RETURNING {_COLUMNS}
            """,
            (token, expires_at, _parse_id(account_id)),
            write=True,
        )

    async def update_password(self, account_id: str, password_hash: str) -> Account | None:
        return await self._fetch_one(
            f"""
            UPDATE accounts
            SET password_hash = %s, updated_at = NOW()
            WHERE account_id = %s
            RETURNING {_COLUMNS}
            """,
            (password_hash, _parse_id(account_id)),
            write=True,
        )

    async def update_profile(
        self,
        account_id: str,
        *,
        client_id: str,
        target_emails: list[str],
        allowed_origins: list[str] | None,
        is_accepting_emails: bool | None,
    ) -> Account | None:
        """Apply owner settings; ``None`` leaves the matching column unchanged."""
        try:
            return await self._fetch_one(
                f"""
                UPDATE accounts
                SET client_id = %s,
                    target_emails = %s::text[],
                    allowed_origins = COALESCE(%s::text[], allowed_origins),
                    is_accepting_emails = COALESCE(%s, is_accepting_emails),
                    updated_at = NOW()
                WHERE account_id = %s
                RETURNING {_COLUMNS}
                """,
                (client_id, target_emails, allowed_origins, is_accepting_emails, _parse_id(account_id)),
                write=True,
            )
        except errors.UniqueViolation as exc:
            raise Conflict("Client ID already taken") from exc

    async def add_target_email(self, account_id: str, email: str) -> Account | None:
        """Append ``email`` unless already present; returns ``None`` when nothing changed."""
        return await self._fetch_one(
            f"""
            UPDATE accounts
            SET target_emails = array_append(target_emails, %s::text), updated_at = NOW()
            WHERE account_id = %s AND NOT (%s = ANY(target_emails))
            RETURNING {_COLUMNS}
            """,
            (email, _parse_id(account_id), email),
            write=True,
        )

    async def remove_target_email(self, account_id: str, email: str) -> Account | None:
        """Remove ``email`` unless it is the sole entry; returns ``None`` when nothing changed."""
        return await self._fetch_one(
            f"""
            UPDATE accounts
            SET target_emails = array_remove(target_emails, %s::text), updated_at = NOW()
            WHERE account_id = %s
              AND %s = ANY(target_emails)
              AND cardinality(array_remove(target_emails, %s::text)) >= 1
            RETURNING {_COLUMNS}
            """,
            (email, _parse_id(account_id), email, email),
            write=True,
        )

    async def delete_account(self, account_id: str) -> bool:
        key = _parse_id(account_id)
        if key is None:
            return False
        async with self._pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("DELETE FROM accounts WHERE account_id = %s", (key,))
                deleted = cur.rowcount
            await conn.commit()
        return deleted > 0

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            email=row[1],
            password_hash=row[2],
            created_at=row[3],
            updated_at=row[4],
            client_id=row[5],
            target_emails=list(row[6] or []),
            allowed_origins=list(row[7] or []),
            is_verified=row[8],
            is_accepting_emails=row[9],
            verification_token=row[10],
            verification_token_expire=row[11],
            reset_password_token=row[12],
            reset_password_expire=row[13],
        )
