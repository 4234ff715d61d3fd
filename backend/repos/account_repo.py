"""
Repository for account records.

Writes to one (owner_id, external_id) key are serialized: the caller passes a
pure merge function and the repo applies it while holding that key, so two
concurrent syncs never interleave partial field merges. No lock is held
across anything but the store itself.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import asyncpg

from backend import config
from backend.db import system_conn
from backend.errors import PersistenceError
from backend.models.account import AccountRecord, DeviceFingerprint, HealthStatus

logger = logging.getLogger(__name__)

# Builds the record to store from the current one (None when absent)
MergeFn = Callable[[AccountRecord | None], AccountRecord]

_UPSERT_ATTEMPTS = 3

_COLUMNS = """
    owner_id, external_id, display_name, session_cookie_blob, access_token,
    csrf_token, secondary_tokens, device_fingerprint, auth_mode, token_status,
    health_is_healthy, health_last_error, health_last_error_at, sync_source,
    last_sync_at, created_at, updated_at
"""


class AccountRepo(ABC):
    """All account record storage operations."""

    @abstractmethod
    async def get(self, owner_id: str, external_id: str) -> AccountRecord | None:
        """Look up one record by its (owner_id, external_id) key."""

    @abstractmethod
    async def list_for_owner(self, owner_id: str) -> list[AccountRecord]:
        """All records of an owner, most recently synced first."""

    @abstractmethod
    async def upsert(self, owner_id: str, external_id: str, merge: MergeFn) -> tuple[AccountRecord, bool]:
        """
        Create or update the record under (owner_id, external_id).

        Args:
            owner_id: Owning principal
            external_id: Account id on the target surface
            merge: Receives the stored record (or None) and returns the new one

        Returns:
            (stored record, True if it was created)
        """

    @abstractmethod
    async def modify(self, owner_id: str, external_id: str, mutate: MergeFn) -> AccountRecord | None:
        """Apply mutate to an existing record. Returns None if there is none."""


class InMemoryAccountRepo(AccountRepo):
    """
    Process-local account storage guarded by one asyncio lock per key.

    Single instance only. Locks are never dropped, so the lock map grows with
    the number of records it guards.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], AccountRecord] = {}
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    def _lock_for(self, key: tuple[str, str]) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def get(self, owner_id: str, external_id: str) -> AccountRecord | None:
        record = self._records.get((owner_id, external_id))
        return record.model_copy(deep=True) if record else None

    async def list_for_owner(self, owner_id: str) -> list[AccountRecord]:
        records = [r.model_copy(deep=True) for (owner, _), r in self._records.items() if owner == owner_id]
        return sorted(records, key=lambda r: r.last_sync_at, reverse=True)

    async def upsert(self, owner_id: str, external_id: str, merge: MergeFn) -> tuple[AccountRecord, bool]:
        key = (owner_id, external_id)
        async with self._lock_for(key):
            existing = self._records.get(key)
            record = merge(existing.model_copy(deep=True) if existing else None)
            self._records[key] = record
            return record.model_copy(deep=True), existing is None

    async def modify(self, owner_id: str, external_id: str, mutate: MergeFn) -> AccountRecord | None:
        key = (owner_id, external_id)
        async with self._lock_for(key):
            existing = self._records.get(key)
            if existing is None:
                return None
            record = mutate(existing.model_copy(deep=True))
            self._records[key] = record
            return record.model_copy(deep=True)


def _row_to_record(row: asyncpg.Record) -> AccountRecord:
    """Convert a database row to an AccountRecord."""
    fingerprint = row["device_fingerprint"]
    return AccountRecord(
        external_id=row["external_id"],
        owner_id=row["owner_id"],
        display_name=row["display_name"],
        session_cookie_blob=row["session_cookie_blob"],
        access_token=row["access_token"],
        csrf_token=row["csrf_token"],
        secondary_tokens=row["secondary_tokens"],
        device_fingerprint=DeviceFingerprint.model_validate(fingerprint) if fingerprint else None,
        auth_mode=row["auth_mode"],
        token_status=row["token_status"],
        health_status=HealthStatus(
            is_healthy=row["health_is_healthy"],
            last_error=row["health_last_error"],
            last_error_at=row["health_last_error_at"],
        ),
        sync_source=row["sync_source"],
        last_sync_at=row["last_sync_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _record_to_args(record: AccountRecord) -> list[Any]:
    """Positional query arguments in _COLUMNS order."""
    return [
        record.owner_id,
        record.external_id,
        record.display_name,
        record.session_cookie_blob,
        record.access_token,
        record.csrf_token,
        record.secondary_tokens,
        record.device_fingerprint.model_dump() if record.device_fingerprint else None,
        record.auth_mode.value,
        record.token_status.value,
        record.health_status.is_healthy,
        record.health_status.last_error,
        record.health_status.last_error_at,
        record.sync_source,
        record.last_sync_at,
        record.created_at,
        record.updated_at,
    ]


_INSERT_SQL = f"""
    INSERT INTO account_records ({_COLUMNS})
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17)
    ON CONFLICT (owner_id, external_id) DO NOTHING
    RETURNING *
"""

_UPDATE_SQL = """
    UPDATE account_records
    SET display_name = $3,
        session_cookie_blob = $4,
        access_token = $5,
        csrf_token = $6,
        secondary_tokens = $7,
        device_fingerprint = $8,
        auth_mode = $9,
        token_status = $10,
        health_is_healthy = $11,
        health_last_error = $12,
        health_last_error_at = $13,
        sync_source = $14,
        last_sync_at = $15,
        created_at = $16,
        updated_at = $17
    WHERE owner_id = $1 AND external_id = $2
    RETURNING *
"""


class PostgresAccountRepo(AccountRepo):
    """
    Account storage in the account_records table.

    Updates run under SELECT ... FOR UPDATE inside one transaction. When two
    callers race to create the same record, the loser's insert is a no-op and
    it retries through the update path.
    """

    async def get(self, owner_id: str, external_id: str) -> AccountRecord | None:
        async with system_conn() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM account_records WHERE owner_id = $1 AND external_id = $2",
                owner_id,
                external_id,
            )
            return _row_to_record(row) if row else None

    async def list_for_owner(self, owner_id: str) -> list[AccountRecord]:
        async with system_conn() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM account_records
                WHERE owner_id = $1
                ORDER BY last_sync_at DESC
                """,
                owner_id,
            )
            return [_row_to_record(row) for row in rows]

    async def upsert(self, owner_id: str, external_id: str, merge: MergeFn) -> tuple[AccountRecord, bool]:
        for attempt in range(1, _UPSERT_ATTEMPTS + 1):
            async with system_conn() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT * FROM account_records
                    WHERE owner_id = $1 AND external_id = $2
                    FOR UPDATE
                    """,
                    owner_id,
                    external_id,
                )
                if row:
                    record = merge(_row_to_record(row))
                    updated = await conn.fetchrow(_UPDATE_SQL, *_record_to_args(record))
                    return _row_to_record(updated), False

                record = merge(None)
                inserted = await conn.fetchrow(_INSERT_SQL, *_record_to_args(record))
                if inserted:
                    return _row_to_record(inserted), True

            logger.info(
                "Concurrent create for account %s (owner %s), retrying (attempt %d)",
                external_id,
                owner_id,
                attempt,
            )

        raise PersistenceError(f"Could not upsert account {external_id} after {_UPSERT_ATTEMPTS} attempts")

    async def modify(self, owner_id: str, external_id: str, mutate: MergeFn) -> AccountRecord | None:
        async with system_conn() as conn:
            row = await conn.fetchrow(
                """
                SELECT * FROM account_records
                WHERE owner_id = $1 AND external_id = $2
                FOR UPDATE
                """,
                owner_id,
                external_id,
            )
            if not row:
                return None
            record = mutate(_row_to_record(row))
            updated = await conn.fetchrow(_UPDATE_SQL, *_record_to_args(record))
            return _row_to_record(updated)


def create_account_repo(backend: str | None = None) -> AccountRepo:
    """Build the account repo named by ACCOUNT_STORE_BACKEND (or the explicit override)."""
    backend = backend or config.settings.ACCOUNT_STORE_BACKEND
    if backend == "memory":
        return InMemoryAccountRepo()
    if backend == "postgres":
        return PostgresAccountRepo()
    raise ValueError(f"Unknown account store backend: {backend}")
