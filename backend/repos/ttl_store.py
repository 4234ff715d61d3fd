"""
Expiring key-value store with one-time claim semantics.

Pairing codes and ephemeral tokens live here. Two implementations:

- InMemoryTTLStore: process-local, for single-instance deployments and tests.
- PostgresTTLStore: shared across instances via the ttl_entries table.

The backend is picked by TTL_STORE_BACKEND through create_ttl_store().

Expired entries are treated as absent by get() and claim() whether or not they
have been swept yet. claim() is atomic: of any number of concurrent callers on
the same key, exactly one succeeds. A claimed entry stays readable through
get() until it expires, so observers can see that it was claimed.
"""

from __future__ import annotations

import hashlib
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Any

import asyncpg

from backend import config
from backend.db import system_conn


def utcnow() -> datetime:
    return datetime.now(UTC)


def hash_secret(secret: str) -> str:
    """Hash a code or token using SHA-256 so raw secrets are never stored."""
    return hashlib.sha256(secret.encode()).hexdigest()


class TTLStoreError(Exception):
    """Base class for TTL store lookups that did not yield an entry."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(key)


class EntryNotFound(TTLStoreError):
    """No live entry under this key."""


class EntryExpired(EntryNotFound):
    """The entry is still held but past its expiry, so it counts as absent."""


class EntryAlreadyClaimed(TTLStoreError):
    """The entry was consumed by an earlier claim."""


@dataclass
class TTLEntry:
    """A stored value with its expiry and claim state."""

    key: str
    value: dict[str, Any]
    expires_at: datetime
    created_at: datetime
    claimed_at: datetime | None = None

    @property
    def claimed(self) -> bool:
        return self.claimed_at is not None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class TTLStore(ABC):
    """Contract shared by every TTL store backend."""

    @abstractmethod
    async def put(self, key: str, value: dict[str, Any], ttl_seconds: int) -> TTLEntry:
        """Store value under key for ttl_seconds, replacing any previous entry."""

    @abstractmethod
    async def get(self, key: str) -> TTLEntry:
        """
        Read a live entry without consuming it.

        Raises:
            EntryNotFound: Unknown key (EntryExpired if held but expired)
        """

    @abstractmethod
    async def claim(self, key: str) -> TTLEntry:
        """
        Atomically read an entry and mark it consumed.

        A prior claim is reported even after expiry, so a consumed entry never
        looks merely expired.

        Raises:
            EntryAlreadyClaimed: A previous claim succeeded
            EntryExpired: Never claimed and past its expiry
            EntryNotFound: Unknown key
        """

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove an entry. Returns True if something was removed."""

    @abstractmethod
    async def sweep(self, retention_seconds: int = 0) -> int:
        """Physically delete entries expired more than retention_seconds ago."""


class InMemoryTTLStore(TTLStore):
    """
    Process-local TTL store.

    A threading lock guards every read-modify-write, so claim() stays atomic
    for coroutines and threads alike. Entries are not shared between
    processes; use PostgresTTLStore when running more than one instance.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._entries: dict[str, TTLEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    async def put(self, key: str, value: dict[str, Any], ttl_seconds: int) -> TTLEntry:
        now = self._clock()
        entry = TTLEntry(
            key=key,
            value=dict(value),
            expires_at=now + timedelta(seconds=ttl_seconds),
            created_at=now,
        )
        with self._lock:
            self._entries[key] = entry
        return replace(entry, value=dict(entry.value))

    async def get(self, key: str) -> TTLEntry:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                raise EntryNotFound(key)
            if entry.is_expired(now):
                raise EntryExpired(key)
            return replace(entry, value=dict(entry.value))

    async def claim(self, key: str) -> TTLEntry:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                raise EntryNotFound(key)
            if entry.claimed:
                raise EntryAlreadyClaimed(key)
            if entry.is_expired(now):
                raise EntryExpired(key)
            entry.claimed_at = now
            return replace(entry, value=dict(entry.value))

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    async def sweep(self, retention_seconds: int = 0) -> int:
        cutoff = self._clock() - timedelta(seconds=retention_seconds)
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.expires_at <= cutoff]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)


def _row_to_entry(row: asyncpg.Record) -> TTLEntry:
    """Convert a database row to a TTLEntry."""
    return TTLEntry(
        key=row["key"],
        value=row["value"],
        expires_at=row["expires_at"],
        created_at=row["created_at"],
        claimed_at=row["claimed_at"],
    )


class PostgresTTLStore(TTLStore):
    """
    Shared TTL store backed by the ttl_entries table.

    claim() is a single conditional UPDATE, so the row lock taken by Postgres
    decides the race between concurrent claimers.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    async def put(self, key: str, value: dict[str, Any], ttl_seconds: int) -> TTLEntry:
        now = self._clock()
        expires_at = now + timedelta(seconds=ttl_seconds)
        async with system_conn() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO ttl_entries (key, value, expires_at, claimed_at, created_at)
                VALUES ($1, $2, $3, NULL, $4)
                ON CONFLICT (key) DO UPDATE
                SET value = EXCLUDED.value,
                    expires_at = EXCLUDED.expires_at,
                    claimed_at = NULL,
                    created_at = EXCLUDED.created_at
                RETURNING key, value, expires_at, claimed_at, created_at
                """,
                key,
                value,
                expires_at,
                now,
            )
            return _row_to_entry(row)

    async def get(self, key: str) -> TTLEntry:
        now = self._clock()
        async with system_conn() as conn:
            row = await conn.fetchrow(
                """
                SELECT key, value, expires_at, claimed_at, created_at
                FROM ttl_entries
                WHERE key = $1
                """,
                key,
            )
        if not row:
            raise EntryNotFound(key)
        entry = _row_to_entry(row)
        if entry.is_expired(now):
            raise EntryExpired(key)
        return entry

    async def claim(self, key: str) -> TTLEntry:
        now = self._clock()
        async with system_conn() as conn:
            row = await conn.fetchrow(
                """
                UPDATE ttl_entries
                SET claimed_at = $2
                WHERE key = $1 AND claimed_at IS NULL AND expires_at > $2
                RETURNING key, value, expires_at, claimed_at, created_at
                """,
                key,
                now,
            )
            if row:
                return _row_to_entry(row)

            # Lost or not eligible: work out why for the caller
            existing = await conn.fetchrow(
                "SELECT claimed_at FROM ttl_entries WHERE key = $1",
                key,
            )

        if not existing:
            raise EntryNotFound(key)
        if existing["claimed_at"] is not None:
            raise EntryAlreadyClaimed(key)
        raise EntryExpired(key)

    async def delete(self, key: str) -> bool:
        async with system_conn() as conn:
            result = await conn.execute("DELETE FROM ttl_entries WHERE key = $1", key)
        return result == "DELETE 1"

    async def sweep(self, retention_seconds: int = 0) -> int:
        cutoff = self._clock() - timedelta(seconds=retention_seconds)
        async with system_conn() as conn:
            result = await conn.execute(
                "DELETE FROM ttl_entries WHERE expires_at <= $1",
                cutoff,
            )
        # asyncpg returns "DELETE N" string
        parts = result.split()
        return int(parts[1]) if len(parts) == 2 else 0


def create_ttl_store(backend: str | None = None) -> TTLStore:
    """Build the TTL store named by TTL_STORE_BACKEND (or the explicit override)."""
    backend = backend or config.settings.TTL_STORE_BACKEND
    if backend == "memory":
        return InMemoryTTLStore()
    if backend == "postgres":
        return PostgresTTLStore()
    raise ValueError(f"Unknown TTL store backend: {backend}")
