"""
Repository layer for linkbridge.

All SQL lives here and ONLY here. No database access outside this module.
"""

from backend.repos.account_repo import (
    AccountRepo,
    InMemoryAccountRepo,
    PostgresAccountRepo,
    create_account_repo,
)
from backend.repos.ttl_store import (
    InMemoryTTLStore,
    PostgresTTLStore,
    TTLStore,
    create_ttl_store,
)

__all__ = [
    "TTLStore",
    "InMemoryTTLStore",
    "PostgresTTLStore",
    "create_ttl_store",
    "AccountRepo",
    "InMemoryAccountRepo",
    "PostgresAccountRepo",
    "create_account_repo",
]
