"""
Shared service instances and the FastAPI dependencies that hand them out.

Store backends come from configuration (TTL_STORE_BACKEND,
ACCOUNT_STORE_BACKEND); routes never construct stores themselves.
"""

from __future__ import annotations

from backend.repos.account_repo import create_account_repo
from backend.repos.ttl_store import create_ttl_store
from backend.services.pairing_authority import PairingAuthority
from backend.services.sync_reconciler import SyncReconciler

ttl_store = create_ttl_store()
account_repo = create_account_repo()

pairing_authority = PairingAuthority(ttl_store)
sync_reconciler = SyncReconciler(pairing_authority, account_repo)


def get_pairing_authority() -> PairingAuthority:
    return pairing_authority


def get_sync_reconciler() -> SyncReconciler:
    return sync_reconciler
