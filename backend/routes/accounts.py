"""Account routes: collector sync, cookie validation, owner status view."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from backend.auth import ephemeral_token_header, is_owner_authenticated
from backend.deps import get_sync_reconciler
from backend.models.account import (
    AccountSummary,
    SyncAccountRequest,
    SyncAccountResponse,
    ValidateCookiesRequest,
    ValidateCookiesResponse,
)
from backend.models.pairing import Owner, WireModel
from backend.services.sync_reconciler import SyncReconciler

router = APIRouter(prefix="/accounts", tags=["accounts"])

Reconciler = Annotated[SyncReconciler, Depends(get_sync_reconciler)]


class ReportFailureRequest(WireModel):
    """Failure reported by a consumer of the stored credentials."""

    model_config = {"extra": "forbid"}

    error: str
    token_expired: bool = False


@router.post("/sync")
async def sync_account(
    request: SyncAccountRequest,
    reconciler: Reconciler,
    token: str | None = Depends(ephemeral_token_header),
) -> SyncAccountResponse:
    """
    Upsert an account record from a harvested credential bundle.

    Authenticated by the X-Ephemeral-Token header from a pairing claim.
    """
    return await reconciler.sync_account(request, token)


@router.post("/validate-cookies")
async def validate_cookies(
    request: ValidateCookiesRequest,
    reconciler: Reconciler,
    token: str | None = Depends(ephemeral_token_header),
) -> ValidateCookiesResponse:
    """Check that a cookie blob belongs to the given account and carries a session."""
    return await reconciler.validate_session_cookies(request, token)


@router.get("")
async def list_accounts(
    reconciler: Reconciler,
    owner: Owner = Depends(is_owner_authenticated),
) -> list[AccountSummary]:
    """List the owner's synced accounts. Cookies and tokens are never returned."""
    return await reconciler.list_accounts(owner.id)


@router.post("/{external_id}/failures")
async def report_failure(
    external_id: str,
    request: ReportFailureRequest,
    reconciler: Reconciler,
    owner: Owner = Depends(is_owner_authenticated),
) -> AccountSummary:
    """Mark an account unhealthy after its credentials failed in use."""
    record = await reconciler.record_failure(
        owner.id,
        external_id,
        request.error,
        token_expired=request.token_expired,
    )
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found.",
        )
    return AccountSummary.from_record(record)
