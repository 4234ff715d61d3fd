"""Pairing routes: code generation, status polling, claim, ephemeral tokens."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from backend import config
from backend.auth import ephemeral_token_header, is_owner_authenticated
from backend.deps import get_pairing_authority
from backend.middleware.rate_limit import rate_limiter
from backend.models.pairing import (
    ClaimResponse,
    EphemeralTokenResponse,
    Owner,
    PairingCodeResponse,
    PairingStatusResponse,
)
from backend.services.pairing_authority import PairingAuthority

router = APIRouter(prefix="/pairing", tags=["pairing"])

Authority = Annotated[PairingAuthority, Depends(get_pairing_authority)]


@router.post("/codes")
async def generate_code(
    authority: Authority,
    owner: Owner = Depends(is_owner_authenticated),
) -> PairingCodeResponse:
    """
    Generate a one-time pairing code (admin app, requires owner session).

    The code expires after 5 minutes and can be claimed once.
    """
    return await authority.generate_code(owner)


@router.get("/codes/{code}/status")
async def pairing_status(code: str, authority: Authority) -> PairingStatusResponse:
    """
    Poll whether a pairing code has been claimed.

    Unauthenticated and side-effect free; reveals nothing about the owner.
    """
    return await authority.poll_status(code)


@router.post("/codes/{code}/claim")
async def claim_code(code: str, request: Request, authority: Authority) -> ClaimResponse:
    """
    Claim a pairing code from the collector. The code is the credential.

    Rate limited per client IP. Failures return 401 with
    {"error": "Expired" | "NotFound" | "AlreadyUsed"}.
    """
    client_ip = request.client.host if request.client else "unknown"
    if not rate_limiter.check_rate_limit(
        f"claim:{client_ip}",
        max_requests=config.settings.CLAIM_RATE_LIMIT_PER_IP,
        window_minutes=60,
    ):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many pairing attempts. Please wait and try again.",
        )

    return await authority.claim(code)


@router.post("/tokens")
async def issue_token(
    authority: Authority,
    owner: Owner = Depends(is_owner_authenticated),
) -> EphemeralTokenResponse:
    """Mint an ephemeral sync token directly (admin app, requires owner session)."""
    return await authority.issue_token_response(owner)


@router.delete("/tokens", status_code=status.HTTP_204_NO_CONTENT)
async def invalidate_token(
    authority: Authority,
    token: str | None = Depends(ephemeral_token_header),
) -> Response:
    """Invalidate the caller's ephemeral token before it expires."""
    await authority.resolve_ephemeral_token(token)
    await authority.invalidate_ephemeral_token(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
