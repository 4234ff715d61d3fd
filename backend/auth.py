"""
Authentication for linkbridge.

Owners are authenticated by the admin app, which signs a JWT session. This
module only verifies that session (is_owner_authenticated) and resolves the
collector's ephemeral token header.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Annotated

import jwt
from fastapi import Cookie, Header, HTTPException, status

from backend import config
from backend.models.pairing import Owner

EPHEMERAL_TOKEN_HEADER = "X-Ephemeral-Token"


def create_jwt(owner: Owner, expiry_hours: int = 24) -> str:
    """
    Create a session JWT for an owner. Used by the admin app and tests.

    Args:
        owner: Owner to encode in the token
        expiry_hours: Session lifetime

    Returns:
        Signed JWT string
    """
    now = datetime.now(UTC)
    payload = {
        "sub": owner.id,
        "name": owner.display_name,
        "email": owner.contact,
        "exp": now + timedelta(hours=expiry_hours),
        "iat": now,
    }
    return jwt.encode(payload, config.settings.JWT_SECRET, algorithm=config.settings.JWT_ALGORITHM)


def decode_jwt(token: str) -> dict:
    """
    Decode and verify a JWT.

    Args:
        token: JWT string to decode

    Returns:
        Decoded payload

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        payload = jwt.decode(token, config.settings.JWT_SECRET, algorithms=[config.settings.JWT_ALGORITHM])
        return payload
    except jwt.ExpiredSignatureError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired. Please sign in again.",
        ) from e
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token. Please sign in again.",
        ) from e


def owner_from_jwt(token: str) -> Owner:
    """Build the Owner described by a verified session token."""
    payload = decode_jwt(token)
    owner_id = payload.get("sub")
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token. Please sign in again.",
        )

    return Owner(
        id=str(owner_id),
        display_name=payload.get("name") or str(owner_id),
        contact=payload.get("email"),
    )


async def is_owner_authenticated(
    session: Annotated[str | None, Cookie()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> Owner:
    """
    FastAPI dependency resolving the owner signed in to the admin app.

    Tries the Bearer header first, then the session cookie.

    Raises:
        HTTPException: If authentication fails
    """
    if authorization and authorization.startswith("Bearer "):
        return owner_from_jwt(authorization.removeprefix("Bearer "))

    if session:
        return owner_from_jwt(session)

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated. Please sign in.",
    )


async def ephemeral_token_header(
    x_ephemeral_token: Annotated[str | None, Header()] = None,
) -> str | None:
    """Raw ephemeral token from the collector, validated by the pairing authority."""
    return x_ephemeral_token
