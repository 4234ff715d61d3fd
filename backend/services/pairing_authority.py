"""
Pairing authority: links a passive collector to an authenticated owner.

Flow:
  1. Owner (signed in to the admin app) calls generate_code().
  2. The code reaches the collector out of band (pairing page URL).
  3. Collector calls claim(code) exactly once and receives an ephemeral token.
  4. Owner's page polls poll_status(code) to learn that pairing completed.

Codes and tokens are kept in the TTL store under hashed keys. The claim mark
on the pairing code entry doubles as the "completed" flag pollers see, so a
successful claim and the completed observation are one atomic write.
"""

from __future__ import annotations

import logging
import re
import secrets
from urllib.parse import urlencode

from backend import config
from backend.errors import AuthError, AuthReason
from backend.models.pairing import (
    ClaimResponse,
    EphemeralToken,
    EphemeralTokenResponse,
    Owner,
    PairingCode,
    PairingCodeResponse,
    PairingStatusResponse,
)
from backend.repos.ttl_store import (
    EntryAlreadyClaimed,
    EntryExpired,
    EntryNotFound,
    TTLEntry,
    TTLStore,
    hash_secret,
)

logger = logging.getLogger(__name__)

# 32 random bytes, hex encoded
_SECRET_RE = re.compile(r"^[0-9a-f]{64}$")

_PAIRING_NS = "pairing"
_EPHEMERAL_NS = "ephemeral"


def generate_secret() -> str:
    """Generate a 256-bit secret as 64 lowercase hex characters."""
    return secrets.token_hex(32)


def _pairing_key(code: str) -> str:
    return f"{_PAIRING_NS}:{hash_secret(code)}"


def _ephemeral_key(token: str) -> str:
    return f"{_EPHEMERAL_NS}:{hash_secret(token)}"


def _entry_to_pairing_code(entry: TTLEntry) -> PairingCode:
    """Convert a TTL store entry to a PairingCode."""
    return PairingCode(
        code_hash=entry.key.removeprefix(f"{_PAIRING_NS}:"),
        owner_id=entry.value["owner_id"],
        owner_display_name=entry.value["owner_display_name"],
        owner_contact=entry.value.get("owner_contact"),
        created_at=entry.created_at,
        expires_at=entry.expires_at,
        completed=entry.claimed,
        completed_at=entry.claimed_at,
    )


class PairingAuthority:
    """Issues, reports on, and consumes one-time pairing codes."""

    def __init__(self, store: TTLStore) -> None:
        self.store = store
        self.code_ttl = config.settings.PAIRING_CODE_TTL_SECONDS
        self.token_ttl = config.settings.EPHEMERAL_TOKEN_TTL_SECONDS

    async def generate_code(self, owner: Owner) -> PairingCodeResponse:
        """
        Issue a pairing code bound to an already-authenticated owner.

        Args:
            owner: Principal resolved by the admin app's session

        Returns:
            Code, the pairing page URL carrying it, and its lifetime
        """
        code = generate_secret()
        await self.store.put(
            _pairing_key(code),
            {
                "owner_id": owner.id,
                "owner_display_name": owner.display_name,
                "owner_contact": owner.contact,
            },
            self.code_ttl,
        )

        logger.info("Generated pairing code %s... for owner %s", code[:8], owner.id)

        pairing_url = f"{config.settings.PAIRING_PAGE_URL}?{urlencode({'code': code})}"
        return PairingCodeResponse(
            code=code,
            pairing_url=pairing_url,
            expires_in_seconds=self.code_ttl,
        )

    async def get_code(self, code: str) -> PairingCode | None:
        """Look up a live pairing code. Returns None if unknown or expired."""
        if not _SECRET_RE.match(code):
            return None
        try:
            entry = await self.store.get(_pairing_key(code))
        except EntryNotFound:
            return None
        return _entry_to_pairing_code(entry)

    async def poll_status(self, code: str) -> PairingStatusResponse:
        """
        Report whether a code has been claimed. Read-only.

        Absent and expired codes both report expired=True. The owner is
        never included, since the poller is unauthenticated.
        """
        pairing_code = await self.get_code(code)
        if pairing_code is None:
            return PairingStatusResponse(completed=False, expired=True, completed_at=None)

        return PairingStatusResponse(
            completed=pairing_code.completed,
            expired=False,
            completed_at=pairing_code.completed_at,
        )

    async def claim(self, code: str) -> ClaimResponse:
        """
        Consume a pairing code and mint an ephemeral token for its owner.

        Raises:
            AuthError(AlreadyUsed): The code was claimed before
            AuthError(Expired): The code passed its expiry unclaimed
            AuthError(NotFound): The code is unknown
        """
        if not _SECRET_RE.match(code):
            raise AuthError(AuthReason.NOT_FOUND, "Unknown pairing code")

        try:
            entry = await self.store.claim(_pairing_key(code))
        except EntryAlreadyClaimed as e:
            logger.warning("Rejected reuse of pairing code %s...", code[:8])
            raise AuthError(AuthReason.ALREADY_USED, "Pairing code already used") from e
        except EntryExpired as e:
            raise AuthError(AuthReason.EXPIRED, "Pairing code has expired") from e
        except EntryNotFound as e:
            logger.warning("Invalid pairing code attempt: %s...", code[:8])
            raise AuthError(AuthReason.NOT_FOUND, "Unknown pairing code") from e

        pairing_code = _entry_to_pairing_code(entry)
        token = await self.issue_ephemeral_token(pairing_code.owner_id)

        logger.info(
            "Pairing code %s... claimed for owner %s",
            code[:8],
            pairing_code.owner_id,
        )

        return ClaimResponse(
            owner_id=pairing_code.owner_id,
            owner_display_name=pairing_code.owner_display_name,
            ephemeral_token=token.token,
            ephemeral_expires_at=token.expires_at,
        )

    async def issue_ephemeral_token(self, owner_id: str) -> EphemeralToken:
        """Mint a fresh ephemeral token with a fixed, non-refreshable TTL."""
        token = generate_secret()
        entry = await self.store.put(_ephemeral_key(token), {"subject_id": owner_id}, self.token_ttl)
        return EphemeralToken(token=token, subject_id=owner_id, expires_at=entry.expires_at)

    async def issue_token_response(self, owner: Owner) -> EphemeralTokenResponse:
        """Mint a token on demand for an owner already signed in to the admin app."""
        token = await self.issue_ephemeral_token(owner.id)
        logger.info("Issued ephemeral token for owner %s", owner.id)
        return EphemeralTokenResponse(
            ephemeral_token=token.token,
            expires_in_seconds=self.token_ttl,
            expires_at=token.expires_at,
        )

    async def resolve_ephemeral_token(self, token: str | None) -> str:
        """
        Resolve an ephemeral token to its owner id without consuming it.

        Raises:
            AuthError(InvalidToken): Missing, unknown, expired, or invalidated
        """
        if not token or not _SECRET_RE.match(token):
            raise AuthError(AuthReason.INVALID_TOKEN, "Invalid or expired token")
        try:
            entry = await self.store.get(_ephemeral_key(token))
        except EntryNotFound as e:
            raise AuthError(AuthReason.INVALID_TOKEN, "Invalid or expired token") from e
        return entry.value["subject_id"]

    async def invalidate_ephemeral_token(self, token: str) -> bool:
        """Delete an ephemeral token before its expiry. Returns True if it existed."""
        if not _SECRET_RE.match(token):
            return False
        return await self.store.delete(_ephemeral_key(token))

    async def sweep(self, retention_seconds: int | None = None) -> int:
        """Physically drop expired codes and tokens past the retention window."""
        if retention_seconds is None:
            retention_seconds = config.settings.TTL_SWEEP_RETENTION_SECONDS
        return await self.store.sweep(retention_seconds)
