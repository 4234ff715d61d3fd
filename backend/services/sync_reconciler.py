"""
Sync reconciler: merges harvested credential bundles into account records.

Every sync re-derives auth_mode and token_status from the merged record's
access token; neither is carried over from a previous record. Bundle fields
that are present overwrite stored ones, absent fields leave them untouched,
and a successful sync marks the account healthy again.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime

from backend import config
from backend.errors import ValidationError
from backend.models.account import (
    AccountRecord,
    AccountSummary,
    AuthMode,
    HealthStatus,
    SyncAccountRequest,
    SyncAccountResponse,
    TokenStatus,
    ValidateCookiesRequest,
    ValidateCookiesResponse,
)
from backend.repos.account_repo import AccountRepo
from backend.services.pairing_authority import PairingAuthority

logger = logging.getLogger(__name__)

_EXTERNAL_ID_RE = re.compile(r"^[0-9]+$")

# Bundle fields that overwrite the stored value whenever they are present
_MERGED_FIELDS = (
    "display_name",
    "session_cookie_blob",
    "access_token",
    "csrf_token",
    "secondary_tokens",
    "device_fingerprint",
)


def classify_auth_mode(access_token: str | None) -> AuthMode:
    """
    Classify a token as a bearer (oauth) token or not.

    oauth requires the reserved prefix, more than ACCESS_TOKEN_MIN_LENGTH
    characters, and no field separator (form tokens carry one).
    """
    settings = config.settings
    if (
        access_token
        and access_token.startswith(settings.ACCESS_TOKEN_PREFIX)
        and len(access_token) > settings.ACCESS_TOKEN_MIN_LENGTH
        and settings.TOKEN_FIELD_SEPARATOR not in access_token
    ):
        return AuthMode.OAUTH
    return AuthMode.COOKIE_ONLY


def derive_token_status(access_token: str | None, auth_mode: AuthMode) -> TokenStatus:
    if auth_mode == AuthMode.OAUTH:
        return TokenStatus.VALID
    if access_token:
        return TokenStatus.ACTIVE
    return TokenStatus.COOKIE_ONLY


def parse_cookie_blob(blob: str) -> dict[str, str]:
    """Split a "name=value; name2=value2" cookie header into a dict."""
    cookies: dict[str, str] = {}
    for part in blob.split(";"):
        name, sep, value = part.strip().partition("=")
        if sep and name:
            cookies[name] = value
    return cookies


def _validate_bundle(bundle: SyncAccountRequest) -> None:
    if not _EXTERNAL_ID_RE.match(bundle.external_id):
        raise ValidationError("externalId must contain digits only")
    if not bundle.session_cookie_blob or not bundle.session_cookie_blob.strip():
        raise ValidationError("sessionCookieBlob is required")


def _merge(
    existing: AccountRecord | None,
    bundle: SyncAccountRequest,
    owner_id: str,
    now: datetime,
) -> AccountRecord:
    """Build the record to store for this sync."""
    if existing is None:
        record = AccountRecord(
            external_id=bundle.external_id,
            owner_id=owner_id,
            display_name=bundle.display_name or f"Account {bundle.external_id}",
            session_cookie_blob=bundle.session_cookie_blob,
            access_token=bundle.access_token,
            csrf_token=bundle.csrf_token,
            secondary_tokens=bundle.secondary_tokens,
            device_fingerprint=bundle.device_fingerprint,
            auth_mode=AuthMode.COOKIE_ONLY,
            token_status=TokenStatus.COOKIE_ONLY,
            sync_source=config.settings.SYNC_SOURCE,
            last_sync_at=now,
            created_at=now,
            updated_at=now,
        )
    else:
        updates = {}
        for field in _MERGED_FIELDS:
            value = getattr(bundle, field)
            if value is not None:
                updates[field] = value
        record = existing.model_copy(update=updates)

    auth_mode = classify_auth_mode(record.access_token)
    record.auth_mode = auth_mode
    record.token_status = derive_token_status(record.access_token, auth_mode)
    # A sync call is itself evidence the account is reachable
    record.health_status = HealthStatus(
        is_healthy=True,
        last_error=None,
        last_error_at=record.health_status.last_error_at,
    )
    record.sync_source = config.settings.SYNC_SOURCE
    record.last_sync_at = now
    record.updated_at = now
    return record


class SyncReconciler:
    """Upserts account records from collector syncs and tracks their health."""

    def __init__(self, authority: PairingAuthority, repo: AccountRepo) -> None:
        self.authority = authority
        self.repo = repo

    async def sync_account(self, bundle: SyncAccountRequest, ephemeral_token: str | None) -> SyncAccountResponse:
        """
        Merge one credential bundle into the owner's account record.

        Args:
            bundle: Harvested credentials
            ephemeral_token: Token from a pairing claim; reusable until it expires

        Returns:
            External id, display name, resulting token status, whether the record is new

        Raises:
            AuthError(InvalidToken): Token missing, unknown, or expired
            ValidationError: Malformed externalId or missing cookie blob
        """
        owner_id = await self.authority.resolve_ephemeral_token(ephemeral_token)
        _validate_bundle(bundle)

        now = datetime.now(UTC)
        record, is_new = await self.repo.upsert(
            owner_id,
            bundle.external_id,
            lambda existing: _merge(existing, bundle, owner_id, now),
        )

        logger.info(
            "%s account %s for owner %s (auth_mode=%s, token=%s, csrf=%s, method=%s, needs_auth=%s)",
            "Created" if is_new else "Updated",
            record.external_id,
            owner_id,
            record.auth_mode,
            "yes" if bundle.access_token else "no",
            "yes" if bundle.csrf_token else "no",
            bundle.extraction_method or "unknown",
            bundle.needs_supplementary_auth,
        )

        return SyncAccountResponse(
            external_id=record.external_id,
            display_name=record.display_name,
            token_status=record.token_status,
            is_new=is_new,
        )

    async def record_failure(
        self,
        owner_id: str,
        external_id: str,
        error: str,
        token_expired: bool = False,
    ) -> AccountRecord | None:
        """
        Mark an account unhealthy after a failed use of its credentials.

        Args:
            owner_id: Owning principal
            external_id: Account id on the target surface
            error: Description of the failure
            token_expired: Also flag the stored token as expired

        Returns:
            Updated record, or None if there is no such account
        """
        now = datetime.now(UTC)

        def mutate(record: AccountRecord) -> AccountRecord:
            record.health_status = HealthStatus(is_healthy=False, last_error=error, last_error_at=now)
            if token_expired:
                record.token_status = TokenStatus.EXPIRED
            record.updated_at = now
            return record

        updated = await self.repo.modify(owner_id, external_id, mutate)
        if updated is None:
            logger.warning("Health update for unknown account %s (owner %s)", external_id, owner_id)
        else:
            logger.info("Account %s marked unhealthy: %s", external_id, error)
        return updated

    async def list_accounts(self, owner_id: str) -> list[AccountSummary]:
        records = await self.repo.list_for_owner(owner_id)
        return [AccountSummary.from_record(record) for record in records]

    async def validate_session_cookies(
        self,
        request: ValidateCookiesRequest,
        ephemeral_token: str | None,
    ) -> ValidateCookiesResponse:
        """Check that a cookie blob carries the identity of external_id and a session secret."""
        await self.authority.resolve_ephemeral_token(ephemeral_token)

        cookies = parse_cookie_blob(request.session_cookie_blob)
        has_identity = cookies.get(config.settings.IDENTITY_COOKIE) == request.external_id
        has_session = bool(cookies.get(config.settings.SESSION_COOKIE))

        return ValidateCookiesResponse(
            is_valid=has_identity and has_session,
            has_identity_cookie=has_identity,
            has_session_cookie=has_session,
        )
