"""Account record models, mapped 1:1 to the account_records table."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from backend.models.pairing import WireModel


class AuthMode(StrEnum):
    OAUTH = "oauth"
    COOKIE_ONLY = "cookie_only"


class TokenStatus(StrEnum):
    VALID = "valid"
    ACTIVE = "active"
    COOKIE_ONLY = "cookie_only"
    EXPIRED = "expired"


class DeviceFingerprint(WireModel):
    """Client identity the session was harvested with."""

    user_agent: str
    platform: str = "Windows"
    client_hints: dict[str, str] = Field(default_factory=dict)
    mobile: bool = False


class HealthStatus(WireModel):
    is_healthy: bool = True
    last_error: str | None = None
    last_error_at: datetime | None = None


class AccountRecord(BaseModel):
    """Durable, owner-scoped record of synced session credentials."""

    external_id: str
    owner_id: str
    display_name: str
    session_cookie_blob: str
    access_token: str | None = None
    csrf_token: str | None = None
    secondary_tokens: dict[str, str] | None = None
    device_fingerprint: DeviceFingerprint | None = None
    auth_mode: AuthMode
    token_status: TokenStatus
    health_status: HealthStatus = Field(default_factory=HealthStatus)
    sync_source: str
    last_sync_at: datetime
    created_at: datetime
    updated_at: datetime


class SyncAccountRequest(WireModel):
    """Body of POST /accounts/sync: one harvested credential bundle."""

    model_config = {"extra": "forbid"}

    external_id: str
    display_name: str | None = None
    session_cookie_blob: str | None = None
    access_token: str | None = None
    csrf_token: str | None = None
    secondary_tokens: dict[str, str] | None = None
    device_fingerprint: DeviceFingerprint | None = None
    extraction_method: str | None = None
    needs_supplementary_auth: bool | None = None


class SyncAccountResponse(WireModel):
    external_id: str
    display_name: str
    token_status: TokenStatus
    is_new: bool


class AccountSummary(WireModel):
    """Owner-facing view of a synced account. No cookies or tokens."""

    external_id: str
    display_name: str
    auth_mode: AuthMode
    token_status: TokenStatus
    health_status: HealthStatus
    last_sync_at: datetime

    @classmethod
    def from_record(cls, record: AccountRecord) -> AccountSummary:
        return cls(
            external_id=record.external_id,
            display_name=record.display_name,
            auth_mode=record.auth_mode,
            token_status=record.token_status,
            health_status=record.health_status,
            last_sync_at=record.last_sync_at,
        )


class ValidateCookiesRequest(WireModel):
    model_config = {"extra": "forbid"}

    external_id: str
    session_cookie_blob: str


class ValidateCookiesResponse(WireModel):
    is_valid: bool
    has_identity_cookie: bool
    has_session_cookie: bool
