"""
Pydantic models for linkbridge.

All data shapes defined here. No imports from db, repos, or routes.
"""

from backend.models.account import (
    AccountRecord,
    AccountSummary,
    AuthMode,
    DeviceFingerprint,
    HealthStatus,
    SyncAccountRequest,
    SyncAccountResponse,
    TokenStatus,
    ValidateCookiesRequest,
    ValidateCookiesResponse,
)
from backend.models.pairing import (
    ClaimResponse,
    EphemeralToken,
    EphemeralTokenResponse,
    Owner,
    PairingCode,
    PairingCodeResponse,
    PairingStatusResponse,
)

__all__ = [
    # Pairing models
    "Owner",
    "PairingCode",
    "EphemeralToken",
    "PairingCodeResponse",
    "PairingStatusResponse",
    "ClaimResponse",
    "EphemeralTokenResponse",
    # Account models
    "AuthMode",
    "TokenStatus",
    "DeviceFingerprint",
    "HealthStatus",
    "AccountRecord",
    "SyncAccountRequest",
    "SyncAccountResponse",
    "AccountSummary",
    "ValidateCookiesRequest",
    "ValidateCookiesResponse",
]
