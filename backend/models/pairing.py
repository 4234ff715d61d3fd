"""Pairing code and ephemeral token models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for request/response bodies: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Owner(BaseModel):
    """Authenticated principal of the admin app."""

    id: str
    display_name: str
    contact: str | None = None


class PairingCode(BaseModel):
    """A one-time pairing code as observed through the TTL store."""

    code_hash: str
    owner_id: str
    owner_display_name: str
    owner_contact: str | None
    created_at: datetime
    expires_at: datetime
    completed: bool
    completed_at: datetime | None


class EphemeralToken(BaseModel):
    """Bearer credential authorizing sync calls for one owner."""

    token: str
    subject_id: str
    expires_at: datetime


class PairingCodeResponse(WireModel):
    """Returned to the owner after generating a pairing code."""

    code: str
    pairing_url: str
    expires_in_seconds: int


class PairingStatusResponse(WireModel):
    """Polling view of a pairing code. Never includes the owner."""

    completed: bool
    expired: bool
    completed_at: datetime | None = None


class ClaimResponse(WireModel):
    """Returned to the collector after a successful claim."""

    owner_id: str
    owner_display_name: str
    ephemeral_token: str
    ephemeral_expires_at: datetime


class EphemeralTokenResponse(WireModel):
    """Returned when an owner mints an ephemeral token directly."""

    ephemeral_token: str
    expires_in_seconds: int
    expires_at: datetime
