"""Tests for the sync reconciler: classification, upsert merge, health."""

import asyncio

import pytest
import pytest_asyncio

from backend.errors import AuthError, AuthReason, ValidationError
from backend.models.account import (
    AuthMode,
    DeviceFingerprint,
    SyncAccountRequest,
    TokenStatus,
    ValidateCookiesRequest,
)
from backend.repos.account_repo import InMemoryAccountRepo
from backend.repos.ttl_store import InMemoryTTLStore
from backend.services.pairing_authority import PairingAuthority
from backend.services.sync_reconciler import (
    SyncReconciler,
    classify_auth_mode,
    derive_token_status,
    parse_cookie_blob,
)

pytestmark = pytest.mark.asyncio(loop_scope="session")

BEARER = "EAT" + "x" * 120
COOKIES = "uid=1000123; sid=secret-session; locale=en_US"

_TIMESTAMP_FIELDS = {"last_sync_at", "updated_at"}


@pytest.fixture
def authority():
    return PairingAuthority(InMemoryTTLStore())


@pytest.fixture
def repo():
    return InMemoryAccountRepo()


@pytest.fixture
def reconciler(authority, repo):
    return SyncReconciler(authority, repo)


@pytest_asyncio.fixture(loop_scope="session")
async def token(authority, owner):
    issued = await authority.issue_ephemeral_token(owner.id)
    return issued.token


def _bundle(**overrides) -> SyncAccountRequest:
    fields = {"external_id": "1000123", "session_cookie_blob": COOKIES}
    fields.update(overrides)
    return SyncAccountRequest(**fields)


# classify_auth_mode


@pytest.mark.parametrize(
    "access_token, expected",
    [
        (None, AuthMode.COOKIE_ONLY),
        ("", AuthMode.COOKIE_ONLY),
        (BEARER, AuthMode.OAUTH),
        # Exactly the minimum length is not enough
        ("EAT" + "x" * 97, AuthMode.COOKIE_ONLY),
        ("EAT" + "x" * 98, AuthMode.OAUTH),
        # Form tokens carry a field separator
        ("EAT" + "x" * 60 + ":" + "y" * 60, AuthMode.COOKIE_ONLY),
        ("ABC" + "x" * 120, AuthMode.COOKIE_ONLY),
        ("short-form-token", AuthMode.COOKIE_ONLY),
    ],
)
def test_classify_auth_mode(access_token, expected):
    assert classify_auth_mode(access_token) == expected


def test_derive_token_status():
    assert derive_token_status(BEARER, AuthMode.OAUTH) == TokenStatus.VALID
    assert derive_token_status("form:token", AuthMode.COOKIE_ONLY) == TokenStatus.ACTIVE
    assert derive_token_status(None, AuthMode.COOKIE_ONLY) == TokenStatus.COOKIE_ONLY


def test_parse_cookie_blob():
    assert parse_cookie_blob("a=1; b=two=2;  ;c=") == {"a": "1", "b": "two=2", "c": ""}


# sync_account


async def test_sync_creates_record(reconciler, repo, owner, token):
    res = await reconciler.sync_account(_bundle(), token)

    assert res.is_new is True
    assert res.external_id == "1000123"
    assert res.display_name == "Account 1000123"
    assert res.token_status == TokenStatus.COOKIE_ONLY

    record = await repo.get(owner.id, "1000123")
    assert record.session_cookie_blob == COOKIES
    assert record.auth_mode == AuthMode.COOKIE_ONLY
    assert record.health_status.is_healthy is True
    assert record.sync_source == "collector"
    assert record.created_at == record.last_sync_at


async def test_sync_is_idempotent(reconciler, repo, owner, token):
    bundle = _bundle(
        display_name="Main account",
        access_token=BEARER,
        csrf_token="csrf-1",
        secondary_tokens={"lsd": "abc"},
        device_fingerprint=DeviceFingerprint(user_agent="UA", platform="Android", mobile=True),
    )

    await reconciler.sync_account(bundle, token)
    first = await repo.get(owner.id, "1000123")
    res = await reconciler.sync_account(bundle, token)
    second = await repo.get(owner.id, "1000123")

    assert res.is_new is False
    assert first.model_dump(exclude=_TIMESTAMP_FIELDS) == second.model_dump(exclude=_TIMESTAMP_FIELDS)


async def test_cookie_only_then_access_token(reconciler, repo, owner, token):
    """A later sync carrying a token upgrades the record and keeps the cookie."""
    res = await reconciler.sync_account(_bundle(), token)
    assert res.is_new is True

    res = await reconciler.sync_account(
        SyncAccountRequest(external_id="1000123", session_cookie_blob=COOKIES, access_token=BEARER),
        token,
    )
    assert res.is_new is False
    assert res.token_status == TokenStatus.VALID

    record = await repo.get(owner.id, "1000123")
    assert record.session_cookie_blob == COOKIES
    assert record.access_token == BEARER
    assert record.auth_mode == AuthMode.OAUTH


async def test_absent_fields_are_untouched(reconciler, repo, owner, token):
    await reconciler.sync_account(
        _bundle(display_name="Named", access_token=BEARER, csrf_token="csrf-1", secondary_tokens={"a": "1"}),
        token,
    )
    await reconciler.sync_account(_bundle(session_cookie_blob="uid=1000123; sid=rotated"), token)

    record = await repo.get(owner.id, "1000123")
    assert record.session_cookie_blob == "uid=1000123; sid=rotated"
    assert record.display_name == "Named"
    assert record.access_token == BEARER
    assert record.csrf_token == "csrf-1"
    assert record.secondary_tokens == {"a": "1"}
    # Recomputed from the merged record, not the bundle
    assert record.auth_mode == AuthMode.OAUTH


async def test_auth_mode_recomputed_on_token_change(reconciler, repo, owner, token):
    await reconciler.sync_account(_bundle(access_token=BEARER), token)
    res = await reconciler.sync_account(_bundle(access_token="form:token"), token)

    assert res.token_status == TokenStatus.ACTIVE
    record = await repo.get(owner.id, "1000123")
    assert record.auth_mode == AuthMode.COOKIE_ONLY


async def test_sync_resets_health(reconciler, repo, owner, token):
    await reconciler.sync_account(_bundle(), token)
    await reconciler.record_failure(owner.id, "1000123", "checkpoint", token_expired=True)

    record = await repo.get(owner.id, "1000123")
    assert record.health_status.is_healthy is False
    assert record.token_status == TokenStatus.EXPIRED

    await reconciler.sync_account(_bundle(), token)
    record = await repo.get(owner.id, "1000123")
    assert record.health_status.is_healthy is True
    assert record.health_status.last_error is None
    assert record.health_status.last_error_at is not None
    assert record.token_status == TokenStatus.COOKIE_ONLY


async def test_sync_records_are_owner_scoped(reconciler, authority, repo, owner, token):
    other = await authority.issue_ephemeral_token("someone-else")

    await reconciler.sync_account(_bundle(), token)
    res = await reconciler.sync_account(_bundle(), other.token)

    assert res.is_new is True
    assert len(await repo.list_for_owner(owner.id)) == 1
    assert len(await repo.list_for_owner("someone-else")) == 1


async def test_concurrent_syncs_create_one_record(reconciler, repo, owner, token):
    results = await asyncio.gather(*(reconciler.sync_account(_bundle(), token) for _ in range(10)))

    assert sum(1 for r in results if r.is_new) == 1
    assert len(await repo.list_for_owner(owner.id)) == 1
    # One lock per record, however many writers raced for it
    assert len(repo._locks) == 1


@pytest.mark.parametrize("external_id", ["", "abc", "123abc", "12 34", "-1"])
async def test_sync_rejects_bad_external_id(reconciler, token, external_id):
    with pytest.raises(ValidationError):
        await reconciler.sync_account(_bundle(external_id=external_id), token)


@pytest.mark.parametrize("blob", [None, "", "   "])
async def test_sync_requires_cookie_blob(reconciler, token, blob):
    with pytest.raises(ValidationError):
        await reconciler.sync_account(_bundle(session_cookie_blob=blob), token)


async def test_sync_rejects_invalid_token(reconciler):
    with pytest.raises(AuthError) as exc_info:
        await reconciler.sync_account(_bundle(), "0" * 64)
    assert exc_info.value.reason == AuthReason.INVALID_TOKEN


async def test_token_checked_before_bundle(reconciler):
    with pytest.raises(AuthError):
        await reconciler.sync_account(_bundle(external_id="abc"), None)


# record_failure / list_accounts / validate_session_cookies


async def test_record_failure_unknown_account(reconciler, owner):
    assert await reconciler.record_failure(owner.id, "999", "boom") is None


async def test_list_accounts(reconciler, owner, token):
    await reconciler.sync_account(_bundle(external_id="1"), token)
    await reconciler.sync_account(_bundle(external_id="2"), token)

    accounts = await reconciler.list_accounts(owner.id)
    assert {a.external_id for a in accounts} == {"1", "2"}
    assert accounts[0].last_sync_at >= accounts[1].last_sync_at
    dumped = accounts[0].model_dump(by_alias=True)
    assert "sessionCookieBlob" not in dumped
    assert "accessToken" not in dumped


async def test_validate_session_cookies(reconciler, token):
    res = await reconciler.validate_session_cookies(
        ValidateCookiesRequest(external_id="1000123", session_cookie_blob=COOKIES), token
    )
    assert res.is_valid is True

    res = await reconciler.validate_session_cookies(
        ValidateCookiesRequest(external_id="42", session_cookie_blob=COOKIES), token
    )
    assert res.is_valid is False
    assert res.has_identity_cookie is False
    assert res.has_session_cookie is True

    res = await reconciler.validate_session_cookies(
        ValidateCookiesRequest(external_id="1000123", session_cookie_blob="uid=1000123"), token
    )
    assert res.is_valid is False
    assert res.has_session_cookie is False
