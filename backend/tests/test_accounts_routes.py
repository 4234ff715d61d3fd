"""Tests for the account HTTP routes."""

import pytest
import pytest_asyncio
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio(loop_scope="session")

BEARER = "EAT" + "x" * 120


@pytest_asyncio.fixture(loop_scope="session")
async def ephemeral_headers(async_client: AsyncClient, owner_headers) -> dict[str, str]:
    """Pair through the API and return the collector's token header."""
    res = await async_client.post("/pairing/codes", headers=owner_headers)
    code = res.json()["code"]
    res = await async_client.post(f"/pairing/codes/{code}/claim")
    return {"X-Ephemeral-Token": res.json()["ephemeralToken"]}


def _cookies(external_id: str) -> str:
    return f"uid={external_id}; sid=session-secret"


async def test_sync_cookie_only_then_token(async_client: AsyncClient, ephemeral_headers, owner_headers):
    res = await async_client.post(
        "/accounts/sync",
        json={"externalId": "555001", "sessionCookieBlob": _cookies("555001")},
        headers=ephemeral_headers,
    )
    assert res.status_code == 200
    assert res.json() == {
        "externalId": "555001",
        "displayName": "Account 555001",
        "tokenStatus": "cookie_only",
        "isNew": True,
    }

    res = await async_client.post(
        "/accounts/sync",
        json={
            "externalId": "555001",
            "displayName": "Shop page",
            "sessionCookieBlob": _cookies("555001"),
            "accessToken": BEARER,
            "csrfToken": "csrf-abc",
            "secondaryTokens": {"lsd": "x1"},
            "deviceFingerprint": {
                "userAgent": "Mozilla/5.0",
                "platform": "Android",
                "clientHints": {"Sec-Ch-Ua-Mobile": "?1"},
                "mobile": True,
            },
            "extractionMethod": "page_scrape",
        },
        headers=ephemeral_headers,
    )
    assert res.status_code == 200
    data = res.json()
    assert data["isNew"] is False
    assert data["tokenStatus"] == "valid"
    assert data["displayName"] == "Shop page"

    res = await async_client.get("/accounts", headers=owner_headers)
    assert res.status_code == 200
    accounts = res.json()
    assert len(accounts) == 1
    assert accounts[0]["externalId"] == "555001"
    assert accounts[0]["authMode"] == "oauth"
    assert accounts[0]["healthStatus"]["isHealthy"] is True
    assert "accessToken" not in accounts[0]
    assert "sessionCookieBlob" not in accounts[0]


async def test_sync_without_token(async_client: AsyncClient):
    res = await async_client.post(
        "/accounts/sync",
        json={"externalId": "1", "sessionCookieBlob": _cookies("1")},
    )
    assert res.status_code == 401
    assert res.json()["error"] == "InvalidToken"


async def test_sync_with_unknown_token(async_client: AsyncClient):
    res = await async_client.post(
        "/accounts/sync",
        json={"externalId": "1", "sessionCookieBlob": _cookies("1")},
        headers={"X-Ephemeral-Token": "f" * 64},
    )
    assert res.status_code == 401
    assert res.json()["error"] == "InvalidToken"


async def test_sync_rejects_non_numeric_id(async_client: AsyncClient, ephemeral_headers):
    res = await async_client.post(
        "/accounts/sync",
        json={"externalId": "abc", "sessionCookieBlob": _cookies("abc")},
        headers=ephemeral_headers,
    )
    assert res.status_code == 400
    body = res.json()
    assert body["error"] == "ValidationError"
    assert body["message"]


async def test_sync_rejects_missing_cookie_blob(async_client: AsyncClient, ephemeral_headers):
    res = await async_client.post(
        "/accounts/sync",
        json={"externalId": "123"},
        headers=ephemeral_headers,
    )
    assert res.status_code == 400
    assert res.json()["error"] == "ValidationError"


async def test_sync_rejects_unknown_fields(async_client: AsyncClient, ephemeral_headers):
    res = await async_client.post(
        "/accounts/sync",
        json={"externalId": "123", "sessionCookieBlob": _cookies("123"), "ownerId": "someone"},
        headers=ephemeral_headers,
    )
    assert res.status_code == 422


async def test_sync_accepts_complete_bundle(async_client: AsyncClient, ephemeral_headers):
    """Every field the collector sends is accepted, including needsSupplementaryAuth."""
    res = await async_client.post(
        "/accounts/sync",
        json={
            "externalId": "12345",
            "sessionCookieBlob": _cookies("12345"),
            "extractionMethod": "cookie_only",
            "needsSupplementaryAuth": True,
            "deviceFingerprint": {
                "userAgent": "Mozilla/5.0",
                "platform": "Windows",
                "clientHints": {"Sec-Ch-Ua-Mobile": "?0"},
                "mobile": False,
            },
        },
        headers=ephemeral_headers,
    )
    assert res.status_code == 200
    assert res.json()["tokenStatus"] == "cookie_only"


async def test_token_reusable_for_several_accounts(async_client: AsyncClient, ephemeral_headers, owner_headers):
    for external_id in ("700001", "700002", "700003"):
        res = await async_client.post(
            "/accounts/sync",
            json={"externalId": external_id, "sessionCookieBlob": _cookies(external_id)},
            headers=ephemeral_headers,
        )
        assert res.status_code == 200

    res = await async_client.get("/accounts", headers=owner_headers)
    assert {a["externalId"] for a in res.json()} == {"700001", "700002", "700003"}


async def test_list_accounts_requires_owner(async_client: AsyncClient):
    res = await async_client.get("/accounts")
    assert res.status_code == 401


async def test_validate_cookies(async_client: AsyncClient, ephemeral_headers):
    res = await async_client.post(
        "/accounts/validate-cookies",
        json={"externalId": "4242", "sessionCookieBlob": _cookies("4242")},
        headers=ephemeral_headers,
    )
    assert res.status_code == 200
    assert res.json() == {"isValid": True, "hasIdentityCookie": True, "hasSessionCookie": True}

    res = await async_client.post(
        "/accounts/validate-cookies",
        json={"externalId": "4242", "sessionCookieBlob": "uid=1; sid=x"},
        headers=ephemeral_headers,
    )
    assert res.json()["isValid"] is False


async def test_validate_cookies_requires_token(async_client: AsyncClient):
    res = await async_client.post(
        "/accounts/validate-cookies",
        json={"externalId": "4242", "sessionCookieBlob": _cookies("4242")},
    )
    assert res.status_code == 401


async def test_report_failure(async_client: AsyncClient, ephemeral_headers, owner_headers):
    await async_client.post(
        "/accounts/sync",
        json={"externalId": "880001", "sessionCookieBlob": _cookies("880001"), "accessToken": BEARER},
        headers=ephemeral_headers,
    )

    res = await async_client.post(
        "/accounts/880001/failures",
        json={"error": "Session checkpoint", "tokenExpired": True},
        headers=owner_headers,
    )
    assert res.status_code == 200
    data = res.json()
    assert data["tokenStatus"] == "expired"
    assert data["healthStatus"]["isHealthy"] is False
    assert data["healthStatus"]["lastError"] == "Session checkpoint"


async def test_report_failure_unknown_account(async_client: AsyncClient, owner_headers):
    res = await async_client.post(
        "/accounts/999999/failures",
        json={"error": "boom"},
        headers=owner_headers,
    )
    assert res.status_code == 404
