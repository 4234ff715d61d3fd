"""HTTP client for the linkbridge API."""
from __future__ import annotations

from typing import Any

import httpx

from collector.errors import ApiError

EPHEMERAL_TOKEN_HEADER = "X-Ephemeral-Token"


class ApiClient:
    """HTTP client for the linkbridge API."""

    def __init__(
        self,
        api_url: str,
        token: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.client = httpx.Client(timeout=30.0, transport=transport)

    def _headers(self) -> dict:
        """Build request headers."""
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers[EPHEMERAL_TOKEN_HEADER] = self.token
        return headers

    def _send(self, method: str, path: str, data: dict | None = None) -> httpx.Response:
        url = f"{self.api_url}{path}"
        res = self.client.request(method, url, json=data, headers=self._headers())
        try:
            res.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ApiError.from_response(e) from e
        return res

    def post(self, path: str, data: dict | None = None) -> Any:
        """Make POST request."""
        return self._send("POST", path, data).json()

    def claim(self, code: str) -> dict:
        """
        Claim a pairing code.

        Returns {"ownerId", "ownerDisplayName", "ephemeralToken", "ephemeralExpiresAt"}.
        Raises ApiError with error "Expired", "NotFound" or "AlreadyUsed".
        """
        return self.post(f"/pairing/codes/{code}/claim")

    def sync_account(self, payload: dict) -> dict:
        """
        Push one credential bundle.

        Returns {"externalId", "displayName", "tokenStatus", "isNew"}.
        """
        return self.post("/accounts/sync", payload)

    def validate_cookies(self, external_id: str, cookie_blob: str) -> dict:
        """Returns {"isValid", "hasIdentityCookie", "hasSessionCookie"}."""
        return self.post(
            "/accounts/validate-cookies",
            {"externalId": external_id, "sessionCookieBlob": cookie_blob},
        )

    def invalidate_token(self):
        """Revoke the current ephemeral token."""
        self._send("DELETE", "/pairing/tokens")

    def close(self):
        """Close client."""
        self.client.close()
