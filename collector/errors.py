"""Collector-side errors."""

from __future__ import annotations

import httpx


class ExtractionError(Exception):
    """Harvesting cannot start at all. Fatal."""

    NOT_LOGGED_IN = "NotLoggedIn"

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        super().__init__(message or reason)


class UpstreamFetchError(Exception):
    """A single candidate surface was unreachable or returned an error status."""

    def __init__(self, url: str, detail: str):
        self.url = url
        self.detail = detail
        super().__init__(f"{url}: {detail}")


class ExtractionMiss(Exception):
    """A token kind was not found on a candidate that otherwise loaded."""

    def __init__(self, kind: str, url: str):
        self.kind = kind
        self.url = url
        super().__init__(f"{kind} not found on {url}")


class ApiError(Exception):
    """Error response from the linkbridge backend."""

    def __init__(self, status_code: int, error: str, message: str | None = None):
        self.status_code = status_code
        self.error = error
        self.message = message
        super().__init__(f"{status_code} {error}" + (f": {message}" if message else ""))

    @classmethod
    def from_response(cls, exc: httpx.HTTPStatusError) -> ApiError:
        """Decode {"error": ..., "message": ...} or FastAPI's {"detail": ...} bodies."""
        response = exc.response
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        error = body.get("error") or str(body.get("detail") or response.reason_phrase or "Error")
        return cls(response.status_code, error, body.get("message"))
