"""Pairing and sync commands for the collector."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from urllib.parse import parse_qs, urlparse

from collector.client import ApiClient
from collector.config import Config
from collector.errors import ApiError, ExtractionError
from collector.harvester import CredentialHarvester, InContextProbe
from collector.session import load_cookie_export, read_local_session

logger = logging.getLogger(__name__)

_CLAIM_MESSAGES = {
    "Expired": "Pairing code expired. Generate a new one in the admin app.",
    "NotFound": "Pairing code not recognised. Check that it was copied in full.",
    "AlreadyUsed": "Pairing code was already used. Generate a new one in the admin app.",
}


def parse_code(value: str) -> str:
    """Accept either the bare code or the full pairing URL (...?code=<code>)."""
    value = value.strip()
    if "://" in value:
        codes = parse_qs(urlparse(value).query).get("code")
        if codes:
            return codes[0].strip()
    return value


def pair(config: Config, code_or_url: str, client: ApiClient | None = None) -> bool:
    """
    Claim a pairing code and store the ephemeral token.

    Returns True if successful, False otherwise.
    """
    code = parse_code(code_or_url)
    client = client or ApiClient(config.api_url)

    try:
        print("Claiming pairing code...")
        res = client.claim(code)

        config.save_pairing(
            token=res["ephemeralToken"],
            expires_at=datetime.fromisoformat(res["ephemeralExpiresAt"]),
            owner_id=res["ownerId"],
            owner_name=res["ownerDisplayName"],
        )
        print(f"Paired with {res['ownerDisplayName']}")
        print(f"Token saved to {config.config_file}")
        return True

    except ApiError as e:
        print(_CLAIM_MESSAGES.get(e.error, f"Pairing failed: {e}"))
        return False
    finally:
        client.close()


def sync(
    config: Config,
    cookie_file: str | Path,
    client: ApiClient | None = None,
    harvester: CredentialHarvester | None = None,
    probe: InContextProbe | None = None,
) -> bool:
    """
    Harvest credentials from a cookie export and push them to the backend.

    The backend checks the exported cookies before anything is fetched from
    the target, so a stale or mismatched export fails fast.

    Returns True if the account was synced, False otherwise.
    """
    if not config.is_paired:
        print(f"Not paired with {config.api_url}. Run 'linkbridge pair <code>' first.")
        return False

    target = config.target
    try:
        cookies = load_cookie_export(cookie_file)
    except (OSError, ValueError) as e:
        print(f"Could not read cookies from {cookie_file}: {e}")
        return False

    session = read_local_session(
        target.domain,
        cookies,
        identity_cookie=target.identity_cookie,
        session_cookie=target.session_cookie,
    )
    harvester = harvester or CredentialHarvester(target, probe=probe)
    client = client or ApiClient(config.api_url, config.token)

    try:
        if session.logged_in:
            check = client.validate_cookies(session.identity_id, session.raw_cookie_string)
            if not check["isValid"]:
                print(f"Cookie export rejected for {target.domain}; export the cookies again while logged in.")
                return False

        print(f"Harvesting session for {target.domain} (paired with {config.owner_name})...")
        try:
            bundle = asyncio.run(harvester.acquire_credential_bundle(session))
        except ExtractionError as e:
            print(f"Not logged in to {target.domain} ({e.reason}).")
            return False

        if bundle.needs_supplementary_auth:
            print("  No access token found; syncing cookies only.")

        res = client.sync_account(bundle.to_payload())
    except ApiError as e:
        if e.error == "InvalidToken":
            print("Pairing expired. Pair again from the admin app.")
            config.clear_environment()
        else:
            print(f"Sync failed: {e}")
        return False
    finally:
        client.close()

    action = "Added" if res["isNew"] else "Updated"
    print(f"{action} {res['displayName']} ({res['externalId']}), token status: {res['tokenStatus']}")
    return True


def unpair(config: Config, client: ApiClient | None = None) -> bool:
    """
    Revoke the ephemeral token and forget the pairing.

    Returns True if successful, False otherwise.
    """
    if not config.is_paired:
        print(f"Not paired with {config.api_url}")
        return False

    client = client or ApiClient(config.api_url, config.token)
    try:
        client.invalidate_token()
    except ApiError as e:
        # Token already gone server-side; still forget it locally
        logger.info("Token invalidation returned %s", e.error)
    finally:
        client.close()

    config.clear_environment()
    print(f"Unpaired from {config.api_url}")
    return True
