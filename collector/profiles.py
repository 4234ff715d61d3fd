"""
Request profiles for fetching candidate surfaces.

Each profile is a complete modern-browser header set. Partial header sets
(no client hints, no fetch metadata) get served the legacy WAP fallback.
"""

from __future__ import annotations

from typing import Any

_CHROME_VERSION = "120"

PROFILES: dict[str, dict[str, str]] = {
    "desktop": {
        "User-Agent": (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            f"(KHTML, like Gecko) Chrome/{_CHROME_VERSION}.0.0.0 Safari/537.36"
        ),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Sec-Ch-Ua": f'"Not_A Brand";v="8", "Chromium";v="{_CHROME_VERSION}", "Google Chrome";v="{_CHROME_VERSION}"',
        "Sec-Ch-Ua-Mobile": "?0",
        "Sec-Ch-Ua-Platform": '"Windows"',
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Sec-Fetch-User": "?1",
        "Upgrade-Insecure-Requests": "1",
    },
    "mobile": {
        "User-Agent": (
            "Mozilla/5.0 (Linux; Android 13; SM-S918B) AppleWebKit/537.36 "
            f"(KHTML, like Gecko) Chrome/{_CHROME_VERSION}.0.0.0 Mobile Safari/537.36"
        ),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Sec-Ch-Ua": f'"Not_A Brand";v="8", "Chromium";v="{_CHROME_VERSION}", "Google Chrome";v="{_CHROME_VERSION}"',
        "Sec-Ch-Ua-Mobile": "?1",
        "Sec-Ch-Ua-Platform": '"Android"',
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Sec-Fetch-User": "?1",
        "Upgrade-Insecure-Requests": "1",
    },
    # Safari sends no client hints
    "ios": {
        "User-Agent": (
            "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
            "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
        ),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
    },
}

_PLATFORMS = {"desktop": "Windows", "mobile": "Android", "ios": "iOS"}


def headers_for(profile: str) -> dict[str, str]:
    """
    Header set for a profile name.

    Raises:
        KeyError: If the profile is unknown
    """
    return dict(PROFILES[profile])


def fingerprint_for(profile: str) -> dict[str, Any]:
    """Device fingerprint (camelCase wire shape) describing the client a profile imitates."""
    headers = PROFILES[profile]
    return {
        "userAgent": headers["User-Agent"],
        "platform": _PLATFORMS[profile],
        "clientHints": {k: v for k, v in headers.items() if k.startswith("Sec-Ch-Ua")},
        "mobile": profile != "desktop",
    }
