"""Local session reading: turn a browser cookie jar into a LocalSession."""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Cookie:
    name: str
    value: str
    domain: str


@dataclass(frozen=True)
class LocalSession:
    """The owner's session on the target, as seen by the collector."""

    identity_id: str | None
    session_secret: str | None
    raw_cookie_string: str

    @property
    def logged_in(self) -> bool:
        return bool(self.identity_id and self.session_secret)


def domain_matches(cookie_domain: str, domain: str) -> bool:
    """Suffix match: ".example.com" and "example.com" both cover "www.example.com"."""
    cookie_domain = cookie_domain.lower().lstrip(".")
    domain = domain.lower().lstrip(".")
    return (
        domain == cookie_domain
        or domain.endswith("." + cookie_domain)
        or cookie_domain.endswith("." + domain)
    )


def read_local_session(
    domain: str,
    cookies: Iterable[Cookie],
    identity_cookie: str = "uid",
    session_cookie: str = "sid",
) -> LocalSession:
    """
    Build a LocalSession from the cookies scoped to domain.

    Logged in only when both the identity cookie and the session-secret
    cookie are present. The raw cookie string keeps jar order.
    """
    scoped = [c for c in cookies if domain_matches(c.domain, domain)]
    by_name = {c.name: c.value for c in scoped}

    return LocalSession(
        identity_id=by_name.get(identity_cookie) or None,
        session_secret=by_name.get(session_cookie) or None,
        raw_cookie_string="; ".join(f"{c.name}={c.value}" for c in scoped),
    )


def load_cookie_export(path: str | Path) -> list[Cookie]:
    """
    Read a JSON cookie export: a list of {"name", "value", "domain"} objects.

    Entries missing any of the three keys are skipped.

    Raises:
        ValueError: If the file is not a JSON list
    """
    with open(path) as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError(f"Cookie export must be a JSON list, got {type(data).__name__}")

    cookies = []
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            cookies.append(Cookie(name=str(item["name"]), value=str(item["value"]), domain=str(item["domain"])))
        except KeyError:
            continue
    return cookies
