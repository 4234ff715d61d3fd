"""
Token extractors.

An extractor is a pure function from a response body to a token or None.
Extractors for one token kind are kept in a priority-ordered list and run
with run_chain(); the first hit wins.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence

Extractor = Callable[[str], str | None]


def _from_pattern(pattern: re.Pattern[str]) -> Extractor:
    def extract(body: str) -> str | None:
        match = pattern.search(body)
        if not match:
            return None
        value = next((g for g in match.groups() if g), None) if match.groups() else match.group(0)
        return value or None

    return extract


def form_field(name: str) -> Extractor:
    """Hidden input value, with name before or after value."""
    n = re.escape(name)
    return _from_pattern(
        re.compile(
            rf'name="{n}"\s*value="([^"]+)"|value="([^"]+)"\s*name="{n}"',
        )
    )


def json_field(name: str) -> Extractor:
    """"name":"value" in inline JSON, with or without escaped quotes."""
    n = re.escape(name)
    return _from_pattern(re.compile(rf'"{n}\\?"\s*:\s*\\?"([^"\\]+)\\?"'))


def meta_tag(name: str) -> Extractor:
    """<meta name="name" content="...">."""
    n = re.escape(name)
    return _from_pattern(re.compile(rf'<meta[^>]+name="{n}"[^>]+content="([^"]+)"'))


def query_param(name: str) -> Extractor:
    """name=value inside a link or form action."""
    n = re.escape(name)
    return _from_pattern(re.compile(rf"[?&;]{n}=([^&\"'\s]+)"))


def prefixed_token(prefix: str, min_length: int = 50) -> Extractor:
    """A bare token starting with prefix, quoted or not."""
    p = re.escape(prefix)
    rest = max(min_length - len(prefix), 1)
    return _from_pattern(re.compile(rf"\b({p}[A-Za-z0-9]{{{rest},}})"))


def csrf_chain(field_name: str) -> list[Extractor]:
    return [
        form_field(field_name),
        json_field(field_name),
        meta_tag(field_name),
        query_param(field_name),
    ]


def access_token_chain(field_name: str, prefix: str) -> list[Extractor]:
    """Named fields first, then any bare token carrying the reserved prefix."""
    return [
        json_field(field_name),
        json_field("access_token"),
        query_param("access_token"),
        prefixed_token(prefix),
    ]


def secondary_chain(field_name: str) -> list[Extractor]:
    return [form_field(field_name), json_field(field_name)]


def run_chain(chain: Sequence[Extractor], body: str) -> str | None:
    """Run extractors in order and return the first hit."""
    for extractor in chain:
        value = extractor(body)
        if value:
            return value
    return None
