"""
Pytest fixtures for collector tests.

Nothing here touches the network or the real ~/.linkbridge directory.
"""

from __future__ import annotations

import pytest

from collector.config import Candidate, Config, TargetSettings
from collector.session import Cookie


@pytest.fixture(autouse=True)
def no_api_url_env(monkeypatch):
    monkeypatch.delenv("LINKBRIDGE_API_URL", raising=False)


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(api_url_override="http://api.test", config_dir=tmp_path / ".linkbridge")


@pytest.fixture
def target() -> TargetSettings:
    return TargetSettings(
        domain="example.com",
        candidates=[
            Candidate("https://example.com/home", "desktop"),
            Candidate("https://m.example.com/home", "mobile"),
            Candidate("https://example.com/settings", "ios"),
        ],
        secondary_fields=["lsd"],
        timeout_seconds=2.0,
    )


@pytest.fixture
def cookies() -> list[Cookie]:
    return [
        Cookie("uid", "1000123", ".example.com"),
        Cookie("sid", "s3cret", ".example.com"),
        Cookie("locale", "en_US", "www.example.com"),
        Cookie("uid", "999", ".other.org"),
    ]
