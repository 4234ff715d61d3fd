"""
Configuration management for the linkbridge collector.

Multi-environment support:
  Pairing credentials are stored per API URL, so a collector can be paired
  with production and a local dev server at the same time.

  Config structure:
  {
    "environments": {
      "https://api.linkbridge.app": {
        "token": "<ephemeral token>",
        "token_expires_at": "2026-10-18T12:00:00+00:00",
        "owner_id": "...",
        "owner_name": "..."
      }
    },
    "default_url": "https://api.linkbridge.app",
    "target": {
      "domain": "example.com",
      "identity_cookie": "uid",
      "session_cookie": "sid",
      "candidates": [{"url": "https://example.com/", "profile": "desktop"}],
      "csrf_field": "csrf_token",
      "access_token_field": "accessToken",
      "access_token_prefix": "EAT",
      "secondary_fields": [],
      "timeout_seconds": 10.0
    }
  }

Environment resolution order:
  1. LINKBRIDGE_API_URL environment variable
  2. --api-url command line flag
  3. default_url from config file
  4. Fallback: https://api.linkbridge.app
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.linkbridge.app"
HARVEST_TIMEOUT_SECONDS = 10.0


@dataclass
class Candidate:
    """One target surface to try, and the request profile to fetch it with."""

    url: str
    profile: str = "desktop"


@dataclass
class TargetSettings:
    """What to harvest and where. Nothing here is specific to one site."""

    domain: str = "example.com"
    identity_cookie: str = "uid"
    session_cookie: str = "sid"
    candidates: list[Candidate] = field(default_factory=list)
    csrf_field: str = "csrf_token"
    access_token_field: str = "accessToken"
    access_token_prefix: str = "EAT"
    secondary_fields: list[str] = field(default_factory=list)
    timeout_seconds: float = HARVEST_TIMEOUT_SECONDS

    def __post_init__(self):
        if not self.candidates:
            self.candidates = [
                Candidate(f"https://{self.domain}/", "desktop"),
                Candidate(f"https://m.{self.domain}/", "mobile"),
                Candidate(f"https://{self.domain}/settings", "ios"),
            ]

    @classmethod
    def from_dict(cls, data: dict) -> TargetSettings:
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        known["candidates"] = [
            c if isinstance(c, Candidate) else Candidate(**c) for c in known.get("candidates", [])
        ]
        return cls(**known)

    def to_dict(self) -> dict:
        return asdict(self)


class Config:
    """Config manager for the collector with multi-environment support."""

    def __init__(self, api_url_override: str | None = None, config_dir: Path | None = None):
        """
        Initialize config.

        Args:
            api_url_override: Optional --api-url flag value
            config_dir: Directory holding config.json (default ~/.linkbridge)
        """
        self.config_dir = config_dir or Path.home() / ".linkbridge"
        self.config_file = self.config_dir / "config.json"
        self._data: dict = {}
        self._api_url_override = api_url_override
        self._load()

    def _load(self):
        """Load config from disk."""
        if self.config_file.exists():
            try:
                with open(self.config_file) as f:
                    self._data = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning("Ignoring unreadable config %s: %s", self.config_file, e)
                self._data = {}

        if "environments" not in self._data:
            self._data["environments"] = {}

    def _save(self):
        """Save config to disk with owner-only permissions."""
        self.config_dir.mkdir(parents=True, exist_ok=True)

        with open(self.config_file, "w") as f:
            json.dump(self._data, f, indent=2)

        self.config_file.chmod(0o600)

    @property
    def api_url(self) -> str:
        env_url = os.environ.get("LINKBRIDGE_API_URL")
        if env_url:
            return env_url.rstrip("/")

        if self._api_url_override:
            return self._api_url_override.rstrip("/")

        return self._data.get("default_url", DEFAULT_API_URL).rstrip("/")

    def _get_env(self) -> dict:
        return self._data["environments"].get(self.api_url, {})

    def save_pairing(
        self,
        token: str,
        expires_at: datetime,
        owner_id: str,
        owner_name: str,
    ):
        """Store the ephemeral token obtained from a claim for the current environment."""
        self._data["environments"][self.api_url] = {
            "token": token,
            "token_expires_at": expires_at.isoformat(),
            "owner_id": owner_id,
            "owner_name": owner_name,
        }
        self._save()

    @property
    def token(self) -> str | None:
        """Ephemeral token for the current environment, None once it has expired."""
        env = self._get_env()
        token = env.get("token")
        expires_at = env.get("token_expires_at")
        if not token or not expires_at:
            return None
        if datetime.fromisoformat(expires_at) <= datetime.now(UTC):
            return None
        return token

    @property
    def owner_name(self) -> str | None:
        return self._get_env().get("owner_name")

    @property
    def is_paired(self) -> bool:
        return bool(self.token)

    @property
    def target(self) -> TargetSettings:
        return TargetSettings.from_dict(self._data.get("target", {}))

    @target.setter
    def target(self, value: TargetSettings):
        self._data["target"] = value.to_dict()
        self._save()

    def clear_environment(self, url: str | None = None):
        """Forget the pairing for one environment (current by default)."""
        target_url = (url or self.api_url).rstrip("/")
        if target_url in self._data["environments"]:
            del self._data["environments"][target_url]
            self._save()
