"""
linkbridge configuration: all environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os


class Settings:
    """Application settings from environment variables."""

    # Database
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")

    # Store backends: "memory" (single instance / tests) or "postgres" (shared)
    TTL_STORE_BACKEND: str = os.environ.get("TTL_STORE_BACKEND", "postgres")
    ACCOUNT_STORE_BACKEND: str = os.environ.get("ACCOUNT_STORE_BACKEND", "postgres")

    # Owner sessions (issued by the admin app, verified here)
    JWT_SECRET: str = os.environ.get("JWT_SECRET", "")
    JWT_ALGORITHM: str = "HS256"

    # Pairing
    PAIRING_CODE_TTL_SECONDS: int = int(os.environ.get("PAIRING_CODE_TTL_SECONDS", "300"))
    EPHEMERAL_TOKEN_TTL_SECONDS: int = int(os.environ.get("EPHEMERAL_TOKEN_TTL_SECONDS", "3600"))
    CLAIM_RATE_LIMIT_PER_IP: int = 20  # per hour

    # TTL sweep
    TTL_SWEEP_INTERVAL_SECONDS: int = 60
    TTL_SWEEP_RETENTION_SECONDS: int = 3600  # keep expired entries around for diagnostics

    # Credential classification
    ACCESS_TOKEN_PREFIX: str = os.environ.get("ACCESS_TOKEN_PREFIX", "EAT")
    ACCESS_TOKEN_MIN_LENGTH: int = 100
    TOKEN_FIELD_SEPARATOR: str = ":"

    # Session cookies on the target surface
    IDENTITY_COOKIE: str = os.environ.get("IDENTITY_COOKIE", "uid")
    SESSION_COOKIE: str = os.environ.get("SESSION_COOKIE", "sid")

    SYNC_SOURCE: str = os.environ.get("SYNC_SOURCE", "collector")

    # Postgres pool
    DB_POOL_MIN_SIZE: int = int(os.environ.get("DB_POOL_MIN_SIZE", "2"))
    DB_POOL_MAX_SIZE: int = int(os.environ.get("DB_POOL_MAX_SIZE", "20"))
    DB_COMMAND_TIMEOUT_SECONDS: int = 60

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")

    @property
    def ADMIN_URL(self) -> str:
        url = os.environ.get("ADMIN_URL")
        if url:
            return url.rstrip("/")
        return "http://localhost:3000" if self.ENVIRONMENT == "development" else "https://admin.linkbridge.app"

    @property
    def PAIRING_PAGE_URL(self) -> str:
        url = os.environ.get("PAIRING_PAGE_URL")
        if url:
            return url
        return f"{self.ADMIN_URL}/pair"


# Singleton instance
settings = Settings()

_VALID_BACKENDS = {"memory", "postgres"}

if settings.TTL_STORE_BACKEND not in _VALID_BACKENDS:
    raise RuntimeError(f"TTL_STORE_BACKEND must be one of {sorted(_VALID_BACKENDS)}")
if settings.ACCOUNT_STORE_BACKEND not in _VALID_BACKENDS:
    raise RuntimeError(f"ACCOUNT_STORE_BACKEND must be one of {sorted(_VALID_BACKENDS)}")

_uses_postgres = "postgres" in (settings.TTL_STORE_BACKEND, settings.ACCOUNT_STORE_BACKEND)

if _uses_postgres and not settings.DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is required")
if not settings.JWT_SECRET:
    raise RuntimeError("JWT_SECRET environment variable is required")
