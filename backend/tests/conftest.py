"""
Pytest configuration and fixtures for linkbridge tests.

Stores run in memory. Tests against Postgres are opt-in through
TEST_DATABASE_URL (see the postgres_pool fixture).
"""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from uuid import uuid4

# Set test environment variables before importing config
os.environ.setdefault("TTL_STORE_BACKEND", "memory")
os.environ.setdefault("ACCOUNT_STORE_BACKEND", "memory")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only")
os.environ.setdefault("PAIRING_PAGE_URL", "https://admin.test/pair")

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from backend import db  # noqa: E402
from backend.auth import create_jwt  # noqa: E402
from backend.main import app  # noqa: E402
from backend.middleware.rate_limit import rate_limiter  # noqa: E402
from backend.models.pairing import Owner  # noqa: E402

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")


class FakeClock:
    """Manually advanced clock for stores and services that take one."""

    def __init__(self):
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Every test starts with a clean claim budget."""
    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest_asyncio.fixture(loop_scope="session")
async def async_client():
    """Async HTTP client against the ASGI app."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest.fixture
def owner() -> Owner:
    """A fresh owner per test, so in-memory state never leaks between tests."""
    owner_id = f"owner-{uuid4().hex[:12]}"
    return Owner(id=owner_id, display_name="Test Owner", contact=f"{owner_id}@example.com")


@pytest.fixture
def owner_headers(owner) -> dict[str, str]:
    """Authorization header carrying the owner's admin session."""
    return {"Authorization": f"Bearer {create_jwt(owner)}"}


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def postgres_pool():
    """Pool against TEST_DATABASE_URL (migrated schema). Skips when unset."""
    if not TEST_DATABASE_URL:
        pytest.skip("TEST_DATABASE_URL not set")
    await db.init_pool(TEST_DATABASE_URL)
    yield
    await db.close_pool()
