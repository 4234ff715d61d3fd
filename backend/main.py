"""
linkbridge FastAPI application.

Entry point for the API server.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend import config, db
from backend.deps import pairing_authority
from backend.errors import LinkbridgeError
from backend.middleware.rate_limit import rate_limiter
from backend.routes import accounts as account_routes
from backend.routes import pairing as pairing_routes

logger = logging.getLogger(__name__)


# Background task for cleanup
async def cleanup_task():
    """
    Background task to sweep expired pairing codes and ephemeral tokens
    and old rate limit entries.

    Runs every TTL_SWEEP_INTERVAL_SECONDS.
    """
    while True:
        try:
            deleted_count = await pairing_authority.sweep()
            if deleted_count > 0:
                logger.info("Swept %d expired pairing codes and tokens", deleted_count)

            rate_limiter.cleanup_old_entries(max_age_hours=2)

        except Exception:
            logger.exception("Error in cleanup task")

        await asyncio.sleep(config.settings.TTL_SWEEP_INTERVAL_SECONDS)


def _uses_postgres() -> bool:
    return "postgres" in (config.settings.TTL_STORE_BACKEND, config.settings.ACCOUNT_STORE_BACKEND)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.

    Handles startup and shutdown logic:
    - Initialize database pool (Postgres backends only)
    - Start background cleanup task
    - Close database pool on shutdown
    """
    if _uses_postgres():
        await db.init_pool()
        logger.info("Database pool initialized")

    cleanup_task_handle = asyncio.create_task(cleanup_task())
    logger.info("Background cleanup task started")

    yield

    cleanup_task_handle.cancel()
    try:
        await cleanup_task_handle
    except asyncio.CancelledError:
        logger.info("Background cleanup task stopped")

    if _uses_postgres():
        await db.close_pool()
        logger.info("Database pool closed")


app = FastAPI(
    title="linkbridge",
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)


@app.exception_handler(LinkbridgeError)
async def linkbridge_error_handler(request: Request, exc: LinkbridgeError) -> JSONResponse:
    """Render domain errors as {"error": ..., "message": ...}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "message": exc.message},
    )


# Register routes
app.include_router(pairing_routes.router)
app.include_router(account_routes.router)


@app.get("/health")
async def health():
    """Health check endpoint for uptime monitoring."""
    if not _uses_postgres():
        return {"status": "ok"}
    if await db.ping():
        return {"status": "ok", "database": "ok"}
    return JSONResponse(status_code=503, content={"status": "degraded", "database": "unreachable"})
