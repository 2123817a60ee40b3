"""
Availarr HTTP app

Serves the reconciled catalog read-only (content routes), the janitor
endpoint for an external cron, and liveness/readiness probes. The batch
jobs never go through here; they run from the CLI.

    uvicorn availarr.main:app --app-dir backend
    availarr serve --port 8000
"""

import logging
import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from availarr.config import Config
from availarr.database import init_db
from availarr.api import content_routes, cron_routes, health_routes
from availarr.services.structured_logging import (
    attach_console_logging, clear_context, generate_run_id, set_request_id
)

if not logging.getLogger().handlers:
    logging.getLogger().setLevel(logging.DEBUG if Config.DEBUG else logging.INFO)
    attach_console_logging(json_output=Config.LOG_JSON)

# uvicorn lines go through the same handlers
for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    logging.getLogger(name).propagate = True

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    One log line per request with method, path, status and latency.

    The X-Request-ID header is reused when the caller sends one and echoed
    back; it is also attached to every log line emitted while handling.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or generate_run_id()
        set_request_id(request_id)
        route = f"{request.method} {request.url.path}"
        started = time.perf_counter()

        try:
            try:
                response = await call_next(request)
            except Exception as e:
                elapsed_ms = (time.perf_counter() - started) * 1000
                logger.error(f"✗ {route} raised {type(e).__name__} after {elapsed_ms:.1f}ms: {e}")
                raise

            elapsed_ms = (time.perf_counter() - started) * 1000
            response.headers["X-Request-ID"] = request_id
            marker = "✓" if response.status_code < 400 else "✗"
            logger.info(f"{marker} {route} -> {response.status_code} in {elapsed_ms:.1f}ms")
            return response
        finally:
            clear_context()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Tables are created before the first request; init_db retries the connection."""
    logger.info(f"{Config.APP_TITLE} {Config.APP_VERSION} starting against {Config.DATABASE_URL.split('@')[-1]}")
    init_db()
    logger.info("✓ Content store ready")
    yield
    logger.info(f"{Config.APP_TITLE} stopped")


tags_metadata = [
    {
        "name": "health",
        "description": "Kubernetes-compatible liveness/readiness probes.",
    },
    {
        "name": "content",
        "description": "Availability verdicts for movies and series, most popular first.",
    },
    {
        "name": "cron",
        "description": "Janitor endpoints for an external scheduler.",
    },
]

app = FastAPI(
    title=Config.APP_TITLE,
    description=Config.APP_DESCRIPTION,
    version=Config.APP_VERSION,
    lifespan=lifespan,
    openapi_tags=tags_metadata,
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(health_routes.router)
app.include_router(content_routes.router)
app.include_router(cron_routes.router)
