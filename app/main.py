"""
Workmate — FastAPI application.

Startup checks the database and loads the embedding model so the first
ranking request does not pay for either.  Every request is tagged with a
request id that is bound into the structlog context, so log lines emitted
by the services during that request can be correlated.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.api.matching import get_text_embedder
from app.api.router import router as api_router
from app.config import get_settings
from app.database import async_session_factory, engine

REQUEST_ID_HEADER = "X-Request-ID"

settings = get_settings()

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.LOG_LEVEL.upper())
    ),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger("workmate")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("startup_begin", environment=settings.ENVIRONMENT)

    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("database_reachable")

    if settings.EMBEDDING_WARMUP_ON_STARTUP:
        # Scorers fall back to neutral defaults while the model is missing
        try:
            await get_text_embedder().warm_up()
        except Exception:
            logger.exception("embedding_warmup_failed")

    yield

    await engine.dispose()
    logger.info("shutdown_complete")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of the request and log the outcome.

    An incoming ``X-Request-ID`` is reused; otherwise one is generated.  The
    id is echoed on the response.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_failed")
            raise
        finally:
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info("request_handled", status=response.status_code, duration_ms=elapsed_ms)
        return response


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Answer 504 when a request runs longer than ``REQUEST_TIMEOUT_SECONDS``."""

    def __init__(self, app, timeout_seconds: float) -> None:
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("request_timeout", timeout=self.timeout_seconds)
            return JSONResponse(status_code=504, content={"detail": "Request timed out"})


app = FastAPI(
    title="Workmate",
    description="Co-working partner compatibility ranking",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None,
)

# Starlette runs the most recently added middleware first
app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)


@app.get("/health", tags=["health"])
async def health() -> dict:
    return {"status": "healthy"}


@app.get("/health/deep", tags=["health"])
async def health_deep() -> dict:
    """Readiness: database round-trip plus embedding model state."""
    embedder = get_text_embedder()
    report: dict = {
        "status": "healthy",
        "database": "connected",
        "embedding_model": "loaded" if embedder.is_ready else "not_loaded",
        "embedding_cache": embedder.cache.stats(),
    }
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("health_database_failed", error=str(exc))
        report["database"] = "unreachable"
    if report["database"] != "connected" or not embedder.is_ready:
        report["status"] = "degraded"
    return report


app.include_router(api_router, prefix="/api/v1")
