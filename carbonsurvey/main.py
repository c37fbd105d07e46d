"""
Carbon Survey — FastAPI Application Entry Point

- structlog configuration (JSON lines, request-scoped context)
- Lifespan: database warm-up on start, pool disposal on stop
- ``RequestContextMiddleware``: request ids, wall-clock timeout, access log
- Health checks and the ``/api`` router
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

from carbonsurvey.config import get_settings
from carbonsurvey.database import async_session_factory, engine

REQUEST_ID_HEADER = "X-Request-ID"

# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------

_settings = get_settings()

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        getattr(logging, _settings.LOG_LEVEL.upper(), logging.INFO)
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger("carbonsurvey")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Fail fast on a bad DATABASE_URL; release the pool on shutdown."""
    logger.info(
        "startup_begin",
        environment=_settings.ENVIRONMENT,
        database=engine.url.get_backend_name(),
        code_prefix=_settings.SURVEY_CODE_PREFIX,
    )
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("startup_complete")

    yield

    await engine.dispose()
    logger.info("shutdown_complete")


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id, bound it in time and log the outcome.

    The id is taken from ``X-Request-ID`` when the client sends one and is
    echoed back on the response.  It is bound into structlog's context, so
    every log line emitted while serving the request carries it.  The
    access log names the matched route template (``/api/surveys/{survey_id}``)
    and the authenticated user, when there is one.
    """

    def __init__(self, app, timeout_seconds: float = 30.0) -> None:
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                call_next(request), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                "request_timeout",
                method=request.method,
                path=request.url.path,
                timeout=self.timeout_seconds,
            )
            response = JSONResponse(
                status_code=504,
                content={"detail": "Request timed out"},
            )
        except Exception:
            logger.exception(
                "request_error",
                method=request.method,
                path=request.url.path,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise

        route = request.scope.get("route")
        logger.info(
            "request_handled",
            method=request.method,
            route=getattr(route, "path", request.url.path),
            status=response.status_code,
            user_id=getattr(request.state, "user_id", None),
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Carbon Survey",
    description="Household carbon-footprint surveys and reports",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not _settings.is_production else None,
    redoc_url="/redoc" if not _settings.is_production else None,
)

app.add_middleware(RequestContextMiddleware, timeout_seconds=_settings.REQUEST_TIMEOUT_SECONDS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)


@app.get("/health", tags=["health"])
async def health_liveness() -> dict:
    return {"status": "healthy"}


@app.get("/health/deep", tags=["health"])
async def health_deep() -> dict:
    """Readiness probe: the database must answer ``SELECT 1``."""
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("health_db_failure", error=str(exc))
        return {"status": "degraded", "database": f"error: {exc}"}
    return {"status": "healthy", "database": "connected"}


from carbonsurvey.api.router import router as api_router  # noqa: E402

app.include_router(api_router, prefix=_settings.API_PREFIX)
