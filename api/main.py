"""
api/main.py -- FastAPI application entry point for TalentsPal.

Run with:  uvicorn asgi:app --reload
           python main.py serve

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (user store, email dispatcher) and shutdown
(drain pending emails, close DB connection) symmetrically.

Every response uses the envelope from api/models.py. The exception handlers
below map core.errors.AppError subclasses to their status codes; anything
else becomes a 500 whose detail reaches the client only when DEBUG is on.
"""

from __future__ import annotations

import logging
import time
import traceback
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import HealthResponse, envelope_response, success_response
from api.routes.auth import router as auth_router
from auth.mailer import EmailDispatcher, sender_from_settings
from auth.store import UserStore
from core.concurrency import run_db
from core.config import get_settings
from core.errors import AppError, InternalFault

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("talentspal.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The dispatcher is drained before the store closes so a send
    still in flight is not cut off mid-way by process exit.
    """
    logger.info("%s API starting up", _settings.app_name)
    app.state.user_store = UserStore()
    app.state.email_dispatcher = EmailDispatcher(sender_from_settings(_settings))
    if not _settings.smtp_host:
        logger.warning("SMTP_HOST not set -- verification emails will be logged, not sent")
    logger.info("User store initialized")

    yield

    await app.state.email_dispatcher.drain()
    app.state.user_store.close()
    logger.info("%s API shutdown complete", _settings.app_name)


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TalentsPal API",
    description="Authentication and session tokens for the TalentsPal recruiting platform.",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if _settings.debug else None,
    redoc_url="/redoc" if _settings.debug else None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Wall-clock time around call_next gives the latency.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same envelope so API clients can parse errors
# uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _debug_details(exc: BaseException) -> dict[str, str]:
    """error/stack envelope keys, populated only in DEBUG."""
    if not get_settings().debug:
        return {}
    stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return {"error": str(exc), "stack": stack}


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Map a domain, validation or internal error onto its status and envelope."""
    if isinstance(exc, InternalFault):
        logger.error(
            "Internal fault on %s %s: %s",
            request.method,
            request.url.path,
            exc,
            exc_info=exc.cause if isinstance(exc.cause, BaseException) else exc,
        )
        return envelope_response(exc.status_code, False, exc.message, **_debug_details(exc))
    return envelope_response(exc.status_code, False, exc.message, errors=exc.errors)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed JSON or a body FastAPI could not bind.

    Field-level validation happens in the service after sanitization, so the
    only errors that reach this handler are parse failures.
    """
    return envelope_response(400, False, "Error while parsing request body", **_debug_details(exc))


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 when a rate limit is exceeded.

    Sync on purpose: SlowAPIMiddleware calls the registered handler directly
    and uses its return value as the response.
    """
    retry_after = 60
    limit_item = getattr(getattr(exc, "limit", None), "limit", None)
    if limit_item is not None:
        retry_after = int(limit_item.get_expiry())
    response = envelope_response(429, False, "Too many requests, please try again later.")
    response.headers["Retry-After"] = str(retry_after)
    return response


app.add_exception_handler(RateLimitExceeded, rate_limit_handler)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes (404), wrong methods (405) and the like."""
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and message == "Not Found":
        message = f"Route {request.url.path} not found"
    response = envelope_response(exc.status_code, False, message)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log; the client sees it only in DEBUG.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return envelope_response(500, False, "Internal Server Error", **_debug_details(exc))


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied -- health
# checks from load balancers and monitoring systems must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
async def health(request: Request) -> JSONResponse:
    """Return API liveness, current version and database reachability."""
    database = "ok"
    try:
        await run_db(request.app.state.user_store.ping, timeout=2.0)
    except Exception:
        logger.warning("Health check: database unreachable", exc_info=True)
        database = "error"
    body = HealthResponse(version=VERSION, components={"app": "ok", "database": database})
    return success_response("API is healthy", body.model_dump())
