"""
api/main.py -- The Vaultroom FastAPI app: wiring, middleware, error envelope.

Serve with:    python main.py serve
               uvicorn asgi:app --reload

Request path through the middleware (first to last):
  TrustedHostMiddleware   Host header must match Settings.allowed_hosts
  CORSMiddleware          browser origins from Settings.cors_origins, cookies allowed
  SlowAPIMiddleware       per-route limits declared with api.limiter
  log_requests            one INFO line per request

State on app.state, built in lifespan() and torn down after it:
  user_store   auth.store.UserStore
  vault_store  vaults.store.VaultStore (same database as user_store)
  hub          realtime.hub.RealtimeHub
  storage      storage.files.LocalFileStorage or CloudinaryStorage

Errors: every failure leaves as an ApiResponse with success=false. The
handlers at the bottom of this module convert HTTPException, validation
errors, rate limiting and unexpected exceptions into that shape. /ws is added
by asgi.py, not here.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ERROR_STATUS, ApiResponse, HealthComponents, HealthResponse, error_body
from api.routes.v1.auth import router as auth_router
from api.routes.v1.invites import router as invites_router
from api.routes.v1.members import router as members_router
from api.routes.v1.sources import router as sources_router
from api.routes.v1.vaults import router as vaults_router
from auth.store import UserStore
from core.config import get_settings
from realtime.hub import RealtimeHub
from storage.files import build_storage
from vaults.store import VaultStore

API_VERSION = "0.1.0"
API_PREFIX = "/api/v1"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("vaultroom.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the stores, hub and file storage; close the stores on shutdown.

    UserStore goes first because it owns the users table that every vault
    table points at. The hub needs the VaultStore for join checks.
    """
    logger.info("Vaultroom API %s starting", API_VERSION)
    app.state.user_store = UserStore()
    app.state.vault_store = VaultStore()
    app.state.hub = RealtimeHub(app.state.vault_store)
    app.state.storage = build_storage(_settings)
    logger.info("Stores, realtime hub and file storage ready")

    yield

    app.state.vault_store.close()
    app.state.user_store.close()
    logger.info("Vaultroom API stopped")


app = FastAPI(
    title="Vaultroom API",
    description="Collaborative research vaults with per-vault roles and live updates.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)
# Credentials on: the session cookie has to reach the API from the dev frontend port.
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)
app.add_middleware(SlowAPIMiddleware)
app.state.limiter = limiter  # slowapi finds the limiter here


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Routers and static uploads
# ---------------------------------------------------------------------------

for _router, _tag in (
    (auth_router, "Auth"),
    (vaults_router, "Vaults"),
    (sources_router, "Sources"),
    (invites_router, "Invites"),
    (members_router, "Members"),
):
    app.include_router(_router, prefix=API_PREFIX, tags=[_tag])

# Local uploads are served from disk; Cloudinary URLs point off-site.
if not _settings.cloudinary_enabled:
    app.mount(
        _settings.upload_base_url,
        StaticFiles(directory=_settings.upload_dir, check_dir=False),
        name="uploads",
    )


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------

# Codes for exceptions raised by the framework itself (unknown route, bad method).
_CODE_FOR_STATUS = {401: "UNAUTHORIZED", 403: "FORBIDDEN", 404: "NOT_FOUND", 409: "CONFLICT", 429: "RATE_LIMITED"}


def _envelope(status_code: int, code: str, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_body(code, message), headers=headers)


@app.exception_handler(RateLimitExceeded)
async def on_rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 RATE_LIMITED with a Retry-After hint in seconds."""
    retry_after = int(getattr(exc, "retry_after", 60))
    return _envelope(
        ERROR_STATUS["RATE_LIMITED"],
        "RATE_LIMITED",
        "Too many requests. Please try again later.",
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(RequestValidationError)
async def on_invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    """400 INVALID_INPUT naming every field that failed."""
    problems = ", ".join(str(err.get("msg", "invalid value")) for err in exc.errors())
    return _envelope(ERROR_STATUS["INVALID_INPUT"], "INVALID_INPUT", f"Validation failed: {problems}")


@app.exception_handler(StarletteHTTPException)
async def on_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render an HTTPException into the envelope.

    api_error() puts {"code", "message"} in detail. Framework exceptions
    carry a plain string, so the code is derived from the status.
    """
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code", "SERVER_ERROR")
        message = exc.detail.get("message", "")
    else:
        fallback = "INVALID_INPUT" if exc.status_code < 500 else "SERVER_ERROR"
        code = _CODE_FOR_STATUS.get(exc.status_code, fallback)
        message = str(exc.detail)
    return _envelope(exc.status_code, code, message, headers=exc.headers)


@app.exception_handler(Exception)
async def on_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """500 SERVER_ERROR. The traceback is logged and never sent to the client."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _envelope(ERROR_STATUS["SERVER_ERROR"], "SERVER_ERROR", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@app.get(f"{API_PREFIX}/health", response_model=ApiResponse[HealthResponse], tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Liveness plus a SELECT 1 against the database. 503 when the probe fails."""
    database = "ok"
    try:
        with request.app.state.vault_store.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Health check database probe failed: %s", exc)
        database = "error"

    healthy = database == "ok"
    payload = HealthResponse(
        status="healthy" if healthy else "degraded",
        version=API_VERSION,
        components=HealthComponents(database=database),
    )
    return JSONResponse(
        status_code=200 if healthy else 503,
        content=ApiResponse(data=payload).model_dump(by_alias=True),
    )
