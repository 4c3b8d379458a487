"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST /api/v1/auth/signup   -- create an account (public, rate limited)
  POST /api/v1/auth/login    -- password login; sets JWT cookie (public, rate limited)
  POST /api/v1/auth/logout   -- clears cookie; 200
  GET  /api/v1/auth/me       -- current user info (requires auth)

Security:
  [H2] /signup and /login are rate-limited per IP (Settings.*_rate_limit).
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on login responses.
  Duplicate signups are detected by the UNIQUE(email) constraint, not a
  pre-check, so two concurrent signups for one address cannot both succeed.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import ApiResponse, LoginData, LoginRequest, MessageData, SignupRequest, UserOut, api_error
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import ACCESS_COOKIE, authenticate_user, create_access_token, hash_password, set_auth_cookie
from core.config import get_settings

logger = logging.getLogger("vaultroom.auth")

_settings = get_settings()

router = APIRouter()


@limiter.limit(_settings.signup_rate_limit)
@router.post("/auth/signup", response_model=ApiResponse[UserOut], status_code=201)
def signup(request: Request, body: SignupRequest) -> ApiResponse[UserOut]:
    """Register a new account. The caller is not logged in; call /auth/login next."""
    if not _settings.self_registration_enabled:
        raise api_error("FORBIDDEN", "Self-registration is disabled")

    user_store: UserStore = request.app.state.user_store
    email = body.email.lower()
    try:
        user_id = user_store.create_user(User(email=email, name=body.name, hashed_password=hash_password(body.password)))
    except IntegrityError:
        raise api_error("CONFLICT", "An account with this email already exists")

    logger.info("User signed up: %s", user_id)
    return ApiResponse(data=UserOut.from_domain(user_store.get_by_id(user_id)))


@limiter.limit(_settings.login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=ApiResponse[LoginData])
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set JWT cookie.

    Returns the same error for an unknown email and a wrong password so the
    response does not reveal which accounts exist.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email.strip().lower(), body.password)
    if user is None:
        raise api_error("UNAUTHORIZED", "Invalid email or password")

    user_store.update_last_login(user.id)
    token = create_access_token(user.id, user.email, user.name)
    envelope = ApiResponse(
        data=LoginData(
            access_token=token,
            expires_in=_settings.token_expire_seconds,
            user=UserOut.from_domain(user),
        )
    )
    resp = JSONResponse(status_code=200, content=envelope.model_dump(by_alias=True))
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout", response_model=ApiResponse[MessageData])
async def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content=ApiResponse(data=MessageData(message="Logged out")).model_dump(by_alias=True))
    resp.delete_cookie(ACCESS_COOKIE)
    return resp


@router.get("/auth/me", response_model=ApiResponse[UserOut])
async def me(current_user: User = Depends(get_current_user)) -> ApiResponse[UserOut]:
    """Return the authenticated user's profile."""
    return ApiResponse(data=UserOut.from_domain(current_user))
