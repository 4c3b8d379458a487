"""
auth/dependencies.py -- Who is calling? Depends() helpers for routes.

A session token can arrive two ways, and the cookie is checked first:
  access_token cookie           written by POST /api/v1/auth/login
  Authorization: Bearer <jwt>   for scripts and non-browser clients

Whichever is found, the token is verified and the user row reloaded before a
User reaches route code. Unsigned headers never establish identity.

Role checks inside a vault need the vault store, so they live in
api/access.py.

Layer rule: no imports from api/, vaults/, realtime/, or storage/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request
from starlette.requests import HTTPConnection

from auth.models import User
from auth.tokens import ACCESS_COOKIE, resolve_token_user

_BEARER = "Bearer "


def extract_token(conn: HTTPConnection) -> str | None:
    """Pull the raw token off a request or WebSocket handshake.

    Returns None when neither the cookie nor a Bearer header carries one.
    """
    token = conn.cookies.get(ACCESS_COOKIE)
    if token:
        return token
    header = conn.headers.get("Authorization", "")
    if header.startswith(_BEARER):
        return header[len(_BEARER):] or None
    return None


def try_get_current_user(request: Request) -> User | None:
    """The caller's User, or None for anonymous and bad-token requests."""
    return resolve_token_user(request.app.state.user_store, extract_token(request))


def get_current_user(request: Request) -> User:
    """The caller's User; anything else is a 401 UNAUTHORIZED.

        @router.get("/vaults")
        def list_vaults(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(401, detail={"code": "UNAUTHORIZED", "message": "Not authenticated"})
    return user
