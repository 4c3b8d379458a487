"""
auth/tokens.py -- Session tokens and password hashes.

Session token:
  An HS256 JWT (python-jose) signed with Settings.secret_key. Claims:
      sub      email
      user_id  users.id
      name     display name, so socket code can label a connection
      exp      issue time + Settings.token_expire_seconds
  There is no role claim. A user holds a different role in each vault, and
  the role is read from vault_members on every request and every socket join.

  The same token is accepted from the access_token cookie, a Bearer header,
  or (for /ws only) a ?token= query parameter. Anything that fails to decode,
  has expired, or lacks user_id/sub resolves to "no user".

Passwords:
  bcrypt, called directly. authenticate_user() always pays for one bcrypt
  check, against _DUMMY_HASH when the email is unknown, so login latency
  does not reveal which emails are registered [C1].

Layer rule: no imports from api/, vaults/, realtime/, or storage/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("vaultroom.auth")

_settings = get_settings()

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("user_id", "sub")

ACCESS_COOKIE = "access_token"


def _lifetime(expire_seconds: int) -> int:
    return expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Hash a password with a fresh bcrypt salt.

    bcrypt ignores input past 72 bytes; SignupRequest caps passwords at 72.
    """
    digest = bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt())
    return digest.decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Check a password against a stored hash. A corrupt hash never matches."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Built at import so the first unknown-email login costs the same as later ones [C1].
_DUMMY_HASH: str = hash_password("vaultroom_timing_dummy")


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


def create_access_token(user_id: str, email: str, name: str, expire_seconds: int = 0) -> str:
    """Issue a signed session token for a user.

    expire_seconds <= 0 means Settings.token_expire_seconds.
    """
    claims = {
        "sub": email,
        "user_id": user_id,
        "name": name,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=_lifetime(expire_seconds)),
    }
    return jwt.encode(claims, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Return the verified claims, or None if the token is unusable.

    Unusable covers a bad signature, expiry, garbage input, and a payload
    missing user_id or sub.
    """
    try:
        claims = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError as exc:
        logger.debug("Rejected session token: %s", exc)
        return None
    if any(not claims.get(name) for name in _REQUIRED_CLAIMS):
        return None
    return claims


def resolve_token_user(store: UserStore, token: Optional[str]) -> Optional[User]:
    """Map a raw token to the current User row, or None.

    HTTP dependencies and the /ws handshake both go through here. The row is
    reloaded each time, so a token for a deleted account stops working at once.
    """
    claims = decode_access_token(token) if token else None
    if claims is None:
        return None
    return store.get_by_id(claims["user_id"])


def authenticate_user(store: UserStore, email: str, password: str) -> Optional[User]:
    """Check an email/password pair; return the User or None.

    Exactly one bcrypt comparison runs on every path [C1].
    """
    user = store.get_by_email(email)
    stored_hash = user.hashed_password if user is not None else None
    if stored_hash is None:
        verify_password(password, _DUMMY_HASH)
        return None
    return user if verify_password(password, stored_hash) else None


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Attach the session token to a response as the access_token cookie.

    httponly keeps it away from page scripts; samesite=lax blocks cross-site
    POSTs but still sends it on the same-origin /ws handshake. secure follows
    SECURE_COOKIES. max_age matches the token's own expiry.
    """
    response.set_cookie(
        ACCESS_COOKIE,
        value=token,
        max_age=_lifetime(expire_seconds),
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
    )
