"""
auth/store.py -- The users table and the UserStore that reads and writes it.

UserStore hands out auth.models.User dataclasses built by _row_to_user; no
SQLAlchemy row escapes this module, and callers never write SQL themselves.
vaults/store.py follows the same shape.

`metadata` is shared: vaults/store.py registers its tables on it, and every
vault table has a foreign key to users.id. Open UserStore and VaultStore on
one database URL.

Queries are built with SQLAlchemy expressions, so values are always bound.

Layer rule: no imports from api/, vaults/, realtime/, or storage/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from auth.models import User
from core.config import get_settings
from core.db import create_store_engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("hashed_password", Text),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),  # ISO 8601 timestamp of last successful login
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    """Return a new 32-char hex primary key."""
    return uuid4().hex


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Accounts: create, look up, list, and stamp logins.

    Usage:
        users = UserStore(db_url)
        user_id = users.create_user(User(email="a@b.c", name="Ada", hashed_password=hash_password("secret")))
        ada = users.get_by_email("a@b.c")
        users.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = create_store_engine(db_url or get_settings().database_url)
        metadata.create_all(self.engine)

    def create_user(self, user: User) -> str:
        """Insert a new user and return its assigned ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers (POST /auth/signup, the CLI) catch IntegrityError as the
        duplicate signal rather than pre-checking, which would race.
        """
        user_id = user.id or new_id()
        with self.engine.connect() as conn:
            conn.execute(
                users.insert().values(
                    id=user_id,
                    email=user.email,
                    name=user.name,
                    hashed_password=user.hashed_password,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return user_id

    def get_by_email(self, email: str) -> User | None:
        """The user registered under this email, or None. Emails are stored lowercased."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        """The user with this id, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by email."""
        with self.engine.connect() as conn:
            rows = conn.execute(users.select().order_by(users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_last_login(self, user_id: str) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.connect() as conn:
            conn.execute(users.update().where(users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row -> User
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
        last_login=row.last_login,
    )
