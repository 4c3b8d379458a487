"""
core/db.py -- Engine construction shared by every SQLAlchemy store.

UserStore and VaultStore live in different layers but must point at the same
database: memberships, sources and audit entries carry foreign keys to users.
Both stores call create_store_engine() with the same URL.

SQLite specifics:
  check_same_thread=False -- FastAPI runs sync handlers in a thread pool, so a
      pooled connection may be used from a different thread than the one that
      opened it.
  PRAGMA journal_mode=WAL -- readers proceed without blocking during writes.
  PRAGMA foreign_keys=ON  -- SQLite ignores ON DELETE CASCADE unless this is
      set on every connection. Vault deletion relies on it.

Layer rule: core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_store_engine(db_url: str) -> Engine:
    """Return an Engine for db_url with the SQLite pragmas applied when relevant."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine
