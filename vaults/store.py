"""
vaults/store.py -- SQLAlchemy-backed persistence layer for vaults.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in vaults/models.py
remain the authoritative domain representation. Swapping SQLite for PostgreSQL
is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. VaultStore is the repository; the _row_to_*
functions are the mappers. Route handlers and the real-time hub never touch
SQL directly.

Transactions:
  Every write that has an audit entry runs inside engine.begin(), so the
  primary write and its audit row commit or roll back together. A failed
  audit insert never leaves an unaudited vault, source, or membership behind.

Cascades (enforced by the database, PRAGMA foreign_keys=ON on SQLite):
  vaults -> sources, vault_members, invites       ON DELETE CASCADE
  users  -> vault_members                         ON DELETE CASCADE
  users  -> audit_log.user_id                     ON DELETE SET NULL
  audit_log.vault_id has no foreign key: entries outlive their vault.

Concurrency:
  UNIQUE(user_id, vault_id) on vault_members is the only guard against a user
  holding two roles in one vault. Invite redemption flips used_at with a
  conditional UPDATE (used_at IS NULL) in the same transaction as the
  membership insert, so two concurrent redemptions cannot both succeed.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.store import metadata, new_id, users
from core.config import get_settings
from core.db import create_store_engine
from vaults.models import (
    INVITE_CREATED,
    ROLE_CHANGED,
    SOURCE_ADDED,
    SOURCE_DELETED,
    VAULT_CREATED,
    VAULT_DELETED,
    VAULT_JOINED,
    VAULT_RENAMED,
    AuditEntry,
    Invite,
    Membership,
    Source,
    Vault,
    VaultDetail,
    VaultSummary,
)

logger = logging.getLogger("vaultroom.vaults")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_vaults = Table(
    "vaults",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("owner_id", String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_members = Table(
    "vault_members",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("user_id", String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("vault_id", String(32), ForeignKey("vaults.id", ondelete="CASCADE"), nullable=False),
    Column("role", String(20), nullable=False),
    Column("joined_at", String(32), nullable=False),
    UniqueConstraint("user_id", "vault_id", name="uq_member_user_vault"),
)

_sources = Table(
    "sources",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("vault_id", String(32), ForeignKey("vaults.id", ondelete="CASCADE"), nullable=False),
    Column("title", String(255), nullable=False),
    Column("url", Text),
    Column("annotation", Text),
    Column("file_url", Text),
    Column("file_key", String(255)),
    Column("file_size", Integer),
    Column("mime_type", String(100)),
    Column("created_by", String(32), ForeignKey("users.id", ondelete="SET NULL")),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_sources_vault_id", "vault_id"),
)

_invites = Table(
    "invites",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("token", String(64), nullable=False, unique=True),
    Column("vault_id", String(32), ForeignKey("vaults.id", ondelete="CASCADE"), nullable=False),
    Column("invited_by", String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("used_at", String(32)),
    Column("used_by", String(32), ForeignKey("users.id", ondelete="SET NULL")),
)

_audit = Table(
    "audit_log",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("vault_id", String(32), nullable=False),
    Column("user_id", String(32), ForeignKey("users.id", ondelete="SET NULL")),
    Column("action", String(50), nullable=False),
    Column("details", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Index("ix_audit_vault_created", "vault_id", "created_at"),
)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class InviteError(Exception):
    """Base class for invite redemption failures."""


class InviteNotFoundError(InviteError):
    """No invite exists for the token."""


class InviteExpiredError(InviteError):
    """The invite's expires_at is in the past."""


class InviteUsedError(InviteError):
    """The invite has already been redeemed."""


class AlreadyMemberError(InviteError):
    """The redeeming user already holds a role in the vault."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_invite_token() -> str:
    """Return 32 random bytes as 64 hex characters (256 bits of entropy)."""
    return secrets.token_hex(32)


def is_invite_expired(invite: Invite, now: Optional[datetime] = None) -> bool:
    """Return True if the invite's expiry is in the past.

    Naive timestamps are treated as UTC.
    """
    now = now or datetime.now(timezone.utc)
    expires = datetime.fromisoformat(invite.expires_at)
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return now > expires


def check_invite(invite: Optional[Invite], now: Optional[datetime] = None) -> Invite:
    """Return the invite if it can still be redeemed, else raise the matching InviteError.

    Expiry is checked before use, so a token that is both used and expired
    reports as expired.
    """
    if invite is None:
        raise InviteNotFoundError("Invite not found")
    if is_invite_expired(invite, now):
        raise InviteExpiredError("This invite link has expired")
    if invite.used_at:
        raise InviteUsedError("This invite link has already been used")
    return invite


def _write_audit(conn: Connection, vault_id: str, user_id: Optional[str], action: str, details: str) -> None:
    conn.execute(
        _audit.insert().values(
            id=new_id(),
            vault_id=vault_id,
            user_id=user_id,
            action=action,
            details=details,
            created_at=_now_iso(),
        )
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class VaultStore:
    """Repository for vaults, memberships, sources, invites and audit entries.

    Usage:
        store = VaultStore()                                # SQLite default
        store = VaultStore("postgresql://user:pw@host/db")  # PostgreSQL
        vault = store.create_vault("Research", owner_id=user.id, actor_name=user.name)
        store.get_membership(user.id, vault.id)
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = create_store_engine(db_url or get_settings().database_url)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Vaults
    # ------------------------------------------------------------------

    def create_vault(self, name: str, owner_id: str, actor_name: str) -> Vault:
        """Create a vault and its owner membership in one transaction.

        The creator always becomes the vault's owner; there is no other way
        for a vault to gain its first member.
        """
        vault_id = new_id()
        now = _now_iso()
        with self.engine.begin() as conn:
            conn.execute(
                _vaults.insert().values(id=vault_id, name=name, owner_id=owner_id, created_at=now, updated_at=now)
            )
            conn.execute(
                _members.insert().values(id=new_id(), user_id=owner_id, vault_id=vault_id, role="owner", joined_at=now)
            )
            _write_audit(conn, vault_id, owner_id, VAULT_CREATED, f'{actor_name} created the vault "{name}"')
        logger.info("Vault %s created by %s", vault_id, owner_id)
        return Vault(id=vault_id, name=name, owner_id=owner_id, created_at=now, updated_at=now)

    def get_vault(self, vault_id: str) -> Optional[Vault]:
        """Fetch a single vault by ID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_vaults.select().where(_vaults.c.id == vault_id)).fetchone()
        return _row_to_vault(row) if row is not None else None

    def list_vaults_for_user(self, user_id: str) -> list[VaultSummary]:
        """Return every vault the user is a member of, newest first.

        Each row carries the user's role in that vault and its source count.
        """
        source_count = func.count(_sources.c.id).label("source_count")
        query = (
            select(_vaults, _members.c.role, source_count)
            .join(_members, _members.c.vault_id == _vaults.c.id)
            .outerjoin(_sources, _sources.c.vault_id == _vaults.c.id)
            .where(_members.c.user_id == user_id)
            .group_by(*_vaults.c, _members.c.role)
            .order_by(_vaults.c.created_at.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [VaultSummary(vault=_row_to_vault(r), role=r.role, source_count=r.source_count) for r in rows]

    def get_vault_detail(self, vault_id: str) -> Optional[VaultDetail]:
        """Return a vault with its sources and members, or None if it does not exist."""
        vault = self.get_vault(vault_id)
        if vault is None:
            return None
        return VaultDetail(vault=vault, sources=self.list_sources(vault_id), members=self.list_members(vault_id))

    def rename_vault(self, vault_id: str, name: str, actor_id: str, actor_name: str) -> Optional[Vault]:
        """Rename a vault. Returns the updated vault, or None if it does not exist."""
        with self.engine.begin() as conn:
            row = conn.execute(_vaults.select().where(_vaults.c.id == vault_id)).fetchone()
            if row is None:
                return None
            conn.execute(_vaults.update().where(_vaults.c.id == vault_id).values(name=name, updated_at=_now_iso()))
            _write_audit(
                conn,
                vault_id,
                actor_id,
                VAULT_RENAMED,
                f'{actor_name} renamed the vault from "{row.name}" to "{name}"',
            )
        return self.get_vault(vault_id)

    def delete_vault(self, vault_id: str, actor_id: str, actor_name: str) -> bool:
        """Delete a vault; sources, memberships and invites go with it.

        A VAULT_DELETED entry is appended to the (retained) audit log.
        Returns True if a vault was deleted, False if it did not exist.
        """
        with self.engine.begin() as conn:
            row = conn.execute(_vaults.select().where(_vaults.c.id == vault_id)).fetchone()
            if row is None:
                return False
            conn.execute(_vaults.delete().where(_vaults.c.id == vault_id))
            _write_audit(conn, vault_id, actor_id, VAULT_DELETED, f'{actor_name} deleted the vault "{row.name}"')
        logger.info("Vault %s deleted by %s", vault_id, actor_id)
        return True

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    def get_membership(self, user_id: str, vault_id: str) -> Optional[Membership]:
        """Return the user's membership in the vault, or None.

        This is the lookup behind every permission decision and every
        real-time room join.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                _members.select().where((_members.c.user_id == user_id) & (_members.c.vault_id == vault_id))
            ).fetchone()
        return _row_to_membership(row) if row is not None else None

    def list_members(self, vault_id: str) -> list[Membership]:
        """Return the vault's members with names and emails, in join order."""
        query = (
            select(_members, users.c.name.label("user_name"), users.c.email.label("user_email"))
            .join(users, users.c.id == _members.c.user_id)
            .where(_members.c.vault_id == vault_id)
            .order_by(_members.c.joined_at)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_membership(r) for r in rows]

    def add_member(self, user_id: str, vault_id: str, role: str) -> Membership:
        """Insert a membership row.

        Raises sqlalchemy.exc.IntegrityError if the user already has a role in
        this vault, whatever role is requested.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _members.insert().values(id=new_id(), user_id=user_id, vault_id=vault_id, role=role, joined_at=now)
            )
            conn.commit()
        return Membership(user_id=user_id, vault_id=vault_id, role=role, joined_at=now)

    def update_member_role(
        self, vault_id: str, user_id: str, role: str, actor_id: str, actor_name: str
    ) -> Optional[Membership]:
        """Change a member's role and audit it. Returns None if the user is not a member."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _members.update()
                .where((_members.c.user_id == user_id) & (_members.c.vault_id == vault_id))
                .values(role=role)
            )
            if result.rowcount == 0:
                return None
            target = conn.execute(select(users.c.name).where(users.c.id == user_id)).scalar()
            _write_audit(
                conn,
                vault_id,
                actor_id,
                ROLE_CHANGED,
                f"{actor_name} changed {target or 'Unknown User'}'s role to {role}",
            )
        members = [m for m in self.list_members(vault_id) if m.user_id == user_id]
        return members[0] if members else None

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def create_source(self, source: Source, actor_name: str) -> Source:
        """Insert a source and its SOURCE_ADDED audit entry in one transaction."""
        source_id = new_id()
        now = _now_iso()
        with self.engine.begin() as conn:
            conn.execute(
                _sources.insert().values(
                    id=source_id,
                    vault_id=source.vault_id,
                    title=source.title,
                    url=source.url,
                    annotation=source.annotation,
                    file_url=source.file_url,
                    file_key=source.file_key,
                    file_size=source.file_size,
                    mime_type=source.mime_type,
                    created_by=source.created_by,
                    created_at=now,
                    updated_at=now,
                )
            )
            _write_audit(
                conn, source.vault_id, source.created_by, SOURCE_ADDED, f'{actor_name} added source "{source.title}"'
            )
        return self.get_source(source_id)

    def get_source(self, source_id: str) -> Optional[Source]:
        """Fetch a single source by ID. Returns None if not found."""
        query = (
            select(_sources, users.c.name.label("created_by_name"))
            .outerjoin(users, users.c.id == _sources.c.created_by)
            .where(_sources.c.id == source_id)
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_source(row) if row is not None else None

    def list_sources(self, vault_id: str) -> list[Source]:
        """Return all sources in a vault, newest first, with creator names."""
        query = (
            select(_sources, users.c.name.label("created_by_name"))
            .outerjoin(users, users.c.id == _sources.c.created_by)
            .where(_sources.c.vault_id == vault_id)
            .order_by(_sources.c.created_at.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_source(r) for r in rows]

    def delete_source(self, vault_id: str, source_id: str, actor_id: str, actor_name: str) -> bool:
        """Delete a source that belongs to vault_id.

        Returns False if the source does not exist or lives in another vault;
        a foreign source is never touched.
        """
        with self.engine.begin() as conn:
            row = conn.execute(
                _sources.select().where((_sources.c.id == source_id) & (_sources.c.vault_id == vault_id))
            ).fetchone()
            if row is None:
                return False
            conn.execute(_sources.delete().where(_sources.c.id == source_id))
            _write_audit(conn, vault_id, actor_id, SOURCE_DELETED, f'{actor_name} deleted source "{row.title}"')
        return True

    # ------------------------------------------------------------------
    # Invites
    # ------------------------------------------------------------------

    def create_invite(self, vault_id: str, invited_by: str, actor_name: str, expire_days: int = 7) -> Invite:
        """Generate a single-use invite token for the vault."""
        token = generate_invite_token()
        now = datetime.now(timezone.utc)
        invite = Invite(
            id=new_id(),
            token=token,
            vault_id=vault_id,
            invited_by=invited_by,
            expires_at=(now + timedelta(days=expire_days)).isoformat(),
            created_at=now.isoformat(),
        )
        with self.engine.begin() as conn:
            conn.execute(
                _invites.insert().values(
                    id=invite.id,
                    token=invite.token,
                    vault_id=invite.vault_id,
                    invited_by=invite.invited_by,
                    expires_at=invite.expires_at,
                    created_at=invite.created_at,
                )
            )
            _write_audit(conn, vault_id, invited_by, INVITE_CREATED, f"{actor_name} generated an invite link")
        return invite

    def get_invite(self, token: str) -> Optional[Invite]:
        """Look up an invite by token, with vault and inviter names. Does not consume it."""
        query = (
            select(_invites, _vaults.c.name.label("vault_name"), users.c.name.label("inviter_name"))
            .join(_vaults, _vaults.c.id == _invites.c.vault_id)
            .outerjoin(users, users.c.id == _invites.c.invited_by)
            .where(_invites.c.token == token)
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_invite(row) if row is not None else None

    def redeem_invite(self, token: str, user_id: str, user_name: str) -> Membership:
        """Consume an invite: contributor membership + used marker + audit, atomically.

        Raises InviteNotFoundError, InviteExpiredError, InviteUsedError or
        AlreadyMemberError. Any of them rolls the whole transaction back, so
        a failed redemption leaves the token usable by someone else.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            row = conn.execute(_invites.select().where(_invites.c.token == token)).fetchone()
            invite = check_invite(_row_to_invite(row) if row is not None else None)

            existing = conn.execute(
                select(_members.c.id).where((_members.c.user_id == user_id) & (_members.c.vault_id == invite.vault_id))
            ).fetchone()
            if existing is not None:
                raise AlreadyMemberError("You are already a member of this vault")

            claimed = conn.execute(
                _invites.update()
                .where((_invites.c.token == token) & (_invites.c.used_at.is_(None)))
                .values(used_at=now, used_by=user_id)
            )
            if claimed.rowcount == 0:
                raise InviteUsedError("This invite link has already been used")

            try:
                conn.execute(
                    _members.insert().values(
                        id=new_id(), user_id=user_id, vault_id=invite.vault_id, role="contributor", joined_at=now
                    )
                )
            except IntegrityError as exc:
                raise AlreadyMemberError("You are already a member of this vault") from exc

            _write_audit(
                conn, invite.vault_id, user_id, VAULT_JOINED, f"{user_name} joined the vault via invite link"
            )
        logger.info("User %s joined vault %s via invite", user_id, invite.vault_id)
        return Membership(user_id=user_id, vault_id=invite.vault_id, role="contributor", joined_at=now)

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    def list_audit(self, vault_id: str, limit: int = 100) -> list[AuditEntry]:
        """Return the vault's most recent audit entries, newest first."""
        query = (
            select(_audit, users.c.name.label("user_name"))
            .outerjoin(users, users.c.id == _audit.c.user_id)
            .where(_audit.c.vault_id == vault_id)
            .order_by(_audit.c.created_at.desc())
            .limit(limit)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_audit(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_vault(row) -> Vault:
    return Vault(
        id=row.id,
        name=row.name,
        owner_id=row.owner_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_membership(row) -> Membership:
    return Membership(
        user_id=row.user_id,
        vault_id=row.vault_id,
        role=row.role,
        joined_at=row.joined_at,
        user_name=getattr(row, "user_name", None),
        user_email=getattr(row, "user_email", None),
    )


def _row_to_source(row) -> Source:
    return Source(
        id=row.id,
        vault_id=row.vault_id,
        title=row.title,
        url=row.url,
        annotation=row.annotation,
        file_url=row.file_url,
        file_key=row.file_key,
        file_size=row.file_size,
        mime_type=row.mime_type,
        created_by=row.created_by,
        created_by_name=getattr(row, "created_by_name", None),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_invite(row) -> Invite:
    return Invite(
        id=row.id,
        token=row.token,
        vault_id=row.vault_id,
        invited_by=row.invited_by,
        expires_at=row.expires_at,
        created_at=row.created_at,
        used_at=row.used_at,
        used_by=row.used_by,
        vault_name=getattr(row, "vault_name", None),
        inviter_name=getattr(row, "inviter_name", None),
    )


def _row_to_audit(row) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        vault_id=row.vault_id,
        user_id=row.user_id,
        user_name=getattr(row, "user_name", None),
        action=row.action,
        details=row.details,
        created_at=row.created_at,
    )
