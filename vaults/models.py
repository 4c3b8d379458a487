"""
vaults/models.py -- Domain dataclasses for vaults and everything they own.

These are pure data containers with zero logic. Permission decisions live in
auth/permissions.py; persistence and transactional rules live in
vaults/store.py.

Ownership: a Vault owns its Sources, Memberships and Invites (all deleted with
it). AuditEntry rows are kept after their vault is deleted.

id is None before the record is written to the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

# Audit actions. Stored as plain strings so new actions need no migration.
VAULT_CREATED = "VAULT_CREATED"
VAULT_RENAMED = "VAULT_RENAMED"
VAULT_DELETED = "VAULT_DELETED"
SOURCE_ADDED = "SOURCE_ADDED"
SOURCE_DELETED = "SOURCE_DELETED"
INVITE_CREATED = "INVITE_CREATED"
VAULT_JOINED = "VAULT_JOINED"
ROLE_CHANGED = "ROLE_CHANGED"


@dataclass
class Vault:
    """A named collection of sources with its own membership list.

    owner_id records who created the vault. It is informational only:
    authorization always goes through the membership role.
    """

    name: str
    owner_id: str
    id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class VaultSummary:
    """One row in the caller's vault list: the vault plus the caller's view of it."""

    vault: Vault
    role: str
    source_count: int


@dataclass
class Membership:
    """The per-(user, vault) role assignment.

    user_name and user_email are filled in by queries that join users; they
    are not persisted on this record.
    """

    user_id: str
    vault_id: str
    role: str  # "owner" | "contributor" | "viewer"
    joined_at: str = ""
    user_name: Optional[str] = None
    user_email: Optional[str] = None


@dataclass
class Source:
    """A reference item (URL, note, or uploaded PDF) belonging to one vault."""

    vault_id: str
    title: str
    id: Optional[str] = None
    url: Optional[str] = None
    annotation: Optional[str] = None
    file_url: Optional[str] = None
    file_key: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    created_by: Optional[str] = None
    created_by_name: Optional[str] = None  # joined from users, read-only
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Invite:
    """A single-use, time-limited credential granting contributor membership.

    Lifecycle: created by an owner -> redeemed once (used_at/used_by set) or
    left to expire. Either way it is inert afterwards.
    """

    token: str
    vault_id: str
    invited_by: str
    expires_at: str  # ISO 8601
    id: Optional[str] = None
    created_at: str = ""
    used_at: Optional[str] = None
    used_by: Optional[str] = None
    vault_name: Optional[str] = None  # joined, read-only
    inviter_name: Optional[str] = None  # joined, read-only


@dataclass
class AuditEntry:
    """Append-only record of an action taken in a vault.

    user_id becomes None if the acting user is later deleted; the entry and
    its human-readable details survive.
    """

    vault_id: str
    action: str
    details: str
    user_id: Optional[str] = None
    user_name: Optional[str] = None  # joined, read-only
    id: Optional[str] = None
    created_at: str = ""


@dataclass
class VaultDetail:
    """A vault with its sources and members, as returned by GET /vaults/{id}."""

    vault: Vault
    sources: list[Source] = field(default_factory=list)
    members: list[Membership] = field(default_factory=list)
