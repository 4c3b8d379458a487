"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in vaults/models.py -- dataclasses own domain shape; stores and routes do the
work.

Layer rule: no imports from api/, vaults/, realtime/, or storage/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """Represents an authenticated identity in Vaultroom.

    There is deliberately no role field. A user's role is a property of each
    vault membership, not of the account: the same person can own one vault
    and only view another. See vaults.models.Membership.

    id is None before the record is written to the database.
    """

    email: str
    name: str
    id: str | None = None
    hashed_password: str | None = None
    created_at: str | None = None
    last_login: str | None = None
