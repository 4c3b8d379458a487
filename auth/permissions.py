"""
auth/permissions.py -- Role-based permission table for vault operations.

Every mutating route resolves the caller's role for the target vault (from the
membership record, never from the token) and asks check_permission() whether
that role may perform the action. The table is static; decisions are made
fresh on every request.

Default deny: an unknown role or an action missing from a role's set returns
False.

Layer rule: pure module, stdlib only.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    owner = "owner"
    contributor = "contributor"
    viewer = "viewer"


_ROLE_VALUES: frozenset[str] = frozenset(r.value for r in Role)

VAULT_CREATE = "vault:create"
VAULT_READ = "vault:read"
VAULT_UPDATE = "vault:update"
VAULT_DELETE = "vault:delete"
SOURCE_CREATE = "source:create"
SOURCE_READ = "source:read"
SOURCE_DELETE = "source:delete"

ALL_ACTIONS: frozenset[str] = frozenset(
    {VAULT_CREATE, VAULT_READ, VAULT_UPDATE, VAULT_DELETE, SOURCE_CREATE, SOURCE_READ, SOURCE_DELETE}
)

_PERMISSIONS: dict[Role, frozenset[str]] = {
    Role.owner: ALL_ACTIONS,
    Role.contributor: frozenset({VAULT_READ, VAULT_UPDATE, SOURCE_CREATE, SOURCE_READ}),
    Role.viewer: frozenset({VAULT_READ, SOURCE_READ}),
}


def is_valid_role(role: str) -> bool:
    """Return True if role is one of owner, contributor, viewer."""
    return role in _ROLE_VALUES


def role_permissions(role: str) -> frozenset[str]:
    """Return the set of actions granted to role (empty for unknown roles)."""
    if not is_valid_role(role):
        return frozenset()
    return _PERMISSIONS[Role(role)]


def check_permission(role: str, action: str) -> bool:
    """Return True if role may perform action."""
    return action in role_permissions(role)
