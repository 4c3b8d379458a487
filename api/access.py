"""
api/access.py -- Per-vault authorization dependencies.

Every vault-scoped route resolves the caller's role from the membership
record and checks it against the permission table in auth/permissions.py
before touching any data:

    @router.patch("/vaults/{vault_id}")
    def rename(access: VaultAccess = Depends(require_vault_permission(VAULT_UPDATE))): ...

Failure order is fixed: 401 (no session) -> 404 (vault does not exist) ->
403 (no membership, or the role lacks the action). The role is read fresh
on every request; nothing is cached between requests.

Owner-only operations (invites, role changes, the audit log) use
require_vault_owner, which checks the role directly rather than an action.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Request

from api.models import api_error
from auth.dependencies import get_current_user
from auth.models import User
from auth.permissions import Role, check_permission
from realtime.hub import RealtimeHub
from vaults.models import Vault
from vaults.store import VaultStore


@dataclass
class VaultAccess:
    """The authenticated caller, the vault they addressed, and their role in it."""

    user: User
    vault: Vault
    role: str


def get_vault_store(request: Request) -> VaultStore:
    return request.app.state.vault_store


def get_hub(request: Request) -> Optional[RealtimeHub]:
    """Return the process's realtime hub, or None if the app was started without one."""
    return getattr(request.app.state, "hub", None)


def _resolve_access(vault_id: str, user: User, store: VaultStore) -> VaultAccess:
    vault = store.get_vault(vault_id)
    if vault is None:
        raise api_error("NOT_FOUND", "Vault not found")
    membership = store.get_membership(user.id, vault_id)
    if membership is None:
        raise api_error("FORBIDDEN", "You do not have access to this vault")
    return VaultAccess(user=user, vault=vault, role=membership.role)


def require_vault_permission(action: str) -> Callable[..., VaultAccess]:
    """Dependency factory: require a vault role that permits `action`."""

    def dependency(
        vault_id: str,
        user: User = Depends(get_current_user),
        store: VaultStore = Depends(get_vault_store),
    ) -> VaultAccess:
        access = _resolve_access(vault_id, user, store)
        if not check_permission(access.role, action):
            raise api_error("FORBIDDEN", f"Your role ({access.role}) does not allow {action}")
        return access

    return dependency


def require_vault_owner(
    vault_id: str,
    user: User = Depends(get_current_user),
    store: VaultStore = Depends(get_vault_store),
) -> VaultAccess:
    """Require the caller to hold the owner role in the vault."""
    access = _resolve_access(vault_id, user, store)
    if access.role != Role.owner.value:
        raise api_error("FORBIDDEN", "Only vault owners can perform this action")
    return access
