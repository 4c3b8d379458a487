"""
api/routes/v1/members.py -- Membership and audit log REST endpoints.

Routes:
  GET   /vaults/{vault_id}/members            -- member list with roles   (vault:read)
  PATCH /vaults/{vault_id}/members/{user_id}  -- change a member's role   (owner only)
  GET   /vaults/{vault_id}/audit              -- recent audit entries     (owner only)

Role changes:
  Owners cannot change their own role, so a vault's last owner cannot
  demote themselves. Any role, including owner, may be granted to another
  member.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from api.access import VaultAccess, get_vault_store, require_vault_owner, require_vault_permission
from api.models import ApiResponse, AuditEntryOut, MemberOut, RoleUpdate, RoleUpdated, api_error
from auth.permissions import VAULT_READ
from core.config import get_settings
from vaults.store import VaultStore

logger = logging.getLogger("vaultroom.api")

router = APIRouter()


@router.get("/vaults/{vault_id}/members", response_model=ApiResponse[list[MemberOut]])
def list_members(
    access: VaultAccess = Depends(require_vault_permission(VAULT_READ)),
    store: VaultStore = Depends(get_vault_store),
) -> ApiResponse[list[MemberOut]]:
    return ApiResponse(data=[MemberOut.from_domain(m) for m in store.list_members(access.vault.id)])


@router.patch("/vaults/{vault_id}/members/{user_id}", response_model=ApiResponse[RoleUpdated])
def update_member_role(
    user_id: str,
    body: RoleUpdate,
    access: VaultAccess = Depends(require_vault_owner),
    store: VaultStore = Depends(get_vault_store),
) -> ApiResponse[RoleUpdated]:
    if user_id == access.user.id:
        raise api_error("INVALID_INPUT", "Cannot change your own role")

    member = store.update_member_role(
        access.vault.id,
        user_id,
        body.role.value,
        actor_id=access.user.id,
        actor_name=access.user.name,
    )
    if member is None:
        raise api_error("NOT_FOUND", "User is not a member of this vault")
    logger.info("Vault %s: %s set %s to %s", access.vault.id, access.user.id, user_id, body.role.value)
    return ApiResponse(data=RoleUpdated(member=MemberOut.from_domain(member)))


@router.get("/vaults/{vault_id}/audit", response_model=ApiResponse[list[AuditEntryOut]])
def list_audit(
    access: VaultAccess = Depends(require_vault_owner),
    store: VaultStore = Depends(get_vault_store),
) -> ApiResponse[list[AuditEntryOut]]:
    """Return the vault's most recent audit entries, newest first."""
    entries = store.list_audit(access.vault.id, limit=get_settings().audit_log_limit)
    return ApiResponse(data=[AuditEntryOut.from_domain(e) for e in entries])
