"""
api/routes/v1/vaults.py -- Vault REST endpoints.

Routes:
  POST   /vaults             -- create a vault; the caller becomes its owner
  GET    /vaults             -- vaults the caller belongs to, with role + source count
  GET    /vaults/{vault_id}  -- vault detail: sources, members, caller role  (vault:read)
  PATCH  /vaults/{vault_id}  -- rename                                       (vault:update)
  DELETE /vaults/{vault_id}  -- delete with sources, members and invites     (vault:delete)

Authorization for /vaults/{vault_id} routes is done by the VaultAccess
dependencies in api/access.py, before the handler body runs.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.access import VaultAccess, get_vault_store, require_vault_permission
from api.models import (
    ApiResponse,
    MemberOut,
    MessageData,
    SourceOut,
    VaultCreate,
    VaultDetailOut,
    VaultListItem,
    VaultOut,
    VaultUpdate,
    api_error,
)
from auth.dependencies import get_current_user
from auth.models import User
from auth.permissions import VAULT_DELETE, VAULT_READ, VAULT_UPDATE
from vaults.store import VaultStore

router = APIRouter(dependencies=[Depends(get_current_user)])


@router.post("/vaults", response_model=ApiResponse[VaultOut], status_code=201)
def create_vault(
    body: VaultCreate,
    user: User = Depends(get_current_user),
    store: VaultStore = Depends(get_vault_store),
) -> ApiResponse[VaultOut]:
    """Create a vault. Any signed-in user may; the owner membership is written in the same transaction."""
    vault = store.create_vault(body.name, owner_id=user.id, actor_name=user.name)
    return ApiResponse(data=VaultOut.from_domain(vault))


@router.get("/vaults", response_model=ApiResponse[list[VaultListItem]])
def list_vaults(
    user: User = Depends(get_current_user),
    store: VaultStore = Depends(get_vault_store),
) -> ApiResponse[list[VaultListItem]]:
    """List every vault the caller is a member of, newest first."""
    return ApiResponse(data=[VaultListItem.from_summary(s) for s in store.list_vaults_for_user(user.id)])


@router.get("/vaults/{vault_id}", response_model=ApiResponse[VaultDetailOut])
def get_vault(
    access: VaultAccess = Depends(require_vault_permission(VAULT_READ)),
    store: VaultStore = Depends(get_vault_store),
) -> ApiResponse[VaultDetailOut]:
    detail = store.get_vault_detail(access.vault.id)
    if detail is None:
        raise api_error("NOT_FOUND", "Vault not found")
    base = VaultOut.from_domain(detail.vault).model_dump()
    return ApiResponse(
        data=VaultDetailOut(
            **base,
            role=access.role,
            sources=[SourceOut.from_domain(s) for s in detail.sources],
            members=[MemberOut.from_domain(m) for m in detail.members],
        )
    )


@router.patch("/vaults/{vault_id}", response_model=ApiResponse[VaultOut])
def rename_vault(
    body: VaultUpdate,
    access: VaultAccess = Depends(require_vault_permission(VAULT_UPDATE)),
    store: VaultStore = Depends(get_vault_store),
) -> ApiResponse[VaultOut]:
    vault = store.rename_vault(access.vault.id, body.name, actor_id=access.user.id, actor_name=access.user.name)
    if vault is None:
        raise api_error("NOT_FOUND", "Vault not found")
    return ApiResponse(data=VaultOut.from_domain(vault))


@router.delete("/vaults/{vault_id}", response_model=ApiResponse[MessageData])
def delete_vault(
    access: VaultAccess = Depends(require_vault_permission(VAULT_DELETE)),
    store: VaultStore = Depends(get_vault_store),
) -> ApiResponse[MessageData]:
    """Delete the vault. Sources, memberships and invites are removed by cascade."""
    if not store.delete_vault(access.vault.id, actor_id=access.user.id, actor_name=access.user.name):
        raise api_error("NOT_FOUND", "Vault not found")
    return ApiResponse(data=MessageData(message="Vault deleted successfully"))
