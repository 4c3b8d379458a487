"""
api/routes/v1/invites.py -- Invite link REST endpoints.

Routes:
  POST /vaults/{vault_id}/invite   -- generate a single-use invite (owner only)
  GET  /invites/{token}            -- look up an invite (public)
  POST /invites/{token}/accept     -- join the vault as contributor (requires auth)

Invite lifecycle:
  created -> used (once) or expired (after Settings.invite_expire_days).
  Both end states are permanent. Expiry is checked before use, so a token
  that is both used and expired reports EXPIRED.

Redemption is a single transaction in VaultStore.redeem_invite(): the
membership insert, the used_at marker and the audit entry commit together.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from api.access import VaultAccess, get_vault_store, require_vault_owner
from api.models import ApiResponse, InviteAccepted, InviteCreated, InviteInfo, api_error
from auth.dependencies import get_current_user
from auth.models import User
from core.config import get_settings
from vaults.store import (
    AlreadyMemberError,
    InviteExpiredError,
    InviteNotFoundError,
    InviteUsedError,
    VaultStore,
    check_invite,
)

logger = logging.getLogger("vaultroom.api")

router = APIRouter()

_ERROR_CODES = {
    InviteNotFoundError: "NOT_FOUND",
    InviteExpiredError: "EXPIRED",
    InviteUsedError: "USED",
    AlreadyMemberError: "ALREADY_MEMBER",
}


@router.post("/vaults/{vault_id}/invite", response_model=ApiResponse[InviteCreated])
def create_invite(
    access: VaultAccess = Depends(require_vault_owner),
    store: VaultStore = Depends(get_vault_store),
) -> ApiResponse[InviteCreated]:
    invite = store.create_invite(
        access.vault.id,
        invited_by=access.user.id,
        actor_name=access.user.name,
        expire_days=get_settings().invite_expire_days,
    )
    logger.info("Invite created for vault %s by %s", access.vault.id, access.user.id)
    return ApiResponse(data=InviteCreated(invite_token=invite.token, expires_at=invite.expires_at))


@router.get("/invites/{token}", response_model=ApiResponse[InviteInfo])
def get_invite(token: str, store: VaultStore = Depends(get_vault_store)) -> ApiResponse[InviteInfo]:
    """Describe an invite without consuming it. Public: shown before login."""
    try:
        invite = check_invite(store.get_invite(token))
    except (InviteNotFoundError, InviteExpiredError, InviteUsedError) as exc:
        raise api_error(_ERROR_CODES[type(exc)], str(exc))
    return ApiResponse(
        data=InviteInfo(
            vault_id=invite.vault_id,
            vault_name=invite.vault_name,
            inviter_name=invite.inviter_name,
            expires_at=invite.expires_at,
        )
    )


@router.post("/invites/{token}/accept", response_model=ApiResponse[InviteAccepted])
def accept_invite(
    token: str,
    user: User = Depends(get_current_user),
    store: VaultStore = Depends(get_vault_store),
) -> ApiResponse[InviteAccepted]:
    try:
        membership = store.redeem_invite(token, user_id=user.id, user_name=user.name)
    except (InviteNotFoundError, InviteExpiredError, InviteUsedError, AlreadyMemberError) as exc:
        raise api_error(_ERROR_CODES[type(exc)], str(exc))
    return ApiResponse(data=InviteAccepted(vault_id=membership.vault_id))
