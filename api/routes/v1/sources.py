"""
api/routes/v1/sources.py -- Source and file upload REST endpoints.

Routes (in registration order to avoid FastAPI path capture conflicts):
  POST   /vaults/{vault_id}/upload               -- store a PDF; returns its URL  (source:create)
  POST   /vaults/{vault_id}/sources              -- add a source                  (source:create)
  GET    /vaults/{vault_id}/sources              -- list sources, newest first    (source:read)
  DELETE /vaults/{vault_id}/sources/{source_id}  -- delete a source               (source:delete)

Real-time:
  Create and delete broadcast source:created / source:deleted to the vault's
  room after the write commits. Emission never changes the HTTP outcome; see
  realtime/events.py.

Blocking work:
  Storage backends and VaultStore are synchronous. The async handlers here run
  them with asyncio.to_thread so the event loop keeps serving other requests
  and socket frames meanwhile.

File uploads:
  /upload accepts multipart/form-data with a single "file" field. Only PDFs
  up to Settings.upload_max_bytes are accepted. The upload alone creates no
  source: clients pass the returned url/publicId as fileUrl/fileKey to
  POST /sources.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, UploadFile

from api.access import VaultAccess, get_hub, get_vault_store, require_vault_permission
from api.limiter import limiter
from api.models import ApiResponse, SourceCreate, SourceDeleted, SourceOut, UploadOut, api_error
from auth.permissions import SOURCE_CREATE, SOURCE_DELETE, SOURCE_READ
from core.config import get_settings
from realtime.events import emit_source_created, emit_source_deleted
from realtime.hub import RealtimeHub
from storage.files import PDF_MIME_TYPE, InvalidUploadError, StorageError, validate_pdf_upload
from vaults.models import Source
from vaults.store import VaultStore

logger = logging.getLogger("vaultroom.api")

_settings = get_settings()

router = APIRouter()


# ---------------------------------------------------------------------------
# POST /vaults/{vault_id}/upload -- store a PDF
# ---------------------------------------------------------------------------


@limiter.limit(_settings.upload_rate_limit)
@router.post("/vaults/{vault_id}/upload", response_model=ApiResponse[UploadOut])
async def upload_file(
    request: Request,
    file: Optional[UploadFile] = None,
    access: VaultAccess = Depends(require_vault_permission(SOURCE_CREATE)),
) -> ApiResponse[UploadOut]:
    if file is None:
        raise api_error("INVALID_INPUT", "No file provided")

    max_bytes = _settings.upload_max_bytes
    # Read one byte past the cap so oversize files are detected without buffering them whole.
    data = await file.read(max_bytes + 1)
    try:
        validate_pdf_upload(data, file.content_type, max_bytes)
    except InvalidUploadError as exc:
        raise api_error("INVALID_INPUT", str(exc))

    storage = request.app.state.storage
    try:
        stored = await asyncio.to_thread(
            storage.save, data, file.filename or "upload.pdf", PDF_MIME_TYPE, folder=access.vault.id
        )
    except StorageError:
        raise api_error("SERVER_ERROR", "Failed to upload file. Please try again.")

    logger.info("User %s uploaded %d bytes to vault %s", access.user.id, stored.size, access.vault.id)
    return ApiResponse(
        data=UploadOut(url=stored.url, public_id=stored.key, file_size=stored.size, mime_type=stored.mime_type)
    )


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


@router.post("/vaults/{vault_id}/sources", response_model=ApiResponse[SourceOut], status_code=201)
async def create_source(
    body: SourceCreate,
    access: VaultAccess = Depends(require_vault_permission(SOURCE_CREATE)),
    store: VaultStore = Depends(get_vault_store),
    hub: Optional[RealtimeHub] = Depends(get_hub),
) -> ApiResponse[SourceOut]:
    """Add a source to the vault and notify everyone watching it."""
    source = await asyncio.to_thread(
        store.create_source,
        Source(
            vault_id=access.vault.id,
            title=body.title,
            url=body.url or None,
            annotation=body.annotation or None,
            file_url=body.file_url or None,
            file_key=body.file_key or None,
            file_size=body.file_size,
            mime_type=PDF_MIME_TYPE if body.file_url else None,
            created_by=access.user.id,
        ),
        actor_name=access.user.name,
    )
    await emit_source_created(hub, source, access.user, access.role)
    return ApiResponse(data=SourceOut.from_domain(source))


@router.get("/vaults/{vault_id}/sources", response_model=ApiResponse[list[SourceOut]])
def list_sources(
    access: VaultAccess = Depends(require_vault_permission(SOURCE_READ)),
    store: VaultStore = Depends(get_vault_store),
) -> ApiResponse[list[SourceOut]]:
    return ApiResponse(data=[SourceOut.from_domain(s) for s in store.list_sources(access.vault.id)])


@router.delete("/vaults/{vault_id}/sources/{source_id}", response_model=ApiResponse[SourceDeleted])
async def delete_source(
    source_id: str,
    access: VaultAccess = Depends(require_vault_permission(SOURCE_DELETE)),
    store: VaultStore = Depends(get_vault_store),
    hub: Optional[RealtimeHub] = Depends(get_hub),
) -> ApiResponse[SourceDeleted]:
    """Delete a source. A source id from another vault is reported as not found."""
    deleted = await asyncio.to_thread(
        store.delete_source, access.vault.id, source_id, actor_id=access.user.id, actor_name=access.user.name
    )
    if not deleted:
        raise api_error("NOT_FOUND", "Source not found")
    await emit_source_deleted(hub, access.vault.id, source_id, access.user, access.role)
    return ApiResponse(data=SourceDeleted(source_id=source_id))
