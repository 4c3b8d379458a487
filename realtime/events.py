"""
realtime/events.py -- Source events broadcast after a successful write.

Called by the source routes once the database write has committed. Emission
is best-effort: if the hub is missing or a send blows up, the failure is
logged and the HTTP response goes out unchanged. Clients treat these events
as "something changed, refetch".
"""

from __future__ import annotations

import logging
from typing import Optional

from auth.models import User
from realtime.hub import SOURCE_CREATED, SOURCE_DELETED, RealtimeHub, utc_timestamp
from vaults.models import Source

logger = logging.getLogger("vaultroom.realtime")


def _actor(user: User, role: str) -> dict:
    return {"userId": user.id, "userName": user.name, "role": role}


def source_payload(source: Source) -> dict:
    return {
        "id": source.id,
        "title": source.title,
        "fileUrl": source.file_url,
        "fileKey": source.file_key,
        "fileSize": source.file_size,
        "mimeType": source.mime_type,
        "vaultId": source.vault_id,
        "createdAt": source.created_at,
    }


async def emit_source_created(hub: Optional[RealtimeHub], source: Source, user: User, role: str) -> None:
    if hub is None:
        logger.warning("No realtime hub; source:created for %s not emitted", source.id)
        return
    try:
        await hub.emit_to_room(
            source.vault_id,
            SOURCE_CREATED,
            {"source": source_payload(source), "actor": _actor(user, role), "timestamp": utc_timestamp()},
        )
    except Exception:
        logger.exception("Failed to emit source:created for %s", source.id)


async def emit_source_deleted(
    hub: Optional[RealtimeHub], vault_id: str, source_id: str, user: User, role: str
) -> None:
    if hub is None:
        logger.warning("No realtime hub; source:deleted for %s not emitted", source_id)
        return
    try:
        await hub.emit_to_room(
            vault_id,
            SOURCE_DELETED,
            {"sourceId": source_id, "vaultId": vault_id, "actor": _actor(user, role), "timestamp": utc_timestamp()},
        )
    except Exception:
        logger.exception("Failed to emit source:deleted for %s", source_id)
