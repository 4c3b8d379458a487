"""
realtime/routes.py -- The /ws WebSocket endpoint.

Handshake:
  The session token is read from the "token" query parameter, then the
  access_token cookie, then an Authorization: Bearer header. It must verify
  and name a user that still exists. Anything else is refused with close code
  1008 ("UNAUTHORIZED") before the socket is accepted, so an unauthenticated
  client never gets to send a frame.

Frames (client -> server), JSON {"event": ..., "data": ...}:
  vault:join   data = vault id (or {"vaultId": id})  -> vault:joined | error
  vault:leave  data = vault id (or {"vaultId": id})  -> no reply
  ping                                              -> pong {timestamp}

Bad frames, binary frames included, get an error frame; the connection
stays open.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket

from auth.dependencies import extract_token
from auth.tokens import resolve_token_user
from realtime.hub import ERROR, PONG, Connection, RealtimeHub, utc_timestamp

logger = logging.getLogger("vaultroom.realtime")

router = APIRouter()

POLICY_VIOLATION = 1008


def _vault_id(data: Any) -> Any:
    if isinstance(data, dict):
        return data.get("vaultId")
    return data


async def handle_frame(hub: RealtimeHub, conn: Connection, raw: str) -> None:
    """Dispatch a single client frame."""
    try:
        frame = json.loads(raw)
    except ValueError:
        await hub.send(conn, ERROR, {"message": "Malformed frame"})
        return
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        await hub.send(conn, ERROR, {"message": "Malformed frame"})
        return

    event = frame["event"]
    data = frame.get("data")
    if event == "vault:join":
        await hub.join(conn, _vault_id(data))
    elif event == "vault:leave":
        hub.leave(conn, _vault_id(data))
    elif event == "ping":
        await hub.send(conn, PONG, {"timestamp": utc_timestamp()})
    else:
        await hub.send(conn, ERROR, {"message": "Unknown event"})


@router.websocket("/ws")
async def vault_socket(websocket: WebSocket) -> None:
    hub: RealtimeHub | None = getattr(websocket.app.state, "hub", None)
    token = websocket.query_params.get("token") or extract_token(websocket)
    user = await asyncio.to_thread(resolve_token_user, websocket.app.state.user_store, token)
    if user is None or hub is None:
        logger.warning("Socket handshake refused from %s", websocket.client.host if websocket.client else "unknown")
        await websocket.close(code=POLICY_VIOLATION, reason="UNAUTHORIZED")
        return

    await websocket.accept()
    conn = hub.register(websocket, user.id, user.email, user.name)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            if message.get("text") is None:
                await hub.send(conn, ERROR, {"message": "Malformed frame"})
                continue
            await handle_frame(hub, conn, message["text"])
    finally:
        hub.disconnect(conn)
