"""
realtime/hub.py -- Connection registry and per-vault broadcast rooms.

One RealtimeHub is created per process in the api/main.py lifespan and stored
on app.state.hub. Nothing imports a module-level instance; route handlers get
it through api.access.get_hub and the socket endpoint reads app.state.

Rooms:
  Room names are "vault:<vault_id>". A connection may sit in any number of
  rooms. Rooms are created on first join and discarded when their last
  connection leaves, so the registry never holds empty sets.

Authorization:
  Connections are authenticated once, at handshake (realtime/routes.py).
  Every join is then authorized separately by looking up the membership row
  for (connection.user_id, vault_id). The role is not cached: a member whose
  role changes is reported with the new role on the next join. Members whose
  access is revoked are not evicted from rooms they already joined.

Delivery:
  Frames are JSON objects {"event": <name>, "data": <payload>}. A room emit
  sends to all of its connections concurrently, so one slow client does not
  hold up the others. A connection whose send raises is dropped from the hub
  entirely.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import uuid4

from vaults.store import VaultStore

logger = logging.getLogger("vaultroom.realtime")

# Server -> client event names.
VAULT_JOINED = "vault:joined"
SOURCE_CREATED = "source:created"
SOURCE_DELETED = "source:deleted"
PONG = "pong"
ERROR = "error"


class SocketLike(Protocol):
    async def send_json(self, data: Any) -> None: ...


def room_name(vault_id: str) -> str:
    return f"vault:{vault_id}"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(eq=False)
class Connection:
    """An authenticated socket and the identity it proved at handshake.

    Identity fields are set once and never change for the life of the
    connection. rooms mirrors the hub's registry for fast cleanup.
    """

    socket: SocketLike
    user_id: str
    email: str
    name: str
    id: str = field(default_factory=lambda: uuid4().hex)
    rooms: set[str] = field(default_factory=set)


class RealtimeHub:
    """Tracks authenticated connections and fans events out to vault rooms.

    Usage:
        hub = RealtimeHub(vault_store)
        conn = hub.register(websocket, user.id, user.email, user.name)
        await hub.join(conn, vault_id)
        await hub.emit_to_room(vault_id, "source:created", payload)
        hub.disconnect(conn)
    """

    def __init__(self, vault_store: VaultStore) -> None:
        self.vault_store = vault_store
        self.connections: dict[str, Connection] = {}
        self.rooms: dict[str, set[Connection]] = {}

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def register(self, socket: SocketLike, user_id: str, email: str, name: str) -> Connection:
        """Record an already-authenticated socket and return its Connection."""
        conn = Connection(socket=socket, user_id=user_id, email=email, name=name)
        self.connections[conn.id] = conn
        logger.info("Socket connected: user=%s conn=%s", user_id, conn.id)
        return conn

    def disconnect(self, conn: Connection) -> None:
        """Remove the connection from every room and from the registry. Idempotent."""
        for room in list(conn.rooms):
            self._discard(conn, room)
        if self.connections.pop(conn.id, None) is not None:
            logger.info("Socket disconnected: user=%s conn=%s", conn.user_id, conn.id)

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def join(self, conn: Connection, vault_id: Any) -> bool:
        """Authorize and join conn to the vault's room.

        Replies to the joining connection only: vault:joined on success,
        error otherwise. Returns True if the connection is now in the room.
        """
        if not isinstance(vault_id, str) or not vault_id:
            await self.send(conn, ERROR, {"message": "Invalid vault ID"})
            return False

        try:
            membership = await asyncio.to_thread(self.vault_store.get_membership, conn.user_id, vault_id)
        except Exception:
            logger.exception("Membership lookup failed: user=%s vault=%s", conn.user_id, vault_id)
            await self.send(conn, ERROR, {"message": "Failed to join vault"})
            return False

        if membership is None:
            logger.warning("Join denied: user=%s vault=%s", conn.user_id, vault_id)
            await self.send(conn, ERROR, {"message": "Access denied to vault"})
            return False

        room = room_name(vault_id)
        self.rooms.setdefault(room, set()).add(conn)
        conn.rooms.add(room)
        logger.info("User %s joined %s as %s", conn.user_id, room, membership.role)
        await self.send(conn, VAULT_JOINED, {"vaultId": vault_id, "role": membership.role})
        return True

    def leave(self, conn: Connection, vault_id: Any) -> None:
        """Remove conn from the vault's room. Leaving a room not joined is a no-op."""
        if not isinstance(vault_id, str) or not vault_id:
            return
        room = room_name(vault_id)
        if room in conn.rooms:
            self._discard(conn, room)
            logger.info("User %s left %s", conn.user_id, room)

    def room_members(self, vault_id: str) -> set[Connection]:
        return set(self.rooms.get(room_name(vault_id), ()))

    def _discard(self, conn: Connection, room: str) -> None:
        conn.rooms.discard(room)
        members = self.rooms.get(room)
        if members is None:
            return
        members.discard(conn)
        if not members:
            del self.rooms[room]

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def send(self, conn: Connection, event: str, data: Any) -> bool:
        """Send one frame to one connection. A failed send drops the connection."""
        try:
            await conn.socket.send_json({"event": event, "data": data})
        except Exception as e:
            logger.warning("Send to conn=%s failed, dropping it: %s", conn.id, e)
            self.disconnect(conn)
            return False
        return True

    async def emit_to_room(self, vault_id: str, event: str, data: Any) -> int:
        """Send a frame to every connection in the vault's room.

        Returns the number of connections that received it.
        """
        results = await asyncio.gather(
            *(self.send(conn, event, data) for conn in self.room_members(vault_id)),
            return_exceptions=True,
        )
        delivered = sum(1 for ok in results if ok is True)
        logger.debug("Emitted %s to %s (%d delivered)", event, room_name(vault_id), delivered)
        return delivered
