"""Tests for realtime/hub.py and realtime/events.py without a real socket.

FakeSocket records every frame sent to it; FakeVaultStore answers membership
lookups from a dict. Coroutines are driven with asyncio.run() so no async
test plugin is needed.

Covers:
- join() authorizes against membership and replies only to the joiner
- Rooms are isolated: an emit reaches its own room and no other
- leave()/disconnect() clean up rooms; empty rooms are discarded
- A socket whose send raises is dropped from the hub
- Room emits run concurrently; membership lookups run in a worker thread
- handle_frame() dispatch, including malformed and unknown frames
- Source emitters swallow hub failures and tolerate a missing hub
"""

import asyncio
import json
import time

from auth.models import User
from realtime.events import emit_source_created, emit_source_deleted
from realtime.hub import ERROR, PONG, SOURCE_CREATED, SOURCE_DELETED, VAULT_JOINED, RealtimeHub, room_name
from realtime.routes import handle_frame
from vaults.models import Membership, Source


class FakeSocket:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[dict] = []
        self.fail = fail

    async def send_json(self, data) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def events(self) -> list[str]:
        return [frame["event"] for frame in self.sent]


class FakeVaultStore:
    def __init__(self, roles: dict[tuple[str, str], str]) -> None:
        self.roles = roles

    def get_membership(self, user_id: str, vault_id: str):
        role = self.roles.get((user_id, vault_id))
        if role is None:
            return None
        return Membership(user_id=user_id, vault_id=vault_id, role=role)


class SlowSocket(FakeSocket):
    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    async def send_json(self, data) -> None:
        await asyncio.sleep(self.delay)
        await super().send_json(data)


class SlowVaultStore(FakeVaultStore):
    """Blocks the calling thread the way a real SQLAlchemy query does."""

    def __init__(self, roles: dict[tuple[str, str], str], delay: float) -> None:
        super().__init__(roles)
        self.delay = delay

    def get_membership(self, user_id: str, vault_id: str):
        time.sleep(self.delay)
        return super().get_membership(user_id, vault_id)


class BrokenVaultStore:
    def get_membership(self, user_id: str, vault_id: str):
        raise RuntimeError("database is locked")


def _hub() -> RealtimeHub:
    return RealtimeHub(
        FakeVaultStore(
            {
                ("alice", "v1"): "owner",
                ("bob", "v1"): "viewer",
                ("carol", "v2"): "contributor",
            }
        )
    )


def _register(hub: RealtimeHub, user_id: str, fail: bool = False):
    socket = FakeSocket(fail=fail)
    return hub.register(socket, user_id, f"{user_id}@example.com", user_id.title()), socket


# ---------------------------------------------------------------------------
# join / leave
# ---------------------------------------------------------------------------


class TestJoin:
    def test_member_joins_and_gets_role(self) -> None:
        hub = _hub()
        conn, socket = _register(hub, "bob")
        assert asyncio.run(hub.join(conn, "v1")) is True
        assert socket.sent == [{"event": VAULT_JOINED, "data": {"vaultId": "v1", "role": "viewer"}}]
        assert conn in hub.room_members("v1")
        assert room_name("v1") in conn.rooms

    def test_non_member_denied(self) -> None:
        hub = _hub()
        conn, socket = _register(hub, "carol")
        assert asyncio.run(hub.join(conn, "v1")) is False
        assert socket.sent == [{"event": ERROR, "data": {"message": "Access denied to vault"}}]
        assert hub.room_members("v1") == set()

    def test_invalid_vault_id(self) -> None:
        hub = _hub()
        conn, socket = _register(hub, "alice")
        for bad in ("", None, 42, {"nested": True}):
            assert asyncio.run(hub.join(conn, bad)) is False
        assert socket.events() == [ERROR] * 4
        assert socket.sent[0]["data"]["message"] == "Invalid vault ID"

    def test_lookup_failure_reports_failed_join(self) -> None:
        hub = RealtimeHub(BrokenVaultStore())
        conn, socket = _register(hub, "alice")
        assert asyncio.run(hub.join(conn, "v1")) is False
        assert socket.sent[0]["data"]["message"] == "Failed to join vault"

    def test_join_reply_goes_only_to_joiner(self) -> None:
        hub = _hub()
        alice, alice_socket = _register(hub, "alice")
        bob, bob_socket = _register(hub, "bob")
        asyncio.run(hub.join(alice, "v1"))
        asyncio.run(hub.join(bob, "v1"))
        assert alice_socket.events() == [VAULT_JOINED]
        assert bob_socket.events() == [VAULT_JOINED]


class TestLeaveAndDisconnect:
    def test_leave_discards_empty_room(self) -> None:
        hub = _hub()
        conn, _ = _register(hub, "alice")
        asyncio.run(hub.join(conn, "v1"))
        hub.leave(conn, "v1")
        assert room_name("v1") not in hub.rooms
        assert conn.rooms == set()

    def test_leave_unjoined_room_is_noop(self) -> None:
        hub = _hub()
        conn, socket = _register(hub, "alice")
        hub.leave(conn, "v9")
        hub.leave(conn, None)
        assert socket.sent == []

    def test_disconnect_removes_from_all_rooms(self) -> None:
        hub = RealtimeHub(FakeVaultStore({("alice", "v1"): "owner", ("alice", "v2"): "viewer"}))
        conn, _ = _register(hub, "alice")
        asyncio.run(hub.join(conn, "v1"))
        asyncio.run(hub.join(conn, "v2"))
        hub.disconnect(conn)
        assert hub.rooms == {}
        assert conn.id not in hub.connections
        hub.disconnect(conn)


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class TestEmit:
    def test_emit_reaches_room_only(self) -> None:
        hub = _hub()
        alice, alice_socket = _register(hub, "alice")
        bob, bob_socket = _register(hub, "bob")
        carol, carol_socket = _register(hub, "carol")
        for conn, vault in ((alice, "v1"), (bob, "v1"), (carol, "v2")):
            asyncio.run(hub.join(conn, vault))

        delivered = asyncio.run(hub.emit_to_room("v1", SOURCE_CREATED, {"x": 1}))

        assert delivered == 2
        assert alice_socket.events()[-1] == SOURCE_CREATED
        assert bob_socket.events()[-1] == SOURCE_CREATED
        assert SOURCE_CREATED not in carol_socket.events()

    def test_emit_to_empty_room(self) -> None:
        assert asyncio.run(_hub().emit_to_room("nobody-here", SOURCE_CREATED, {})) == 0

    def test_slow_socket_does_not_serialize_room(self) -> None:
        hub = _hub()
        sockets = []
        for user_id in ("alice", "bob"):
            socket = SlowSocket(delay=0.3)
            conn = hub.register(socket, user_id, f"{user_id}@example.com", user_id.title())
            hub.rooms.setdefault(room_name("v1"), set()).add(conn)
            conn.rooms.add(room_name("v1"))
            sockets.append(socket)

        started = time.perf_counter()
        delivered = asyncio.run(hub.emit_to_room("v1", SOURCE_CREATED, {}))
        elapsed = time.perf_counter() - started

        assert delivered == 2
        assert all(s.events() == [SOURCE_CREATED] for s in sockets)
        assert elapsed < 0.5, f"sends ran one after another ({elapsed:.2f}s)"

    def test_membership_lookup_runs_off_the_event_loop(self) -> None:
        hub = RealtimeHub(SlowVaultStore({("alice", "v1"): "owner"}, delay=0.3))
        alice, _ = _register(hub, "alice")

        async def join_while_ticking() -> tuple[bool, float]:
            async def tick() -> float:
                started = time.perf_counter()
                await asyncio.sleep(0.05)
                return time.perf_counter() - started

            joined, tick_time = await asyncio.gather(hub.join(alice, "v1"), tick())
            return joined, tick_time

        joined, tick_time = asyncio.run(join_while_ticking())
        assert joined is True
        assert tick_time < 0.25, f"event loop stalled {tick_time:.2f}s during the lookup"

    def test_failed_send_drops_connection(self) -> None:
        hub = _hub()
        good, good_socket = _register(hub, "alice")
        asyncio.run(hub.join(good, "v1"))
        bad, bad_socket = _register(hub, "bob")
        hub.rooms[room_name("v1")].add(bad)
        bad.rooms.add(room_name("v1"))
        bad_socket.fail = True

        delivered = asyncio.run(hub.emit_to_room("v1", SOURCE_DELETED, {}))

        assert delivered == 1
        assert bad.id not in hub.connections
        assert hub.room_members("v1") == {good}
        assert good_socket.events()[-1] == SOURCE_DELETED


# ---------------------------------------------------------------------------
# Frame dispatch
# ---------------------------------------------------------------------------


class TestHandleFrame:
    def _frame(self, hub, conn, payload) -> None:
        raw = payload if isinstance(payload, str) else json.dumps(payload)
        asyncio.run(handle_frame(hub, conn, raw))

    def test_join_with_string_and_object_data(self) -> None:
        hub = RealtimeHub(FakeVaultStore({("alice", "v1"): "owner", ("alice", "v2"): "owner"}))
        conn, socket = _register(hub, "alice")
        self._frame(hub, conn, {"event": "vault:join", "data": "v1"})
        self._frame(hub, conn, {"event": "vault:join", "data": {"vaultId": "v2"}})
        assert socket.events() == [VAULT_JOINED, VAULT_JOINED]
        assert conn.rooms == {room_name("v1"), room_name("v2")}

    def test_leave_sends_nothing(self) -> None:
        hub = _hub()
        conn, socket = _register(hub, "alice")
        self._frame(hub, conn, {"event": "vault:join", "data": "v1"})
        self._frame(hub, conn, {"event": "vault:leave", "data": "v1"})
        assert socket.events() == [VAULT_JOINED]
        assert conn.rooms == set()

    def test_ping_gets_pong(self) -> None:
        hub = _hub()
        conn, socket = _register(hub, "alice")
        self._frame(hub, conn, {"event": "ping"})
        assert socket.events() == [PONG]
        assert "timestamp" in socket.sent[0]["data"]

    def test_malformed_and_unknown(self) -> None:
        hub = _hub()
        conn, socket = _register(hub, "alice")
        self._frame(hub, conn, "{not json")
        self._frame(hub, conn, "[1, 2]")
        self._frame(hub, conn, {"event": "vault:explode"})
        messages = [f["data"]["message"] for f in socket.sent]
        assert messages == ["Malformed frame", "Malformed frame", "Unknown event"]


# ---------------------------------------------------------------------------
# Source emitters
# ---------------------------------------------------------------------------


def _source() -> Source:
    return Source(id="s1", vault_id="v1", title="Paper", created_at="2026-01-01T00:00:00+00:00")


_ACTOR = User(id="alice", email="alice@example.com", name="Alice")


class TestSourceEmitters:
    def test_created_payload(self) -> None:
        hub = _hub()
        conn, socket = _register(hub, "bob")
        asyncio.run(hub.join(conn, "v1"))
        asyncio.run(emit_source_created(hub, _source(), _ACTOR, "owner"))

        frame = socket.sent[-1]
        assert frame["event"] == SOURCE_CREATED
        assert frame["data"]["source"]["id"] == "s1"
        assert frame["data"]["source"]["vaultId"] == "v1"
        assert frame["data"]["actor"] == {"userId": "alice", "userName": "Alice", "role": "owner"}
        assert "timestamp" in frame["data"]

    def test_deleted_payload(self) -> None:
        hub = _hub()
        conn, socket = _register(hub, "bob")
        asyncio.run(hub.join(conn, "v1"))
        asyncio.run(emit_source_deleted(hub, "v1", "s1", _ACTOR, "owner"))

        frame = socket.sent[-1]
        assert frame["event"] == SOURCE_DELETED
        assert frame["data"]["sourceId"] == "s1"
        assert frame["data"]["vaultId"] == "v1"

    def test_missing_hub_is_tolerated(self) -> None:
        asyncio.run(emit_source_created(None, _source(), _ACTOR, "owner"))
        asyncio.run(emit_source_deleted(None, "v1", "s1", _ACTOR, "owner"))

    def test_hub_failure_is_swallowed(self) -> None:
        class ExplodingHub:
            async def emit_to_room(self, *args, **kwargs):
                raise RuntimeError("boom")

        asyncio.run(emit_source_created(ExplodingHub(), _source(), _ACTOR, "owner"))
        asyncio.run(emit_source_deleted(ExplodingHub(), "v1", "s1", _ACTOR, "owner"))
