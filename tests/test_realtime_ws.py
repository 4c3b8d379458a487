"""Integration tests for the /ws endpoint through TestClient.

Covers:
- Handshake refusal (no token, bad token, unknown user) closes with 1008
- Token accepted from query string or Bearer header
- vault:join authorization against live membership
- Source create/delete over HTTP reach sockets in that vault's room only
- ping/pong and error frames keep the socket open

"Nothing was received" is checked by sending a ping and requiring the very
next frame to be the pong.
"""

import pytest
from starlette.websockets import WebSocketDisconnect

from auth.tokens import create_access_token
from realtime.routes import POLICY_VIOLATION


def _ws_url(actor) -> str:
    return f"/ws?token={actor.token}"


def _join(ws, vault_id: str) -> dict:
    ws.send_json({"event": "vault:join", "data": vault_id})
    return ws.receive_json()


def _assert_nothing_pending(ws) -> None:
    ws.send_json({"event": "ping"})
    assert ws.receive_json()["event"] == "pong"


class TestHandshake:
    def test_no_token_refused(self, api_env) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with api_env.client.websocket_connect("/ws"):
                pass
        assert exc_info.value.code == POLICY_VIOLATION

    def test_garbage_token_refused(self, api_env) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with api_env.client.websocket_connect("/ws?token=not-a-jwt"):
                pass
        assert exc_info.value.code == POLICY_VIOLATION

    def test_unknown_user_refused(self, api_env) -> None:
        ghost = create_access_token("no-such-user", "ghost@example.com", "Ghost", expire_seconds=60)
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with api_env.client.websocket_connect(f"/ws?token={ghost}"):
                pass
        assert exc_info.value.code == POLICY_VIOLATION

    def test_query_token_accepted(self, api_env) -> None:
        with api_env.client.websocket_connect(_ws_url(api_env.owner)) as ws:
            _assert_nothing_pending(ws)

    def test_bearer_header_accepted(self, api_env) -> None:
        with api_env.client.websocket_connect("/ws", headers=api_env.viewer.headers) as ws:
            _assert_nothing_pending(ws)


class TestJoin:
    def test_member_join_reports_role(self, api_env) -> None:
        vault_id = api_env.new_vault()
        with api_env.client.websocket_connect(_ws_url(api_env.viewer)) as ws:
            frame = _join(ws, vault_id)
        assert frame == {"event": "vault:joined", "data": {"vaultId": vault_id, "role": "viewer"}}

    def test_outsider_join_denied_and_socket_stays_open(self, api_env) -> None:
        vault_id = api_env.new_vault()
        with api_env.client.websocket_connect(_ws_url(api_env.outsider)) as ws:
            frame = _join(ws, vault_id)
            assert frame == {"event": "error", "data": {"message": "Access denied to vault"}}
            _assert_nothing_pending(ws)

    def test_unknown_event(self, api_env) -> None:
        with api_env.client.websocket_connect(_ws_url(api_env.owner)) as ws:
            ws.send_json({"event": "vault:destroy", "data": "x"})
            assert ws.receive_json()["data"]["message"] == "Unknown event"
            ws.send_text("not json")
            assert ws.receive_json()["data"]["message"] == "Malformed frame"
            _assert_nothing_pending(ws)

    def test_binary_frame_gets_error_and_socket_stays_open(self, api_env) -> None:
        with api_env.client.websocket_connect(_ws_url(api_env.owner)) as ws:
            ws.send_bytes(b"\x00\x01")
            assert ws.receive_json() == {"event": "error", "data": {"message": "Malformed frame"}}
            _assert_nothing_pending(ws)


class TestBroadcast:
    def test_source_created_reaches_room_members_only(self, api_env) -> None:
        vault_id = api_env.new_vault("Watched")
        other_vault = api_env.new_vault("Elsewhere")

        with api_env.client.websocket_connect(_ws_url(api_env.viewer)) as watcher, api_env.client.websocket_connect(
            _ws_url(api_env.contributor)
        ) as bystander:
            assert _join(watcher, vault_id)["event"] == "vault:joined"
            assert _join(bystander, other_vault)["event"] == "vault:joined"

            resp = api_env.client.post(
                f"/api/v1/vaults/{vault_id}/sources", json={"title": "Live Paper"}, headers=api_env.owner.headers
            )
            assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"

            frame = watcher.receive_json()
            assert frame["event"] == "source:created"
            assert frame["data"]["source"]["title"] == "Live Paper"
            assert frame["data"]["source"]["vaultId"] == vault_id
            assert frame["data"]["actor"] == {
                "userId": api_env.owner.id,
                "userName": "Olivia Owner",
                "role": "owner",
            }
            _assert_nothing_pending(bystander)

    def test_source_deleted_event(self, api_env) -> None:
        vault_id = api_env.new_vault()
        source_id = api_env.new_source(vault_id)
        with api_env.client.websocket_connect(_ws_url(api_env.contributor)) as ws:
            _join(ws, vault_id)
            resp = api_env.client.delete(
                f"/api/v1/vaults/{vault_id}/sources/{source_id}", headers=api_env.owner.headers
            )
            assert resp.status_code == 200
            frame = ws.receive_json()
        assert frame["event"] == "source:deleted"
        assert frame["data"]["sourceId"] == source_id
        assert frame["data"]["vaultId"] == vault_id

    def test_left_room_receives_nothing(self, api_env) -> None:
        vault_id = api_env.new_vault()
        with api_env.client.websocket_connect(_ws_url(api_env.viewer)) as ws:
            _join(ws, vault_id)
            ws.send_json({"event": "vault:leave", "data": {"vaultId": vault_id}})
            _assert_nothing_pending(ws)
            api_env.client.post(
                f"/api/v1/vaults/{vault_id}/sources", json={"title": "Unseen"}, headers=api_env.owner.headers
            )
            _assert_nothing_pending(ws)

    def test_failed_create_emits_nothing(self, api_env) -> None:
        vault_id = api_env.new_vault()
        with api_env.client.websocket_connect(_ws_url(api_env.contributor)) as ws:
            _join(ws, vault_id)
            resp = api_env.client.post(
                f"/api/v1/vaults/{vault_id}/sources", json={"title": "Denied"}, headers=api_env.viewer.headers
            )
            assert resp.status_code == 403
            _assert_nothing_pending(ws)

    def test_disconnect_cleans_up_rooms(self, api_env) -> None:
        vault_id = api_env.new_vault()
        with api_env.client.websocket_connect(_ws_url(api_env.viewer)) as ws:
            _join(ws, vault_id)
            assert len(api_env.hub.room_members(vault_id)) == 1
        api_env.client.get("/api/v1/health")
        assert api_env.hub.room_members(vault_id) == set()
