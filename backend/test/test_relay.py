"""SignalingRelay 테스트.

가짜 WebSocket으로 연결을 만들어 입장/퇴장 알림과 직접 전달, 브로드캐스트를 검증합니다.
"""

import pytest

from modules.signaling import NotInRoomError
from modules.signaling.messages import make_message

from conftest import FakeWebSocket, wait_until


async def open_member(relay, room_id, member_id, display_name=None):
    websocket = FakeWebSocket()
    connection = relay.open_connection(websocket)
    await relay.join(connection, room_id, member_id, display_name or member_id.title())
    return connection, websocket


async def settle(*connections):
    for connection in connections:
        await connection.drain()


async def test_first_member_gets_empty_snapshot(relay):
    conn, ws = await open_member(relay, "R", "alice")
    await settle(conn)

    assert ws.sent == [{"type": "existing-members", "data": {"room_id": "R", "members": []}}]


async def test_second_member_is_announced_and_gets_snapshot(relay):
    conn_a, ws_a = await open_member(relay, "R", "alice")
    conn_b, ws_b = await open_member(relay, "R", "bob")
    await settle(conn_a, conn_b)

    assert ws_a.of_type("member-joined") == [
        {"type": "member-joined", "data": {"display_name": "Bob", "member_id": "bob"}}
    ]
    assert ws_b.of_type("existing-members") == [{
        "type": "existing-members",
        "data": {"room_id": "R", "members": [{"member_id": "alice", "display_name": "Alice"}]},
    }]
    assert ws_b.of_type("member-joined") == []


async def test_offer_reaches_only_its_target(relay):
    conn_a, ws_a = await open_member(relay, "R", "alice")
    conn_b, ws_b = await open_member(relay, "R", "bob")
    conn_c, ws_c = await open_member(relay, "R", "carol")
    description = {"sdp": "v=0", "type": "offer"}

    delivered = relay.forward(conn_a, "bob", make_message("offer", {
        "target_member_id": "bob",
        "description": description,
    }))
    await settle(conn_a, conn_b, conn_c)

    assert delivered is True
    assert ws_b.of_type("offer") == [
        {"type": "offer", "data": {"description": description, "from_member_id": "alice"}}
    ]
    assert ws_a.of_type("offer") == []
    assert ws_c.of_type("offer") == []


async def test_routing_is_symmetric(relay):
    conn_a, ws_a = await open_member(relay, "R", "alice")
    conn_b, ws_b = await open_member(relay, "R", "bob")

    relay.forward(conn_b, "alice", make_message("answer", {"target_member_id": "alice", "description": {}}))
    await settle(conn_a)

    assert ws_a.of_type("answer")[0]["data"]["from_member_id"] == "bob"


async def test_unknown_target_is_dropped_silently(relay):
    conn_a, ws_a = await open_member(relay, "R", "alice")

    delivered = relay.forward(conn_a, "ghost", make_message("ice-candidate", {"target_member_id": "ghost"}))
    await settle(conn_a)

    assert delivered is False
    assert ws_a.of_type("error") == []


async def test_target_in_another_room_is_not_reachable(relay):
    conn_a, _ = await open_member(relay, "R1", "alice")
    conn_b, ws_b = await open_member(relay, "R2", "bob")

    assert relay.forward(conn_a, "bob", make_message("offer", {"target_member_id": "bob"})) is False
    await settle(conn_b)
    assert ws_b.of_type("offer") == []


async def test_broadcast_excludes_sender_and_tags_member(relay):
    conn_a, ws_a = await open_member(relay, "R", "alice")
    conn_b, ws_b = await open_member(relay, "R", "bob")
    conn_c, ws_c = await open_member(relay, "R", "carol")

    for _ in range(2):
        relay.broadcast(conn_a, make_message("toggle-audio", {"muted": True}))
    await settle(conn_a, conn_b, conn_c)

    expected = [{"type": "toggle-audio", "data": {"muted": True, "member_id": "alice"}}] * 2
    assert ws_b.of_type("toggle-audio") == expected
    assert ws_c.of_type("toggle-audio") == expected
    assert ws_a.of_type("toggle-audio") == []


async def test_relay_before_join_raises(relay):
    conn = relay.open_connection(FakeWebSocket())

    with pytest.raises(NotInRoomError):
        relay.forward(conn, "bob", make_message("offer"))
    with pytest.raises(NotInRoomError):
        relay.broadcast(conn, make_message("screen-share-started"))


async def test_leave_announces_member_left(relay, registry):
    conn_a, ws_a = await open_member(relay, "R", "alice")
    conn_b, ws_b = await open_member(relay, "R", "bob")

    assert await relay.leave(conn_b) is True
    await settle(conn_a)

    assert ws_a.of_type("member-left") == [{"type": "member-left", "data": {"member_id": "bob"}}]
    assert conn_b.room_id is None
    assert registry.lookup("R", "bob") is None
    assert await relay.leave(conn_b) is False


async def test_last_leave_deletes_room(relay, registry):
    conn_a, _ = await open_member(relay, "R", "alice")

    await relay.leave(conn_a)

    assert relay.room_count == 0
    assert registry.get_room_list() == []


async def test_duplicate_join_resends_snapshot_without_announcing(relay):
    conn_a, ws_a = await open_member(relay, "R", "alice")
    conn_b, ws_b = await open_member(relay, "R", "bob")

    await relay.join(conn_b, "R", "bob", "Bob")
    await settle(conn_a, conn_b)

    assert len(ws_a.of_type("member-joined")) == 1
    assert len(ws_b.of_type("existing-members")) == 2


async def test_reconnect_with_same_member_id_replaces_stale_connection(relay, registry):
    conn_a, ws_a = await open_member(relay, "R", "alice")
    old_b, _ = await open_member(relay, "R", "bob")

    new_b, new_ws_b = await open_member(relay, "R", "bob")
    relay.forward(conn_a, "bob", make_message("offer", {"target_member_id": "bob"}))
    await settle(conn_a, new_b)

    assert ws_a.types()[-2:] == ["member-left", "member-joined"]
    assert old_b.room_id is None
    assert registry.lookup("R", "bob") == new_b.address
    assert len(new_ws_b.of_type("offer")) == 1

    # stale connection closing must not evict the new one
    await relay.disconnect(old_b)
    assert registry.lookup("R", "bob") == new_b.address


async def test_joining_another_room_leaves_the_first(relay, registry):
    conn_a, ws_a = await open_member(relay, "R1", "alice")
    conn_b, _ = await open_member(relay, "R1", "bob")

    await relay.join(conn_b, "R2", "bob", "Bob")
    await settle(conn_a)

    assert ws_a.of_type("member-left") == [{"type": "member-left", "data": {"member_id": "bob"}}]
    assert registry.lookup("R1", "bob") is None
    assert registry.lookup("R2", "bob") == conn_b.address
    assert conn_b.room_id == "R2"


async def test_disconnect_removes_connection_and_membership(relay):
    conn_a, ws_a = await open_member(relay, "R", "alice")
    conn_b, _ = await open_member(relay, "R", "bob")

    await relay.disconnect(conn_b)
    await relay.disconnect(conn_b)
    await settle(conn_a)

    assert relay.connection_count == 1
    assert ws_a.of_type("member-left") == [{"type": "member-left", "data": {"member_id": "bob"}}]


async def test_send_failure_is_treated_as_disconnect(relay, registry):
    conn_a, ws_a = await open_member(relay, "R", "alice")
    conn_b, ws_b = await open_member(relay, "R", "bob")
    ws_b.fail = True

    relay.broadcast(conn_a, make_message("toggle-video", {"video_off": True}))
    await wait_until(lambda: ws_a.of_type("member-left"))

    assert registry.lookup("R", "bob") is None
    assert conn_b.address not in relay.connections
