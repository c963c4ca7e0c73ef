"""RoomRegistry 테스트."""

import asyncio

from modules.signaling import RoomRegistry


def test_join_returns_members_present_before_the_call(registry):
    assert registry.join("R", "alice", "Alice", "conn-a") == []

    existing = registry.join("R", "bob", "Bob", "conn-b")

    assert [m.member_id for m in existing] == ["alice"]
    assert registry.get_room_count("R") == 2


def test_duplicate_join_on_same_address_changes_nothing(registry):
    registry.join("R", "alice", "Alice", "conn-a")
    registry.join("R", "bob", "Bob", "conn-b")

    existing = registry.join("R", "alice", "Renamed", "conn-a")

    assert [m.member_id for m in existing] == ["bob"]
    assert registry.get_member("R", "alice").display_name == "Alice"
    assert registry.get_room_count("R") == 2


def test_join_from_new_address_replaces_entry(registry):
    registry.join("R", "alice", "Alice", "conn-a")

    registry.join("R", "alice", "Alice", "conn-a2")

    assert registry.lookup("R", "alice") == "conn-a2"
    assert registry.get_room_count("R") == 1


def test_leave_removes_member_and_deletes_empty_room(registry):
    registry.join("R", "alice", "Alice", "conn-a")
    registry.join("R", "bob", "Bob", "conn-b")

    assert registry.leave("R", "alice").member_id == "alice"
    assert registry.lookup("R", "alice") is None
    assert registry.room_count == 1

    registry.leave("R", "bob")
    assert registry.room_count == 0
    assert registry.get_room_list() == []


def test_leave_unknown_member_is_noop(registry):
    assert registry.leave("missing", "alice") is None
    registry.join("R", "alice", "Alice", "conn-a")
    assert registry.leave("R", "bob") is None
    assert registry.get_room_count("R") == 1


def test_leave_with_stale_address_keeps_new_entry(registry):
    registry.join("R", "alice", "Alice", "conn-old")
    registry.join("R", "alice", "Alice", "conn-new")

    assert registry.leave("R", "alice", address="conn-old") is None
    assert registry.lookup("R", "alice") == "conn-new"


def test_leave_then_rejoin_restores_identity_set(registry):
    registry.join("R", "alice", "Alice", "conn-a")
    registry.join("R", "bob", "Bob", "conn-b")
    before = {m.member_id for m in registry.get_members("R")}

    registry.leave("R", "bob")
    registry.join("R", "bob", "Bob", "conn-b")

    assert {m.member_id for m in registry.get_members("R")} == before


def test_rooms_are_independent(registry):
    registry.join("R1", "alice", "Alice", "conn-a")
    registry.join("R2", "alice", "Alice", "conn-a")

    registry.leave("R1", "alice")

    assert registry.lookup("R2", "alice") == "conn-a"
    assert registry.get_other_members("R2", "alice") == []


def test_room_list_snapshot(registry):
    registry.join("R", "alice", "Alice", "conn-a")
    registry.join("R", "bob", "Bob", "conn-b")

    assert registry.get_room_list() == [{
        "room_id": "R",
        "member_count": 2,
        "members": [
            {"member_id": "alice", "display_name": "Alice"},
            {"member_id": "bob", "display_name": "Bob"},
        ],
    }]


async def test_room_lock_serializes_same_room_only():
    registry = RoomRegistry()
    order = []
    entered = asyncio.Event()

    async def hold(room_id, name):
        async with registry.locked(room_id):
            order.append(f"{name}-in")
            entered.set()
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    first = asyncio.create_task(hold("R", "first"))
    await entered.wait()
    await asyncio.gather(hold("R", "second"), hold("other", "other"))
    await first

    assert order.index("first-out") < order.index("second-in")
    assert order.index("other-in") < order.index("first-out")


async def test_room_lock_is_released_after_room_is_gone():
    registry = RoomRegistry()

    async with registry.locked("R"):
        registry.join("R", "alice", "Alice", "conn-a")
        registry.leave("R", "alice")

    assert registry._locks == {}
    assert registry._lock_users == {}
