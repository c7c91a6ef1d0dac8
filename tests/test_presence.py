import json

from constants import DAY_SECONDS
from redis_keys import legacy_room_users_key, room_key


async def test_user_present_until_ttl_elapses(presence, clock):
    await presence.mark_present("room1", "Alice")

    clock.advance(DAY_SECONDS - 1)
    assert await presence.active_users("room1") == ["alice"]

    clock.advance(2)
    assert await presence.active_users("room1") == []


async def test_activity_rearms_ttl(presence, clock):
    await presence.mark_present("room1", "alice")
    clock.advance(DAY_SECONDS - 10)
    await presence.mark_present("room1", "alice")
    clock.advance(DAY_SECONDS - 10)

    assert await presence.active_users("room1") == ["alice"]


async def test_active_users_sorted_across_scan_pages(presence):
    for name in ("erin", "bob", "dave", "alice", "carol"):
        await presence.mark_present("room1", name)
    await presence.mark_present("room2", "zed")

    assert await presence.active_users("room1") == ["alice", "bob", "carol", "dave", "erin"]


async def test_clear_present(presence):
    await presence.mark_present("room1", "alice")

    assert await presence.clear_present("room1", "alice")
    assert not await presence.clear_present("room1", "alice")
    assert await presence.active_users("room1") == []


async def test_legacy_membership_set_purged_on_read(presence, store):
    await store.sadd(legacy_room_users_key("room1"), "olduser")

    assert await presence.active_users("room1") == []
    assert not await store.exists(legacy_room_users_key("room1"))


async def test_refresh_room_count_writes_room_record(presence, store):
    await store.set(room_key("room1"), json.dumps({"id": "room1", "name": "general", "userCount": 7}))
    await presence.mark_present("room1", "alice")

    assert await presence.refresh_room_count("room1") == 1
    assert json.loads(await store.get(room_key("room1")))["userCount"] == 1


async def test_clear_all(presence, store):
    await presence.mark_present("room1", "alice")
    await presence.mark_present("room2", "bob")
    await store.sadd(legacy_room_users_key("room1"), "olduser")

    assert await presence.clear_all() == (1, 2)
    assert await presence.snapshot() == {}
