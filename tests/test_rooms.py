import pytest

from errors import AuthorizationError, NotFoundError, ValidationError
from redis_keys import legacy_room_users_key, messages_key, presence_key, room_key


async def test_admin_creates_public_room(rooms, broadcaster):
    room = await rooms.create("General Chat", "public", None, "ryo")

    assert room.name == "general-chat"
    assert room.type == "public"
    assert room.members is None
    assert len(room.id) == 32
    assert broadcaster.events("rooms-updated", "chats-public")


async def test_only_admin_creates_public_rooms(rooms):
    with pytest.raises(AuthorizationError):
        await rooms.create("general", "public", None, "alice")


async def test_public_room_name_checks(rooms):
    with pytest.raises(ValidationError):
        await rooms.create(None, "public", None, "ryo")
    with pytest.raises(ValidationError):
        await rooms.create("darn room", "public", None, "ryo")
    with pytest.raises(ValidationError):
        await rooms.create("general", "secret", None, "ryo")


async def test_private_room_includes_creator(rooms, presence):
    room = await rooms.create(None, "private", ["Bob"], "alice")

    assert room.name == "@alice, @bob"
    assert room.members == ["bob", "alice"]
    assert room.user_count == 2
    assert await presence.active_users(room.id) == ["alice", "bob"]


async def test_private_room_needs_another_member(rooms):
    with pytest.raises(ValidationError):
        await rooms.create(None, "private", [], "alice")
    with pytest.raises(ValidationError):
        await rooms.create(None, "private", ["alice"], "alice")


async def test_private_rooms_visible_to_members_only(rooms, public_room):
    private = await rooms.create(None, "private", ["bob"], "alice")

    assert {room.id for room in await rooms.list_visible(None)} == {public_room.id}
    assert {room.id for room in await rooms.list_visible("Bob")} == {public_room.id, private.id}
    assert {room.id for room in await rooms.list_visible("carol")} == {public_room.id}


async def test_room_listing_ignores_legacy_membership_sets(rooms, store, public_room):
    await store.sadd(legacy_room_users_key(public_room.id), "olduser")

    listed = await rooms.list_visible(None)

    assert [room.id for room in listed] == [public_room.id]


async def test_join_marks_presence_and_creates_user(rooms, users, public_room):
    assert await rooms.join(public_room.id, "Alice") == 1

    assert await users.exists("alice")
    assert (await rooms.get(public_room.id)).user_count == 1
    assert await rooms.room_users(public_room.id) == ["alice"]


async def test_join_unknown_room(rooms):
    with pytest.raises(NotFoundError):
        await rooms.join("doesnotexist", "alice")


async def test_join_rejects_bad_input(rooms, public_room):
    with pytest.raises(ValidationError):
        await rooms.join(public_room.id, "a b")
    with pytest.raises(ValidationError):
        await rooms.join("bad-id!", "alice")


async def test_leave_public_room(rooms, public_room):
    await rooms.join(public_room.id, "alice")

    assert await rooms.leave(public_room.id, "alice")
    assert not await rooms.leave(public_room.id, "alice")
    assert (await rooms.get(public_room.id)).user_count == 0


async def test_leaving_two_member_private_room_deletes_it(rooms, store, broadcaster):
    room = await rooms.create(None, "private", ["bob"], "alice")
    await store.lpush(messages_key(room.id), '{"id": "m1"}')

    assert await rooms.leave(room.id, "alice")

    assert not await store.exists(room_key(room.id))
    assert not await store.exists(messages_key(room.id))
    assert not await store.exists(presence_key(room.id, "bob"))
    assert broadcaster.events("rooms-updated", "chats-bob")


async def test_leaving_larger_private_room_keeps_it(rooms):
    room = await rooms.create(None, "private", ["bob", "carol"], "alice")

    await rooms.leave(room.id, "alice")

    updated = await rooms.load(room.id)
    assert updated.members == ["bob", "carol"]
    assert updated.user_count == 2


async def test_admin_deletes_public_room(rooms, store, public_room):
    await rooms.join(public_room.id, "alice")

    await rooms.delete(public_room.id, "ryo")

    assert not await store.exists(room_key(public_room.id))
    assert not await store.exists(presence_key(public_room.id, "alice"))


async def test_non_admin_cannot_delete_public_room(rooms, public_room):
    with pytest.raises(AuthorizationError):
        await rooms.delete(public_room.id, "alice")


async def test_deleting_private_room_is_leaving_it(rooms, store):
    room = await rooms.create(None, "private", ["bob"], "alice")

    with pytest.raises(AuthorizationError):
        await rooms.delete(room.id, "carol")

    await rooms.delete(room.id, "bob")
    assert not await store.exists(room_key(room.id))


async def test_switch_moves_presence(rooms, public_room, presence):
    other = await rooms.create("random", "public", None, "ryo")
    await rooms.join(public_room.id, "alice")

    assert await rooms.switch(public_room.id, other.id, "alice")

    assert await presence.active_users(public_room.id) == []
    assert await presence.active_users(other.id) == ["alice"]


async def test_switch_keeps_private_presence(rooms, public_room, presence):
    private = await rooms.create(None, "private", ["bob"], "alice")

    await rooms.switch(private.id, public_room.id, "alice")

    assert "alice" in await presence.active_users(private.id)


async def test_switch_to_same_room_is_noop(rooms, public_room):
    assert not await rooms.switch(public_room.id, public_room.id, "alice")


async def test_switch_to_missing_room(rooms, public_room):
    with pytest.raises(NotFoundError):
        await rooms.switch(public_room.id, "missing", "alice")


async def test_reset_user_counts_requires_admin(rooms, public_room):
    await rooms.join(public_room.id, "alice")

    with pytest.raises(AuthorizationError):
        await rooms.reset_user_counts("alice")

    assert await rooms.reset_user_counts("ryo") == 1
    assert (await rooms.load(public_room.id)).user_count == 0
    assert await rooms.room_users(public_room.id) == []


async def test_debug_presence(rooms, public_room):
    await rooms.join(public_room.id, "alice")

    debug = await rooms.debug_presence("ryo")

    assert debug["presenceKeys"] == 1
    assert debug["rooms"][0]["users"] == ["alice"]


async def test_broadcast_failure_does_not_fail_operation(rooms, broadcaster, public_room):
    broadcaster.fail = True

    assert await rooms.join(public_room.id, "alice") == 1
