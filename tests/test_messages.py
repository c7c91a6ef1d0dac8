import pytest

from errors import AuthorizationError, DuplicateMessageError, NotFoundError, RateLimitError, ValidationError
from redis_keys import messages_key


async def test_send_stores_and_broadcasts(messages, public_room, broadcaster, users, presence):
    message = await messages.send(public_room.id, "Alice", "hello world")

    assert message.username == "alice"
    assert message.content == "hello world"
    assert [m.id for m in await messages.recent(public_room.id)] == [message.id]
    assert await users.exists("alice")
    assert await presence.active_users(public_room.id) == ["alice"]

    events = broadcaster.events("room-message", f"room-{public_room.id}")
    assert events[0][2]["message"]["id"] == message.id
    assert events[0][2]["roomId"] == public_room.id


async def test_private_room_message_fans_out_to_members(messages, rooms, broadcaster):
    room = await rooms.create(None, "private", ["bob"], "alice")

    await messages.send(room.id, "alice", "hi bob")

    channels = {channel for channel, _, _ in broadcaster.events("room-message")}
    assert channels == {f"room-{room.id}", "chats-alice", "chats-bob"}


async def test_content_is_filtered_and_escaped(messages, public_room):
    message = await messages.send(public_room.id, "alice", "darn <b>it</b> see https://example.com/darn")

    assert "darn" not in message.content.split("https://")[0]
    assert "&lt;b&gt;it&lt;/b&gt;" in message.content
    assert message.content.endswith("https://example.com/darn")


async def test_quotes_are_escaped(messages, public_room):
    message = await messages.send(public_room.id, "alice", "it's \"quoted\" & fine")

    assert message.content == "it&#x27;s &quot;quoted&quot; &amp; fine"


async def test_empty_and_oversized_content_rejected(messages, public_room):
    with pytest.raises(ValidationError):
        await messages.send(public_room.id, "alice", "")
    with pytest.raises(ValidationError):
        await messages.send(public_room.id, "alice", "x" * 1001)


async def test_escaping_counts_toward_length(messages, public_room):
    with pytest.raises(ValidationError):
        await messages.send(public_room.id, "alice", "&" * 300)


async def test_send_to_missing_room(messages):
    with pytest.raises(NotFoundError):
        await messages.send("missing", "alice", "hello")


async def test_profane_username_rejected(messages, public_room):
    with pytest.raises(ValidationError):
        await messages.send(public_room.id, "darn", "hello")


async def test_duplicate_of_newest_message_rejected(messages, public_room):
    await messages.send(public_room.id, "alice", "hello")

    with pytest.raises(DuplicateMessageError):
        await messages.send(public_room.id, "alice", "hello")

    await messages.send(public_room.id, "bob", "hello")


async def test_duplicates_do_not_spend_burst_budget(messages, public_room, clock):
    await messages.send(public_room.id, "alice", "hello")
    for _ in range(5):
        with pytest.raises(DuplicateMessageError):
            await messages.send(public_room.id, "alice", "hello")

    clock.advance(2)
    await messages.send(public_room.id, "alice", "hello again")


async def test_history_capped_at_one_hundred(messages, rooms, store):
    room = await rooms.create(None, "private", ["bob"], "alice")
    for i in range(105):
        await messages.send(room.id, "alice", f"message {i}")

    stored = await store.lrange(messages_key(room.id), 0, -1)
    assert len(stored) == 100
    recent = await messages.recent(room.id)
    assert len(recent) == 20
    assert recent[0].content == "message 104"


async def test_recent_drops_malformed_entries(messages, public_room, store):
    await messages.send(public_room.id, "alice", "hello")
    await store.lpush(messages_key(public_room.id), "not json")

    recent = await messages.recent(public_room.id)

    assert [m.content for m in recent] == ["hello"]


async def test_malformed_newest_entry_does_not_block_sending(messages, public_room, store):
    await store.lpush(messages_key(public_room.id), "not json")

    await messages.send(public_room.id, "alice", "hello")


async def test_burst_limit_applies_to_public_rooms(messages, public_room, clock):
    for _ in range(3):
        await messages.send(public_room.id, "alice", f"msg at {clock()}")
        clock.advance(2.5)

    with pytest.raises(RateLimitError):
        await messages.send(public_room.id, "alice", "one too many")


async def test_private_rooms_skip_burst_limit(messages, rooms):
    room = await rooms.create(None, "private", ["bob"], "alice")

    for i in range(10):
        await messages.send(room.id, "alice", f"quick {i}")


async def test_admin_deletes_message(messages, public_room, broadcaster):
    keep = await messages.send(public_room.id, "alice", "keep me")
    remove = await messages.send(public_room.id, "bob", "remove me")

    await messages.delete(public_room.id, remove.id, "ryo")

    assert [m.id for m in await messages.recent(public_room.id)] == [keep.id]
    assert broadcaster.events("message-deleted", f"room-{public_room.id}")


async def test_delete_requires_admin_and_existing_message(messages, public_room):
    message = await messages.send(public_room.id, "alice", "hello")

    with pytest.raises(AuthorizationError):
        await messages.delete(public_room.id, message.id, "alice")
    with pytest.raises(NotFoundError):
        await messages.delete(public_room.id, "unknown", "ryo")


async def test_bulk_splits_valid_and_invalid_rooms(messages, public_room):
    await messages.send(public_room.id, "alice", "hello")

    result = await messages.bulk([public_room.id, "missing"])

    assert result.valid_room_ids == [public_room.id]
    assert result.invalid_room_ids == ["missing"]
    assert [m.content for m in result.messages_map[public_room.id]] == ["hello"]


async def test_bulk_rejects_malformed_ids(messages):
    with pytest.raises(ValidationError):
        await messages.bulk(["ok", "not-ok"])


async def test_clear_all(messages, public_room, broadcaster):
    await messages.send(public_room.id, "alice", "hello")

    with pytest.raises(AuthorizationError):
        await messages.clear_all("alice")

    assert await messages.clear_all("ryo") == 1
    assert await messages.recent(public_room.id) == []
    assert broadcaster.events("messages-cleared", "chats-public")


async def test_broadcast_failure_does_not_fail_send(messages, public_room, broadcaster):
    broadcaster.fail = True

    message = await messages.send(public_room.id, "alice", "still stored")

    assert (await messages.recent(public_room.id))[0].id == message.id
