import pytest

from errors import ConflictError, UserCreationRaceError, ValidationError
from models import User
from redis_keys import user_key


async def test_create_user_issues_token(users, tokens):
    result = await users.create_user("Alice")

    assert result.created
    assert result.user.username == "alice"
    assert (await tokens.validate("alice", result.token)).valid


async def test_taken_username_conflicts(users):
    await users.create_user("alice")

    with pytest.raises(ConflictError):
        await users.create_user("ALICE")


async def test_taken_username_with_matching_password_signs_in(users, tokens):
    await users.create_user("alice", "correct horse")

    result = await users.create_user("alice", "correct horse")
    assert not result.created
    assert (await tokens.validate("alice", result.token)).valid

    with pytest.raises(ConflictError):
        await users.create_user("alice", "wrong password")


@pytest.mark.parametrize("username", ["", "ab", "_alice", "alice_", "a--b", "a b", "a@b", "x" * 31, "darn"])
async def test_invalid_usernames_rejected(users, username):
    with pytest.raises(ValidationError):
        await users.create_user(username)


async def test_short_password_rejected(users):
    with pytest.raises(ValidationError):
        await users.create_user("alice", "short")


async def test_ensure_user_is_idempotent(users, store):
    first = await users.ensure_user("alice")
    second = await users.ensure_user("Alice")

    assert first.username == second.username == "alice"
    assert await store.ttl(user_key("alice")) == -1


async def test_ensure_user_returns_concurrent_winner(users, store, monkeypatch):
    winner = User(username="alice", last_active=42)
    store_set = store.set

    async def lose_race(key, value, ttl=None):
        await store_set(key, winner.to_json())
        return False

    monkeypatch.setattr(store, "set_if_absent", lose_race)

    user = await users.ensure_user("alice")

    assert user == winner
    assert (await users.get_user("alice")).last_active == 42


async def test_ensure_user_reports_vanished_record(users, store, monkeypatch):
    async def lose_race(key, value, ttl=None):
        return False

    monkeypatch.setattr(store, "set_if_absent", lose_race)

    with pytest.raises(UserCreationRaceError):
        await users.ensure_user("alice")


async def test_touch_updates_last_active(users, clock):
    await users.ensure_user("alice")
    clock.advance(30)

    await users.touch("alice")

    assert (await users.get_user("alice")).last_active == round(clock() * 1000)


async def test_search(users):
    for name in ("alice", "alicia", "bob", "malik"):
        await users.ensure_user(name)

    found = sorted(user.username for user in await users.search("li"))

    assert found == ["alice", "alicia", "malik"]
    assert await users.search("a") == []
    assert await users.search("a*") == []


async def test_search_caps_results(users):
    for i in range(25):
        await users.ensure_user(f"user{i}")

    assert len(await users.search("user")) == 20
