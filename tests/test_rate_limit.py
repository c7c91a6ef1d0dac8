import pytest

from errors import RateLimitError
from services.rate_limit import RateLimiter


async def test_sensitive_action_allows_ten_per_window(limiter, clock):
    for _ in range(10):
        assert await limiter.check_action("createUser", "1.2.3.4")

    assert not await limiter.check_action("createUser", "1.2.3.4")
    assert await limiter.check_action("createUser", "5.6.7.8")
    assert await limiter.check_action("generateToken", "1.2.3.4")

    clock.advance(61)
    assert await limiter.check_action("createUser", "1.2.3.4")


async def test_enforce_action_raises(limiter):
    for _ in range(10):
        await limiter.enforce_action("setPassword", "alice")

    with pytest.raises(RateLimitError):
        await limiter.enforce_action("setPassword", "alice")


async def test_sensitive_action_fails_open(limiter, store):
    store.fail = True

    for _ in range(20):
        assert await limiter.check_action("createUser", "alice")


async def test_fourth_message_within_short_window_rejected(limiter, clock):
    for _ in range(3):
        await limiter.check_chat_burst("room1", "alice")
        clock.advance(2.5)

    with pytest.raises(RateLimitError):
        await limiter.check_chat_burst("room1", "alice")


async def test_short_window_resets(limiter, clock):
    for _ in range(3):
        await limiter.check_chat_burst("room1", "alice")
        clock.advance(3.5)

    # 10.5s after the first message the short window has rolled over
    await limiter.check_chat_burst("room1", "alice")


async def test_minimum_interval_boundary(limiter, clock):
    await limiter.check_chat_burst("room1", "alice")
    clock.advance(1.9)

    with pytest.raises(RateLimitError):
        await limiter.check_chat_burst("room1", "alice")

    await limiter.check_chat_burst("room1", "bob")
    clock.advance(2.0)
    await limiter.check_chat_burst("room1", "bob")


async def test_burst_limit_is_per_room(limiter):
    await limiter.check_chat_burst("room1", "alice")
    await limiter.check_chat_burst("room2", "alice")


async def test_long_window_enforced_independently(store, clock):
    limiter = RateLimiter(store, clock=clock, short_window=1, short_limit=100, long_window=60, long_limit=20, min_interval=0)

    for _ in range(20):
        await limiter.check_chat_burst("room1", "alice")
        clock.advance(1)

    with pytest.raises(RateLimitError):
        await limiter.check_chat_burst("room1", "alice")


async def test_burst_limiter_fails_open(limiter, store):
    store.fail = True

    for _ in range(10):
        await limiter.check_chat_burst("room1", "alice")
