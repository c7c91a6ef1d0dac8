import fnmatch

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from deps import build_services
from services.content import ProfanityFilter

START_TIME = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class MemoryStore:
    """In-memory stand-in for RedisBackend. TTLs follow the fake clock; scan pages through keys."""

    def __init__(self, clock: FakeClock, page_size: int = 3):
        self.clock = clock
        self.page_size = page_size
        self.data = {}
        self.expires_at = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("store unavailable")

    def _alive(self, key: str) -> bool:
        deadline = self.expires_at.get(key)
        if deadline is not None and self.clock() >= deadline:
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return key in self.data

    def _set_ttl(self, key: str, ttl):
        if ttl is None:
            self.expires_at.pop(key, None)
        else:
            self.expires_at[key] = self.clock() + ttl

    async def ping(self):
        self._check()
        return True

    async def close(self):
        pass

    async def get(self, key):
        self._check()
        return self.data[key] if self._alive(key) else None

    async def mget(self, keys):
        self._check()
        return [self.data[key] if self._alive(key) else None for key in keys]

    async def set(self, key, value, ttl=None):
        self._check()
        self.data[key] = str(value)
        self._set_ttl(key, ttl)

    async def set_if_absent(self, key, value, ttl=None):
        self._check()
        if self._alive(key):
            return False
        await self.set(key, value, ttl=ttl)
        return True

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self._alive(key):
                removed += 1
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return removed

    async def exists(self, key):
        self._check()
        return self._alive(key)

    async def expire(self, key, ttl):
        self._check()
        if not self._alive(key):
            return False
        self._set_ttl(key, ttl)
        return True

    async def ttl(self, key):
        self._check()
        if not self._alive(key):
            return -2
        deadline = self.expires_at.get(key)
        if deadline is None:
            return -1
        return int(deadline - self.clock())

    async def incr(self, key):
        self._check()
        value = int(self.data[key]) + 1 if self._alive(key) else 1
        self.data[key] = str(value)
        return value

    async def scan(self, cursor, pattern):
        self._check()
        keys = sorted(key for key in list(self.data) if self._alive(key) and fnmatch.fnmatchcase(key, pattern))
        page = keys[cursor:cursor + self.page_size]
        next_cursor = cursor + self.page_size
        return (0 if next_cursor >= len(keys) else next_cursor), page

    async def lpush(self, key, value):
        self._check()
        items = self.data[key] if self._alive(key) else []
        items.insert(0, value)
        self.data[key] = items
        return len(items)

    async def lrange(self, key, start, end):
        self._check()
        if not self._alive(key):
            return []
        items = self.data[key]
        if end < 0:
            end = len(items) + end
        return list(items[start:end + 1])

    async def ltrim(self, key, start, end):
        self._check()
        if self._alive(key):
            self.data[key] = await self.lrange(key, start, end)

    async def lrem(self, key, count, value):
        self._check()
        if not self._alive(key):
            return 0
        items = self.data[key]
        removed = 0
        kept = []
        for item in items:
            if item == value and removed < count:
                removed += 1
                continue
            kept.append(item)
        self.data[key] = kept
        return removed

    async def sadd(self, key, *members):
        members_set = self.data[key] if self._alive(key) else set()
        members_set.update(members)
        self.data[key] = members_set

    async def smembers(self, key):
        self._check()
        return set(self.data[key]) if self._alive(key) else set()

    async def delete_batch(self, keys):
        await self.delete(*keys)

    async def set_batch(self, values):
        for key, value in values.items():
            await self.set(key, value)


class RecordingBroadcaster:
    def __init__(self):
        self.published = []
        self.fail = False

    async def publish(self, channel, event, payload):
        if self.fail:
            raise RedisConnectionError("broadcast unavailable")
        self.published.append((channel, event, payload))

    def events(self, event=None, channel=None):
        return [
            (c, e, p) for c, e, p in self.published
            if (event is None or e == event) and (channel is None or c == channel)
        ]

    def subscribe(self):
        raise NotImplementedError


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryStore(clock)


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def profanity():
    return ProfanityFilter(words=["darn"])


@pytest.fixture
def services(store, broadcaster, profanity, clock):
    return build_services(store, broadcaster, profanity=profanity, clock=clock, admin_username="ryo", password_rounds=4)


@pytest.fixture
def tokens(services):
    return services.tokens


@pytest.fixture
def presence(services):
    return services.presence


@pytest.fixture
def rooms(services):
    return services.rooms


@pytest.fixture
def messages(services):
    return services.messages


@pytest.fixture
def users(services):
    return services.users


@pytest.fixture
def limiter(services):
    return services.limiter


@pytest.fixture
async def public_room(rooms):
    return await rooms.create("general", "public", None, "ryo")


@pytest.fixture
def client(services):
    from app import create_app

    with TestClient(create_app(services)) as test_client:
        yield test_client
