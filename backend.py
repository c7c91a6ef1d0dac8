import json
from typing import AsyncIterator, Iterable, Optional

import redis.asyncio as redis

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, SCAN_COUNT
from logging_config import get_logger

logger = get_logger(__name__)


def create_redis_client() -> redis.Redis:
    logger.info(f"Creating Redis client for {REDIS_HOST}:{REDIS_PORT}")
    return redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)


def dump_json(data) -> str:
    return json.dumps(data, separators=(",", ":"))


def load_json(raw):
    """Decode a stored json value. Anything unparsable comes back as None."""
    if raw is None:
        return None
    if isinstance(raw, (dict, list)):
        return raw
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None


async def iter_keys(store, pattern: str) -> AsyncIterator[str]:
    """Yield every key matching `pattern`, following the SCAN cursor until the store says it is done."""
    cursor = 0
    while True:
        cursor, keys = await store.scan(cursor, pattern)
        for key in keys:
            yield key
        if int(cursor) == 0:
            break


async def collect_keys(store, pattern: str) -> list:
    # SCAN may return a key more than once
    seen = {}
    async for key in iter_keys(store, pattern):
        seen[key] = None
    return list(seen)


class RedisBackend:
    """Key-value store adapter. Every method is one round-trip (or one pipeline)."""

    def __init__(self, redis_client: redis.Redis, scan_count: int = SCAN_COUNT):
        self.redis_client = redis_client
        self.scan_count = scan_count
        logger.info("Initializing RedisBackend")

    async def ping(self) -> bool:
        return await self.redis_client.ping()

    async def close(self):
        await self.redis_client.aclose()

    async def get(self, key: str) -> Optional[str]:
        return await self.redis_client.get(key)

    async def mget(self, keys: list) -> list:
        if not keys:
            return []
        return await self.redis_client.mget(keys)

    async def set(self, key: str, value, ttl: Optional[int] = None):
        await self.redis_client.set(key, value, ex=ttl)

    async def set_if_absent(self, key: str, value, ttl: Optional[int] = None) -> bool:
        created = await self.redis_client.set(key, value, ex=ttl, nx=True)
        return bool(created)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self.redis_client.delete(*keys)

    async def exists(self, key: str) -> bool:
        return bool(await self.redis_client.exists(key))

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self.redis_client.expire(key, ttl))

    async def ttl(self, key: str) -> int:
        return await self.redis_client.ttl(key)

    async def incr(self, key: str) -> int:
        return await self.redis_client.incr(key)

    async def scan(self, cursor: int, pattern: str):
        """One page of keys matching `pattern`. Returns `(next_cursor, keys)`; a cursor of 0 ends the scan."""
        cursor, keys = await self.redis_client.scan(cursor=cursor, match=pattern, count=self.scan_count)
        return int(cursor), keys

    async def lpush(self, key: str, value: str) -> int:
        return await self.redis_client.lpush(key, value)

    async def lrange(self, key: str, start: int, end: int) -> list:
        return await self.redis_client.lrange(key, start, end)

    async def ltrim(self, key: str, start: int, end: int):
        await self.redis_client.ltrim(key, start, end)

    async def lrem(self, key: str, count: int, value: str) -> int:
        return await self.redis_client.lrem(key, count, value)

    async def smembers(self, key: str) -> set:
        return await self.redis_client.smembers(key)

    async def delete_batch(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        async with self.redis_client.pipeline(transaction=False) as pipe:
            for key in keys:
                pipe.delete(key)
            await pipe.execute()
        logger.debug(f"Deleted {len(keys)} keys in one pipeline")

    async def set_batch(self, values: dict) -> None:
        if not values:
            return
        async with self.redis_client.pipeline(transaction=False) as pipe:
            for key, value in values.items():
                pipe.set(key, value)
            await pipe.execute()
        logger.debug(f"Wrote {len(values)} keys in one pipeline")
