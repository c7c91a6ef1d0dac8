"""Rate limiting backed by store counters.

Both limiters fail open: if the store cannot be reached the request is allowed
and the failure is logged.
"""
import time
from typing import Callable

from redis.exceptions import RedisError

from constants import (
    CHAT_BURST_LONG_LIMIT,
    CHAT_BURST_LONG_WINDOW_SECONDS,
    CHAT_BURST_SHORT_LIMIT,
    CHAT_BURST_SHORT_WINDOW_SECONDS,
    CHAT_MIN_INTERVAL_SECONDS,
    RATE_LIMIT_ATTEMPTS,
    RATE_LIMIT_WINDOW_SECONDS,
)
from errors import RateLimitError
from logging_config import get_logger
from redis_keys import REDIS_BURST_LAST_KEY, REDIS_BURST_LONG_KEY, REDIS_BURST_SHORT_KEY, REDIS_RATE_LIMIT_KEY

logger = get_logger(__name__)


class RateLimiter:
    def __init__(
        self,
        store,
        clock: Callable[[], float] = time.time,
        window: int = RATE_LIMIT_WINDOW_SECONDS,
        attempts: int = RATE_LIMIT_ATTEMPTS,
        short_window: int = CHAT_BURST_SHORT_WINDOW_SECONDS,
        short_limit: int = CHAT_BURST_SHORT_LIMIT,
        long_window: int = CHAT_BURST_LONG_WINDOW_SECONDS,
        long_limit: int = CHAT_BURST_LONG_LIMIT,
        min_interval: float = CHAT_MIN_INTERVAL_SECONDS,
    ):
        self.store = store
        self.clock = clock
        self.window = window
        self.attempts = attempts
        self.short_window = short_window
        self.short_limit = short_limit
        self.long_window = long_window
        self.long_limit = long_limit
        self.min_interval = min_interval

    async def _count(self, key: str, window: int) -> int:
        """Increment a window counter; the first hit in a window starts its TTL."""
        count = await self.store.incr(key)
        if count == 1:
            await self.store.expire(key, window)
        return count

    async def check_action(self, action: str, identifier: str) -> bool:
        """True if `identifier` may perform `action` now."""
        identifier = (identifier or "anon").lower()
        key = REDIS_RATE_LIMIT_KEY.format(action=action, identifier=identifier)
        try:
            count = await self._count(key, self.window)
        except RedisError as e:
            logger.error(f"Rate limit check failed for {action}:{identifier}: {e}", exc_info=True)
            return True
        if count > self.attempts:
            logger.info(f"Rate limit exceeded for {action} by {identifier}: {count} attempts")
            return False
        return True

    async def enforce_action(self, action: str, identifier: str):
        if not await self.check_action(action, identifier):
            raise RateLimitError("Too many requests, please slow down")

    async def check_chat_burst(self, room_id: str, username: str):
        """Raise RateLimitError if `username` is sending too fast in a public room."""
        short_key = REDIS_BURST_SHORT_KEY.format(room_id=room_id, username=username)
        long_key = REDIS_BURST_LONG_KEY.format(room_id=room_id, username=username)
        last_key = REDIS_BURST_LAST_KEY.format(room_id=room_id, username=username)
        try:
            short_count = await self._count(short_key, self.short_window)
            if short_count > self.short_limit:
                logger.info(f"Burst limit hit (short) by {username} in room {room_id}: {short_count}/{self.short_limit}")
                raise RateLimitError("You're sending messages too quickly. Please slow down.")

            long_count = await self._count(long_key, self.long_window)
            if long_count > self.long_limit:
                logger.info(f"Burst limit hit (long) by {username} in room {room_id}: {long_count}/{self.long_limit}")
                raise RateLimitError("Too many messages in a short period. Please wait a moment.")

            now_ms = round(self.clock() * 1000)
            last_sent = await self.store.get(last_key)
            if last_sent is not None:
                try:
                    delta_ms = now_ms - int(last_sent)
                except ValueError:
                    delta_ms = None
                if delta_ms is not None and delta_ms < self.min_interval * 1000:
                    logger.info(f"Min-interval hit by {username} in room {room_id}: {delta_ms}ms < {self.min_interval}s")
                    raise RateLimitError("Please wait a moment before sending another message.")

            await self.store.set(last_key, str(now_ms), ttl=self.long_window)
        except RedisError as e:
            logger.error(f"Chat burst rate-limit check failed: {e}", exc_info=True)
