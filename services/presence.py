"""TTL-based room presence.

There is no persistent connection to tell us when a client goes away, so a user
counts as present in a room while their presence key is alive. Any activity
re-arms the TTL; silence for a whole presence window drops them from the count.
"""
import time
from typing import Callable

from backend import collect_keys, dump_json, load_json
from constants import PRESENCE_TTL_SECONDS
from logging_config import get_logger
from redis_keys import (
    REDIS_LEGACY_ROOM_USERS_PREFIX,
    REDIS_PRESENCE_PREFIX,
    legacy_room_users_key,
    presence_key,
    presence_pattern,
    room_key,
)

logger = get_logger(__name__)


class PresenceTracker:
    def __init__(self, store, clock: Callable[[], float] = time.time, ttl: int = PRESENCE_TTL_SECONDS):
        self.store = store
        self.clock = clock
        self.ttl = ttl

    async def mark_present(self, room_id: str, username: str):
        await self.store.set(presence_key(room_id, username), str(round(self.clock() * 1000)), ttl=self.ttl)
        logger.debug(f"Set presence for user {username.lower()} in room {room_id}")

    async def clear_present(self, room_id: str, username: str) -> bool:
        removed = await self.store.delete(presence_key(room_id, username))
        logger.debug(f"Removed presence for user {username.lower()} from room {room_id}: {bool(removed)}")
        return bool(removed)

    async def presence_keys(self, room_id: str) -> list:
        return await collect_keys(self.store, presence_pattern(room_id))

    async def active_users(self, room_id: str) -> list:
        """Usernames with a live presence entry in the room. Also drops the room's old membership set."""
        keys = await self.presence_keys(room_id)
        users = sorted({key.rsplit(":", 1)[-1] for key in keys})

        # One-time cleanup of the set-based tracking that presence replaced
        legacy_key = legacy_room_users_key(room_id)
        if await self.store.smembers(legacy_key):
            await self.store.delete(legacy_key)
            logger.info(f"Purged legacy membership set for room {room_id}")
        return users

    async def refresh_room_count(self, room_id: str) -> int:
        """Recount present users and write the count into the room record."""
        users = await self.active_users(room_id)
        user_count = len(users)
        room_data = load_json(await self.store.get(room_key(room_id)))
        if isinstance(room_data, dict):
            room_data["userCount"] = user_count
            await self.store.set(room_key(room_id), dump_json(room_data))
        return user_count

    async def snapshot(self) -> dict:
        """Every presence key with its value and remaining TTL."""
        keys = await collect_keys(self.store, f"{REDIS_PRESENCE_PREFIX}*")
        values = await self.store.mget(keys)
        data = {}
        for key, value in zip(keys, values):
            data[key] = {"value": value, "ttl": await self.store.ttl(key)}
        return data

    async def clear_all(self) -> tuple:
        """Delete every presence entry and every legacy membership set. Returns (legacy_sets, presence_keys)."""
        legacy_keys = await collect_keys(self.store, f"{REDIS_LEGACY_ROOM_USERS_PREFIX}*")
        keys = await collect_keys(self.store, f"{REDIS_PRESENCE_PREFIX}*")
        await self.store.delete_batch(legacy_keys + keys)
        logger.info(f"Cleared {len(legacy_keys)} room user sets and {len(keys)} presence keys")
        return len(legacy_keys), len(keys)
