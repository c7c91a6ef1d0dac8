"""Fan-out of state changes to broadcast channels.

State is committed before anything here runs; a failed publish is logged and
never reaches the caller.
"""
import asyncio
import re
from typing import Iterable, Optional

from logging_config import get_logger
from models import Room, RoomView
from redis_keys import PUBLIC_CHANNEL, ROOM_CHANNEL, USER_CHANNEL

logger = get_logger(__name__)

_CHANNEL_UNSAFE = re.compile(r"[^a-zA-Z0-9_\-.]")


def sanitize_for_channel(name: str) -> str:
    return _CHANNEL_UNSAFE.sub("_", name)


def room_channel(room_id: str) -> str:
    return ROOM_CHANNEL.format(room_id=room_id)


def user_channel(username: str) -> str:
    return USER_CHANNEL.format(username=sanitize_for_channel(username.lower()))


def filter_rooms_for_user(rooms: Iterable[RoomView], username: Optional[str]) -> list:
    """Public rooms for everyone; private rooms only for their members."""
    lower = username.lower() if username else None
    visible = []
    for room in rooms:
        if not room.is_private:
            visible.append(room)
        elif lower and room.has_member(lower):
            visible.append(room)
    return visible


class Notifier:
    def __init__(self, broadcaster):
        self.broadcaster = broadcaster

    async def _publish_all(self, publishes: list, what: str) -> int:
        """Run publishes concurrently; returns how many failed."""
        if not publishes:
            return 0
        results = await asyncio.gather(
            *(self.broadcaster.publish(channel, event, payload) for channel, event, payload in publishes),
            return_exceptions=True,
        )
        failures = 0
        for (channel, event, _), result in zip(publishes, results):
            if isinstance(result, Exception):
                failures += 1
                logger.error(f"Failed to publish {event} to {channel} ({what}): {result}", exc_info=result)
        return failures

    async def room_event(self, room: Optional[Room], room_id: str, event: str, payload: dict):
        """Publish on the room channel, plus each member's personal channel for private rooms."""
        publishes = [(room_channel(room_id), event, payload)]
        if room is not None and room.is_private and room.members:
            publishes.extend((user_channel(member), event, payload) for member in room.members)
        failures = await self._publish_all(publishes, f"room {room_id}")
        if not failures:
            logger.info(f"Broadcast event triggered: {event} for room {room_id} ({len(publishes)} channels)")

    async def rooms_updated(self, rooms: list, usernames: Iterable[str]):
        """Public room list on the public channel and a per-user filtered list on each personal channel."""
        publishes = [(PUBLIC_CHANNEL, "rooms-updated", {"rooms": _dump(filter_rooms_for_user(rooms, None))})]
        for username in usernames:
            publishes.append((
                user_channel(username),
                "rooms-updated",
                {"rooms": _dump(filter_rooms_for_user(rooms, username))},
            ))
        await self._publish_all(publishes, "rooms-updated")
        logger.debug(f"rooms-updated fanned out to {len(publishes)} channels")

    async def rooms_updated_for(self, rooms: list, usernames: Iterable[str]):
        """rooms-updated for specific users only (e.g. members of a deleted private room)."""
        publishes = [
            (user_channel(username), "rooms-updated", {"rooms": _dump(filter_rooms_for_user(rooms, username))})
            for username in usernames
        ]
        await self._publish_all(publishes, "rooms-updated (targeted)")

    async def global_event(self, event: str, payload: dict):
        await self._publish_all([(PUBLIC_CHANNEL, event, payload)], event)


def _dump(rooms: list) -> list:
    return [room.to_dict() for room in rooms]
