import asyncio
import secrets
import time
from typing import Callable, Iterable, Optional

from backend import collect_keys, load_json
from constants import ADMIN_USERNAME
from errors import AuthorizationError, NotFoundError, ValidationError
from logging_config import get_logger
from models import Room, RoomView
from redis_keys import (
    REDIS_ROOM_PREFIX,
    legacy_room_users_key,
    messages_key,
    presence_key,
    room_id_from_key,
    room_key,
)
from services.content import private_room_name, slugify_room_name, validate_room_id, validate_username
from services.notifier import filter_rooms_for_user

logger = get_logger(__name__)

ROOM_TYPES = ("public", "private")


def generate_id() -> str:
    # 128-bit random identifier, hex encoded
    return secrets.token_hex(16)


def parse_room(raw) -> Optional[Room]:
    data = load_json(raw)
    if not isinstance(data, dict):
        return None
    try:
        return Room.model_validate(data)
    except ValueError:
        return None


class RoomRegistry:
    """Room lifecycle, membership rules and presence-driven occupancy."""

    def __init__(
        self,
        store,
        presence,
        users,
        notifier,
        profanity,
        admin_username: str = ADMIN_USERNAME,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.presence = presence
        self.users = users
        self.notifier = notifier
        self.profanity = profanity
        self.admin_username = admin_username.lower()
        self.clock = clock

    def is_admin(self, username: Optional[str]) -> bool:
        return bool(username) and username.lower() == self.admin_username

    def require_admin(self, username: Optional[str], message: str = "Forbidden - Admin access required"):
        if not self.is_admin(username):
            logger.info(f"Unauthorized: User {username} is not the admin")
            raise AuthorizationError(message)

    async def load(self, room_id: str) -> Optional[Room]:
        return parse_room(await self.store.get(room_key(room_id)))

    async def exists(self, room_id: str) -> bool:
        return await self.store.exists(room_key(room_id))

    async def save(self, room: Room):
        await self.store.set(room_key(room.id), room.to_json())

    async def get(self, room_id: str) -> Room:
        """The room with a freshly computed occupancy count."""
        validate_room_id(room_id)
        room = await self.load(room_id)
        if room is None:
            logger.info(f"Room not found: {room_id}")
            raise NotFoundError("Room not found")
        user_count = await self.presence.refresh_room_count(room_id)
        return room.model_copy(update={"user_count": user_count})

    async def room_users(self, room_id: str) -> list:
        validate_room_id(room_id)
        return await self.presence.active_users(room_id)

    async def create(self, name: Optional[str], room_type: str, members: Optional[Iterable[str]], requesting_user: str) -> Room:
        if room_type not in ROOM_TYPES:
            logger.info("Room creation failed: Invalid room type")
            raise ValidationError("Invalid room type. Must be 'public' or 'private'")
        requesting_user = (requesting_user or "").lower()

        if room_type == "public":
            if not name:
                logger.info("Room creation failed: Name is required for public rooms")
                raise ValidationError("Room name is required for public rooms")
            self.require_admin(requesting_user, "Forbidden - Only admin can create public rooms")
            if self.profanity.is_profane(name):
                logger.info(f"Room creation failed: Name contains inappropriate language: {name}")
                raise ValidationError("Room name contains inappropriate language")
            room_name = slugify_room_name(name)
            member_list = None
        else:
            if not members:
                logger.info("Room creation failed: Members are required for private rooms")
                raise ValidationError("At least one member is required for private rooms")
            member_list = []
            for member in list(members) + [requesting_user]:
                member = validate_username(member)
                if member not in member_list:
                    member_list.append(member)
            if len(member_list) < 2:
                raise ValidationError("At least one member is required for private rooms")
            room_name = private_room_name(member_list)

        logger.info(f"Creating {room_type} room: {room_name} by {requesting_user}")
        room = Room(
            id=generate_id(),
            name=room_name,
            type=room_type,
            created_at=round(self.clock() * 1000),
            user_count=len(member_list) if member_list else 0,
            members=member_list,
        )
        await self.save(room)

        if member_list:
            await asyncio.gather(*(self.presence.mark_present(room.id, member) for member in member_list))

        logger.info(f"{room_type} room created: {room.id}")
        await self.broadcast_rooms_updated()
        return room

    async def delete(self, room_id: str, requesting_user: str):
        """Admin deletes a public room; a member deleting a private room leaves it."""
        validate_room_id(room_id)
        requesting_user = (requesting_user or "").lower()
        room = await self.load(room_id)
        if room is None:
            logger.info(f"Room not found for deletion: {room_id}")
            raise NotFoundError("Room not found")

        if room.is_private:
            if not room.has_member(requesting_user):
                logger.info(f"Unauthorized: User {requesting_user} is not a member of private room {room_id}")
                raise AuthorizationError("Unauthorized - not a member of this room")
            await self._remove_private_member(room, requesting_user)
            return

        self.require_admin(requesting_user, "Unauthorized - admin access required for public rooms")
        await self.purge(room_id)
        logger.info(f"Public room deleted by admin: {room_id}")
        await self.broadcast_rooms_updated()

    async def purge(self, room_id: str):
        """Remove the room record, its messages, legacy membership set and every presence entry."""
        keys = [room_key(room_id), messages_key(room_id), legacy_room_users_key(room_id)]
        keys.extend(await self.presence.presence_keys(room_id))
        await self.store.delete_batch(keys)

    async def _remove_private_member(self, room: Room, username: str, user_count: Optional[int] = None):
        remaining = [member for member in room.members or [] if member != username]
        if len(remaining) <= 1:
            # Private rooms never outlive their second-to-last member
            await self.purge(room.id)
            reason = "last member left" if not remaining else "only 1 member would remain"
            logger.info(f"Private room deleted ({reason}): {room.id}")
            await self.broadcast_rooms_updated_to(room.members or [])
            return

        updated = room.model_copy(update={
            "members": remaining,
            "user_count": user_count if user_count is not None else len(remaining),
        })
        await self.save(updated)
        await self.store.delete(presence_key(room.id, username))
        logger.info(f"User {username} left private room {room.id}, {len(remaining)} members remaining")
        await self.broadcast_rooms_updated_to(room.members or [])

    async def all_rooms(self) -> list:
        keys = [key for key in await collect_keys(self.store, f"{REDIS_ROOM_PREFIX}*") if room_id_from_key(key)]
        if not keys:
            return []
        rooms = []
        for key, raw in zip(keys, await self.store.mget(keys)):
            room = parse_room(raw)
            if room is None:
                if raw is not None:
                    logger.error(f"Skipping unparsable room record {key}")
                continue
            rooms.append(room)
        return rooms

    async def detailed_rooms(self) -> list:
        """Every room with its live occupancy and the list of present users."""
        rooms = await self.all_rooms()

        async def detail(room: Room) -> RoomView:
            users = await self.presence.active_users(room.id)
            return RoomView(**{**room.model_dump(), "user_count": len(users), "users": users})

        return list(await asyncio.gather(*(detail(room) for room in rooms)))

    async def list_visible(self, username: Optional[str] = None) -> list:
        return filter_rooms_for_user(await self.detailed_rooms(), username)

    async def join(self, room_id: str, username: str) -> int:
        username = validate_username(username)
        validate_room_id(room_id)
        logger.info(f"User {username} joining room {room_id}")

        room = await self.load(room_id)
        if room is None:
            logger.info(f"Room not found: {room_id}")
            raise NotFoundError("Room not found")
        user = await self.users.ensure_user(username)

        await self.presence.mark_present(room_id, username)
        user_count = await self.presence.refresh_room_count(room_id)
        await self.users.touch(username, user)
        logger.info(f"User {username} joined room {room_id}, new user count: {user_count}")

        await self.broadcast_rooms_updated()
        return user_count

    async def leave(self, room_id: str, username: str) -> bool:
        """Clear presence; a private room also loses the member. Returns whether the user was present."""
        username = validate_username(username)
        validate_room_id(room_id)
        logger.info(f"User {username} leaving room {room_id}")

        room = await self.load(room_id)
        if room is None:
            logger.info(f"Room not found: {room_id}")
            raise NotFoundError("Room not found")

        if not await self.presence.clear_present(room_id, username):
            logger.info(f"User {username} was not in room {room_id}")
            return False

        previous_count = room.user_count
        user_count = await self.presence.refresh_room_count(room_id)
        logger.info(f"User {username} left room {room_id}, new active user count: {user_count}")

        if room.is_private:
            await self._remove_private_member(room, username, user_count=user_count)
        elif user_count != previous_count:
            await self.broadcast_rooms_updated()
        else:
            logger.info(f"Skipping broadcast: user count ({user_count}) did not change.")
        return True

    async def switch(self, previous_room_id: Optional[str], next_room_id: Optional[str], username: str) -> bool:
        """Move presence from one room to another. Returns False when there was nothing to do."""
        if not username:
            raise ValidationError("Username is required")
        username = validate_username(username)
        if previous_room_id:
            validate_room_id(previous_room_id)
        if next_room_id:
            validate_room_id(next_room_id)

        if previous_room_id == next_room_id:
            logger.info(f"Room switch noop: previous and next are the same ({previous_room_id}).")
            return False

        user = await self.users.ensure_user(username)

        if previous_room_id:
            previous = await self.load(previous_room_id)
            if previous is not None and not previous.is_private:
                await self.presence.clear_present(previous_room_id, username)
                user_count = await self.presence.refresh_room_count(previous_room_id)
                logger.info(f"Updated user count for room {previous_room_id}: {user_count}")
            elif previous is not None:
                # Navigating away from a private conversation is not going offline
                logger.info(f"Keeping presence for private room {previous_room_id} (will expire via TTL)")

        if next_room_id:
            if not await self.exists(next_room_id):
                logger.info(f"Room not found while switching: {next_room_id}")
                raise NotFoundError("Next room not found")
            await self.presence.mark_present(next_room_id, username)
            user_count = await self.presence.refresh_room_count(next_room_id)
            await self.users.touch(username, user)
            logger.info(f"Updated user count for room {next_room_id}: {user_count}")

        await self.broadcast_rooms_updated()
        return True

    async def cleanup_presence(self, requesting_user: str) -> int:
        """Recount every room from live presence. Returns the number of rooms updated."""
        self.require_admin(requesting_user)
        rooms = await self.all_rooms()
        for room in rooms:
            user_count = await self.presence.refresh_room_count(room.id)
            logger.debug(f"Updated room {room.id} count to {user_count}")
        await self.broadcast_rooms_updated()
        return len(rooms)

    async def reset_user_counts(self, requesting_user: str) -> int:
        """Forget all presence and zero every room's count. Returns the number of rooms reset."""
        self.require_admin(requesting_user)
        await self.presence.clear_all()
        rooms = await self.all_rooms()
        if rooms:
            await self.store.set_batch({
                room_key(room.id): room.model_copy(update={"user_count": 0}).to_json() for room in rooms
            })
        logger.info(f"Reset user count to 0 for {len(rooms)} rooms")
        await self.broadcast_rooms_updated()
        return len(rooms)

    async def debug_presence(self, requesting_user: str) -> dict:
        self.require_admin(requesting_user)
        presence_data = await self.presence.snapshot()
        rooms = await self.detailed_rooms()
        return {
            "presenceKeys": len(presence_data),
            "presenceData": presence_data,
            "rooms": [
                {"id": room.id, "name": room.name, "userCount": room.user_count, "users": room.users}
                for room in rooms
            ],
        }

    async def broadcast_rooms_updated(self):
        try:
            rooms = await self.detailed_rooms()
            usernames = await self.users.all_usernames()
        except Exception as e:
            logger.error(f"Failed to collect rooms for rooms-updated broadcast: {e}", exc_info=True)
            return
        await self.notifier.rooms_updated(rooms, usernames)

    async def broadcast_rooms_updated_to(self, usernames: Iterable[str]):
        usernames = list(usernames)
        if not usernames:
            return
        try:
            rooms = await self.detailed_rooms()
        except Exception as e:
            logger.error(f"Failed to collect rooms for targeted broadcast: {e}", exc_info=True)
            return
        await self.notifier.rooms_updated_for(rooms, usernames)
