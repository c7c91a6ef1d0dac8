import asyncio
import secrets
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from backend import collect_keys, load_json
from constants import ADMIN_USERNAME, MAX_MESSAGE_LENGTH, MESSAGE_HISTORY_LIMIT, RECENT_MESSAGES_LIMIT
from errors import DuplicateMessageError, NotFoundError, ValidationError
from logging_config import get_logger
from models import Message
from redis_keys import REDIS_MESSAGES_PREFIX, messages_key, room_key
from services.content import validate_room_id, validate_username

logger = get_logger(__name__)


@dataclass
class BulkMessages:
    messages_map: dict = field(default_factory=dict)
    valid_room_ids: list = field(default_factory=list)
    invalid_room_ids: list = field(default_factory=list)


def parse_message(raw) -> Optional[Message]:
    data = load_json(raw)
    if not isinstance(data, dict):
        return None
    try:
        return Message.model_validate(data)
    except ValueError:
        return None


class MessageStore:
    """Per-room message lists, newest first and capped at the history limit."""

    def __init__(
        self,
        store,
        rooms,
        users,
        presence,
        limiter,
        notifier,
        profanity,
        admin_username: str = ADMIN_USERNAME,
        clock: Callable[[], float] = time.time,
        history_limit: int = MESSAGE_HISTORY_LIMIT,
        recent_limit: int = RECENT_MESSAGES_LIMIT,
    ):
        self.store = store
        self.rooms = rooms
        self.users = users
        self.presence = presence
        self.limiter = limiter
        self.notifier = notifier
        self.profanity = profanity
        self.admin_username = admin_username.lower()
        self.clock = clock
        self.history_limit = history_limit
        self.recent_limit = recent_limit

    def _new_message(self, room_id: str, username: str, content: str) -> Message:
        return Message(
            id=secrets.token_hex(16),
            room_id=room_id,
            username=username,
            content=content,
            timestamp=round(self.clock() * 1000),
        )

    async def _append(self, message: Message):
        key = messages_key(message.room_id)
        await self.store.lpush(key, message.to_json())
        await self.store.ltrim(key, 0, self.history_limit - 1)
        logger.info(f"Message saved with ID: {message.id}")

    async def _is_duplicate(self, room_id: str, username: str, content: str) -> bool:
        newest = await self.store.lrange(messages_key(room_id), 0, 0)
        if not newest:
            return False
        last = parse_message(newest[0])
        if last is None:
            # An unparsable newest entry never blocks sending
            logger.error(f"Error parsing last message for duplicate check in room {room_id}")
            return False
        return last.username == username and last.content == content

    async def send(self, room_id: str, username: str, content: Optional[str]) -> Message:
        username = validate_username(username)
        validate_room_id(room_id)
        if not content or not content.strip():
            logger.info("Message sending failed: Missing required fields")
            raise ValidationError("Message content is required")

        content = self.profanity.sanitize_message(content)
        if len(content) > MAX_MESSAGE_LENGTH:
            logger.info(f"Message too long from {username}: length {len(content)}")
            raise ValidationError(f"Message exceeds maximum length of {MAX_MESSAGE_LENGTH} characters")

        room = await self.rooms.load(room_id)
        if room is None:
            logger.info(f"Room not found: {room_id}")
            raise NotFoundError("Room not found")

        logger.info(f"Sending message in room {room_id} from user {username}")
        user = await self.users.ensure_user(username)

        # Duplicates are rejected before they count against the burst limits
        if await self._is_duplicate(room_id, username, content):
            logger.info(f"Duplicate message prevented from {username}")
            raise DuplicateMessageError()

        if not room.is_private:
            await self.limiter.check_chat_burst(room_id, username)

        message = self._new_message(room_id, username, content)
        await self._append(message)

        await self.users.touch(username, user)
        await self.presence.mark_present(room_id, username)

        await self.notifier.room_event(room, room_id, "room-message", {"roomId": room_id, "message": message.to_dict()})
        return message

    async def post_as(self, room_id: str, username: str, content: str) -> Message:
        """Store and broadcast a message without the sender-side limits. Used for the admin bot."""
        validate_room_id(room_id)
        room = await self.rooms.load(room_id)
        if room is None:
            raise NotFoundError("Room not found")

        message = self._new_message(room_id, username.lower(), self.profanity.sanitize_message(content))
        await self._append(message)
        await self.notifier.room_event(room, room_id, "room-message", {"roomId": room_id, "message": message.to_dict()})
        return message

    async def delete(self, room_id: str, message_id: str, requesting_user: Optional[str]):
        if not room_id or not message_id:
            logger.info("Message deletion failed: Missing required fields")
            raise ValidationError("Room ID and message ID are required")
        self.rooms.require_admin(requesting_user, "Forbidden")
        validate_room_id(room_id)

        logger.info(f"Deleting message {message_id} from room {room_id} by admin {requesting_user}")
        room = await self.rooms.load(room_id)
        if room is None:
            logger.info(f"Room not found: {room_id}")
            raise NotFoundError("Room not found")

        key = messages_key(room_id)
        target = None
        for raw in await self.store.lrange(key, 0, -1):
            message = parse_message(raw)
            if message is not None and message.id == message_id:
                target = raw
                break
        if target is None:
            logger.info(f"Message not found in list: {message_id}")
            raise NotFoundError("Message not found")

        await self.store.lrem(key, 1, target)
        logger.info(f"Message deleted: {message_id}")
        await self.notifier.room_event(room, room_id, "message-deleted", {"roomId": room_id, "messageId": message_id})

    async def _read_recent(self, room_id: str) -> list:
        raw_messages = await self.store.lrange(messages_key(room_id), 0, self.recent_limit - 1)
        messages = []
        for raw in raw_messages:
            message = parse_message(raw)
            if message is None:
                logger.error(f"Failed to parse message for room {room_id}")
                continue
            messages.append(message)
        return messages

    async def recent(self, room_id: str) -> list:
        """Newest messages first, malformed entries dropped."""
        validate_room_id(room_id)
        logger.info(f"Fetching messages for room: {room_id}")
        if not await self.store.exists(room_key(room_id)):
            logger.info(f"Room not found: {room_id}")
            raise NotFoundError("Room not found")
        messages = await self._read_recent(room_id)
        logger.info(f"Processed {len(messages)} valid messages for room {room_id}")
        return messages

    async def bulk(self, room_ids: Iterable[str]) -> BulkMessages:
        room_ids = list(room_ids)
        if not room_ids:
            raise ValidationError("roomIds query parameter is required")
        for room_id in room_ids:
            validate_room_id(room_id)
        logger.info(f"Fetching messages for {len(room_ids)} rooms: {', '.join(room_ids)}")

        existence = await asyncio.gather(*(self.store.exists(room_key(room_id)) for room_id in room_ids))
        result = BulkMessages()
        for room_id, exists in zip(room_ids, existence):
            (result.valid_room_ids if exists else result.invalid_room_ids).append(room_id)
        if result.invalid_room_ids:
            logger.info(f"Invalid room IDs: {', '.join(result.invalid_room_ids)}")

        messages = await asyncio.gather(*(self._read_recent(room_id) for room_id in result.valid_room_ids))
        result.messages_map = dict(zip(result.valid_room_ids, messages))
        logger.info(f"Successfully fetched messages for {len(result.messages_map)} rooms")
        return result

    async def clear_all(self, requesting_user: Optional[str]) -> int:
        """Delete the message history of every room. Returns the number of lists removed."""
        self.rooms.require_admin(requesting_user)
        logger.info("Clearing all chat messages from all rooms")
        keys = await collect_keys(self.store, f"{REDIS_MESSAGES_PREFIX}*")
        logger.info(f"Found {len(keys)} message collections to clear")
        if not keys:
            return 0

        await self.store.delete_batch(keys)
        logger.info(f"Successfully cleared messages from {len(keys)} rooms")
        await self.notifier.global_event("messages-cleared", {"timestamp": round(self.clock() * 1000)})
        await self.rooms.broadcast_rooms_updated()
        return len(keys)
