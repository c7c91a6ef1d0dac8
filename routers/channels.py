"""Websocket relay from broadcast channels to connected clients.

Each connection subscribes to exactly one channel on the Redis pub/sub bus and
forwards every event it sees. Events are published by the services through the
notifier, so any number of app instances can serve the same channel.
"""
import asyncio
import json
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from deps import Services
from errors import ValidationError
from logging_config import get_logger
from redis_keys import PUBLIC_CHANNEL
from services.content import validate_room_id
from services.notifier import user_channel

logger = get_logger(__name__)

channels_router = APIRouter(tags=["channels"])

POLICY_VIOLATION = 1008
ROOM_CHANNEL_PREFIX = "room-"
USER_CHANNEL_PREFIX = "chats-"


async def authorize_channel(services: Services, channel: str, username: Optional[str], token: Optional[str]) -> bool:
    """Whether the caller may listen on `channel`."""
    if channel == PUBLIC_CHANNEL:
        return True

    if channel.startswith(ROOM_CHANNEL_PREFIX):
        room_id = channel[len(ROOM_CHANNEL_PREFIX):]
        try:
            validate_room_id(room_id)
        except ValidationError:
            return False
        room = await services.rooms.load(room_id)
        if room is None:
            return False
        if not room.is_private:
            return True
        if not username or not room.has_member(username):
            return False
        return (await services.tokens.validate(username, token)).valid

    if channel.startswith(USER_CHANNEL_PREFIX):
        if not username or channel != user_channel(username):
            return False
        return (await services.tokens.validate(username, token)).valid

    return False


async def relay_channel(websocket: WebSocket, pubsub, channel: str):
    """Forward pub/sub messages to the websocket until cancelled."""
    while True:
        message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
        if message is None:
            continue
        if message.get("type") != "message":
            continue
        try:
            payload = json.loads(message["data"])
        except (json.JSONDecodeError, TypeError) as e:
            logger.error(f"Error parsing message from Redis for channel {channel}: {e}")
            continue
        await websocket.send_text(json.dumps(payload))


async def drain_client(websocket: WebSocket):
    """Consume client frames; returns when the client disconnects."""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@channels_router.websocket("/channels/{channel}/ws")
async def channel_websocket(websocket: WebSocket, channel: str, username: Optional[str] = None,
                            token: Optional[str] = None):
    services: Services = websocket.app.state.services
    logger.info(f"WebSocket connection attempt for channel: {channel}, username: {username}")

    if not await authorize_channel(services, channel, username, token):
        logger.info(f"WebSocket connection rejected for channel {channel}")
        await websocket.close(code=POLICY_VIOLATION, reason="Not allowed to subscribe to this channel")
        return

    await websocket.accept()
    pubsub = services.broadcaster.subscribe()
    await pubsub.subscribe(channel)
    logger.info(f"WebSocket subscribed to channel: {channel}")

    relay = asyncio.create_task(relay_channel(websocket, pubsub, channel))
    receiver = asyncio.create_task(drain_client(websocket))
    try:
        done, pending = await asyncio.wait({relay, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            if task.exception() is not None:
                logger.error(f"WebSocket relay for channel {channel} failed: {task.exception()}",
                             exc_info=task.exception())
    finally:
        await asyncio.gather(relay, receiver, return_exceptions=True)
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
        logger.info(f"WebSocket for channel {channel} closed")
