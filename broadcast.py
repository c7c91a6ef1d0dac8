import json

import redis.asyncio as redis

from logging_config import get_logger

logger = get_logger(__name__)


class RedisBroadcaster:
    """Publishes events on Redis pub/sub channels. Fire-and-forget: no delivery guarantee."""

    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client

    async def publish(self, channel: str, event: str, payload: dict):
        message_json = json.dumps({"event": event, "data": payload})
        subscribers = await self.redis_client.publish(channel, message_json)
        logger.debug(f"Published {event} to channel {channel}, {subscribers} subscribers")

    def subscribe(self):
        """A fresh pub/sub handle; the caller subscribes and closes it."""
        return self.redis_client.pubsub()
