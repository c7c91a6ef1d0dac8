from typing import Optional

from models import Message
from schemas.base import ApiModel


class SendMessageRequest(ApiModel):
    username: Optional[str] = None
    content: Optional[str] = None


class AIReplyRequest(ApiModel):
    prompt: Optional[str] = None
    recent_messages: Optional[str] = None
    mentioned_message: Optional[str] = None


class MessageResponse(ApiModel):
    message: Message


class MessagesResponse(ApiModel):
    messages: list[Message]


class BulkMessagesResponse(ApiModel):
    messages_map: dict[str, list[Message]]
    valid_room_ids: list[str]
    invalid_room_ids: list[str]


class ClearMessagesResponse(ApiModel):
    success: bool = True
    message: str
    cleared_rooms: int = 0
