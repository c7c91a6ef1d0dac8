from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from deps import AuthContext, Services, check_identity, get_services, optional_auth, rate_limited, require_auth
from errors import ValidationError
from logging_config import get_logger
from schemas.base import SuccessResponse
from schemas.messages import (
    AIReplyRequest,
    BulkMessagesResponse,
    ClearMessagesResponse,
    MessageResponse,
    MessagesResponse,
    SendMessageRequest,
)

logger = get_logger(__name__)

messages_router = APIRouter(tags=["messages"])


@messages_router.get("/rooms/{room_id}/messages", response_model=MessagesResponse)
async def get_messages(room_id: str, services: Services = Depends(get_services)):
    messages = await services.messages.recent(room_id)
    return MessagesResponse(messages=messages)


@messages_router.get("/messages/bulk", response_model=BulkMessagesResponse)
async def get_bulk_messages(
    room_ids: Optional[str] = Query(None, alias="roomIds", description="Comma separated room ids"),
    services: Services = Depends(get_services),
):
    ids = [room_id.strip() for room_id in (room_ids or "").split(",") if room_id.strip()]
    if not ids:
        raise ValidationError("roomIds query parameter is required")
    result = await services.messages.bulk(ids)
    return BulkMessagesResponse(
        messages_map=result.messages_map,
        valid_room_ids=result.valid_room_ids,
        invalid_room_ids=result.invalid_room_ids,
    )


@messages_router.post("/rooms/{room_id}/messages", status_code=status.HTTP_201_CREATED, response_model=MessageResponse)
async def send_message(
    room_id: str,
    body: SendMessageRequest,
    auth: Optional[AuthContext] = Depends(optional_auth),
    services: Services = Depends(get_services),
):
    check_identity(auth, body.username)
    username = body.username or (auth.username if auth else None)
    if not username:
        logger.info("Message sending failed: Missing required fields")
        raise ValidationError("Username is required")
    message = await services.messages.send(room_id, username, body.content)
    return MessageResponse(message=message)


@messages_router.delete("/rooms/{room_id}/messages/{message_id}", response_model=SuccessResponse,
                        response_model_exclude_none=True)
async def delete_message(
    room_id: str,
    message_id: str,
    auth: AuthContext = Depends(require_auth),
    services: Services = Depends(get_services),
):
    await services.messages.delete(room_id, message_id, auth.username)
    return SuccessResponse()


@messages_router.delete("/messages", response_model=ClearMessagesResponse)
async def clear_all_messages(
    auth: AuthContext = Depends(require_auth),
    services: Services = Depends(get_services),
):
    cleared = await services.messages.clear_all(auth.username)
    if not cleared:
        return ClearMessagesResponse(message="No messages to clear")
    return ClearMessagesResponse(message=f"Cleared messages from {cleared} rooms", cleared_rooms=cleared)


@messages_router.post(
    "/rooms/{room_id}/ai-reply",
    status_code=status.HTTP_201_CREATED,
    response_model=MessageResponse,
    dependencies=[Depends(rate_limited("generateAiReply"))],
)
async def generate_ai_reply(
    room_id: str,
    body: AIReplyRequest,
    auth: AuthContext = Depends(require_auth),
    services: Services = Depends(get_services),
):
    logger.info(f"AI reply requested by {auth.username} in room {room_id}")
    message = await services.ai.generate_reply(room_id, body.prompt, body.recent_messages, body.mentioned_message)
    return MessageResponse(message=message)
