from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from deps import AuthContext, Services, get_services, require_auth
from logging_config import get_logger
from schemas.base import SuccessResponse
from schemas.rooms import (
    CreateRoomRequest,
    JoinRoomResponse,
    RoomMembershipRequest,
    RoomResponse,
    RoomsResponse,
    RoomUsersResponse,
    SwitchRoomRequest,
    SwitchRoomResponse,
)

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@rooms_router.get("", response_model=RoomsResponse, response_model_exclude_none=True)
async def list_rooms(
    username: Optional[str] = Query(None, description="Include private rooms this user belongs to"),
    services: Services = Depends(get_services),
):
    rooms = await services.rooms.list_visible(username)
    logger.info(f"Listing {len(rooms)} rooms for {username or 'anonymous'}")
    return RoomsResponse(rooms=rooms)


@rooms_router.post("", status_code=status.HTTP_201_CREATED, response_model=RoomResponse, response_model_exclude_none=True)
async def create_room(
    body: CreateRoomRequest,
    request: Request,
    auth: AuthContext = Depends(require_auth),
    services: Services = Depends(get_services),
):
    logger.info(f"Room creation request from {_client_host(request)}, type: {body.type}, by {auth.username}")
    room = await services.rooms.create(body.name, body.type, body.members, auth.username)
    return RoomResponse(room=room)


# Declared before /{room_id} routes so "switch" is never taken for a room id
@rooms_router.post("/switch", response_model=SwitchRoomResponse)
async def switch_room(body: SwitchRoomRequest, services: Services = Depends(get_services)):
    switched = await services.rooms.switch(body.previous_room_id, body.next_room_id, body.username)
    return SwitchRoomResponse(noop=not switched)


@rooms_router.get("/{room_id}", response_model=RoomResponse, response_model_exclude_none=True)
async def get_room(room_id: str, services: Services = Depends(get_services)):
    room = await services.rooms.get(room_id)
    return RoomResponse(room=room)


@rooms_router.delete("/{room_id}", response_model=SuccessResponse, response_model_exclude_none=True)
async def delete_room(
    room_id: str,
    request: Request,
    auth: AuthContext = Depends(require_auth),
    services: Services = Depends(get_services),
):
    logger.info(f"Delete room request for {room_id} from {_client_host(request)} by {auth.username}")
    await services.rooms.delete(room_id, auth.username)
    return SuccessResponse()


@rooms_router.get("/{room_id}/users", response_model=RoomUsersResponse)
async def get_room_users(room_id: str, services: Services = Depends(get_services)):
    users = await services.rooms.room_users(room_id)
    return RoomUsersResponse(users=users)


@rooms_router.post("/{room_id}/join", response_model=JoinRoomResponse)
async def join_room(
    room_id: str,
    body: RoomMembershipRequest,
    request: Request,
    services: Services = Depends(get_services),
):
    logger.info(f"Join room request for {room_id} from {_client_host(request)}, username: {body.username}")
    user_count = await services.rooms.join(room_id, body.username)
    return JoinRoomResponse(user_count=user_count)


@rooms_router.post("/{room_id}/leave", response_model=SuccessResponse, response_model_exclude_none=True)
async def leave_room(
    room_id: str,
    body: RoomMembershipRequest,
    request: Request,
    services: Services = Depends(get_services),
):
    logger.info(f"Leave room request for {room_id} from {_client_host(request)}, username: {body.username}")
    was_present = await services.rooms.leave(room_id, body.username)
    if not was_present:
        return SuccessResponse(message="User was not in the room")
    return SuccessResponse()
