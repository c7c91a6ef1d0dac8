from typing import Literal, Optional

from models import Room, RoomView
from schemas.base import ApiModel


class CreateRoomRequest(ApiModel):
    name: Optional[str] = None
    type: Literal["public", "private"] = "public"
    members: Optional[list[str]] = None


class RoomMembershipRequest(ApiModel):
    username: Optional[str] = None


class SwitchRoomRequest(ApiModel):
    username: Optional[str] = None
    previous_room_id: Optional[str] = None
    next_room_id: Optional[str] = None


class RoomsResponse(ApiModel):
    rooms: list[RoomView]


class RoomResponse(ApiModel):
    room: Room


class RoomUsersResponse(ApiModel):
    users: list[str]


class JoinRoomResponse(ApiModel):
    success: bool = True
    user_count: int


class SwitchRoomResponse(ApiModel):
    success: bool = True
    noop: bool = False
