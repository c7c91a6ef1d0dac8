"""Records as they are stored in Redis.

Stored json keeps camelCase field names (`createdAt`, `userCount`, ...); the
Python side uses snake_case through aliases.
"""
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RoomType = Literal["public", "private"]


class Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class User(Record):
    username: str
    last_active: int = 0


class Room(Record):
    id: str
    name: str
    type: RoomType = "public"
    created_at: int = 0
    user_count: int = 0
    members: Optional[list[str]] = None

    @property
    def is_private(self) -> bool:
        return self.type == "private"

    def has_member(self, username: str) -> bool:
        return bool(self.members) and username.lower() in self.members


class RoomView(Room):
    """A room with the usernames currently present in it."""
    users: list[str] = Field(default_factory=list)


class Message(Record):
    id: str
    room_id: str
    username: str
    content: str
    timestamp: int
