from typing import Optional

from models import User
from schemas.base import ApiModel


class CreateUserRequest(ApiModel):
    username: Optional[str] = None
    password: Optional[str] = None


class CreateUserResponse(ApiModel):
    user: User
    token: str


class UsersResponse(ApiModel):
    users: list[User]
