from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from deps import Services, get_services, rate_limited
from logging_config import get_logger
from schemas.users import CreateUserRequest, CreateUserResponse, UsersResponse

logger = get_logger(__name__)

users_router = APIRouter(prefix="/users", tags=["users"])


@users_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=CreateUserResponse,
    dependencies=[Depends(rate_limited("createUser"))],
)
async def create_user(body: CreateUserRequest, response: Response, services: Services = Depends(get_services)):
    result = await services.users.create_user(body.username, body.password)
    if not result.created:
        # Existing account signed in with its password
        response.status_code = status.HTTP_200_OK
    return CreateUserResponse(user=result.user, token=result.token)


@users_router.get("", response_model=UsersResponse)
async def search_users(
    search: Optional[str] = Query(None, description="At least two characters of a username"),
    services: Services = Depends(get_services),
):
    users = await services.users.search(search or "")
    return UsersResponse(users=users)
