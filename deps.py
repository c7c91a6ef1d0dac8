"""Service wiring and the request-level dependencies shared by the routers."""
import json
import time
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Request

from constants import ADMIN_USERNAME
from errors import AuthError
from logging_config import get_logger
from services.ai_reply import AIReplyService
from services.auth import AuthService
from services.content import ProfanityFilter
from services.messages import MessageStore
from services.notifier import Notifier
from services.passwords import PasswordStore
from services.presence import PresenceTracker
from services.rate_limit import RateLimiter
from services.rooms import RoomRegistry
from services.tokens import TokenManager
from services.users import UserDirectory

logger = get_logger(__name__)


@dataclass
class Services:
    store: object
    broadcaster: object
    profanity: ProfanityFilter
    tokens: TokenManager
    passwords: PasswordStore
    users: UserDirectory
    presence: PresenceTracker
    limiter: RateLimiter
    notifier: Notifier
    rooms: RoomRegistry
    messages: MessageStore
    auth: AuthService
    ai: AIReplyService


def build_services(
    store,
    broadcaster,
    profanity: Optional[ProfanityFilter] = None,
    clock: Callable[[], float] = time.time,
    ai_client=None,
    admin_username: str = ADMIN_USERNAME,
    limiter: Optional[RateLimiter] = None,
    password_rounds: Optional[int] = None,
) -> Services:
    """Wire every component around one store and one broadcaster."""
    profanity = profanity or ProfanityFilter()
    tokens = TokenManager(store, clock=clock)
    passwords = PasswordStore(store) if password_rounds is None else PasswordStore(store, rounds=password_rounds)
    users = UserDirectory(store, profanity, tokens, passwords, clock=clock)
    presence = PresenceTracker(store, clock=clock)
    limiter = limiter or RateLimiter(store, clock=clock)
    notifier = Notifier(broadcaster)
    rooms = RoomRegistry(store, presence, users, notifier, profanity, admin_username=admin_username, clock=clock)
    messages = MessageStore(
        store, rooms, users, presence, limiter, notifier, profanity, admin_username=admin_username, clock=clock
    )
    return Services(
        store=store,
        broadcaster=broadcaster,
        profanity=profanity,
        tokens=tokens,
        passwords=passwords,
        users=users,
        presence=presence,
        limiter=limiter,
        notifier=notifier,
        rooms=rooms,
        messages=messages,
        auth=AuthService(tokens, passwords, users),
        ai=AIReplyService(ai_client, messages, store, admin_username=admin_username),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


@dataclass
class AuthContext:
    username: Optional[str]
    token: Optional[str]

    @property
    def present(self) -> bool:
        return bool(self.username or self.token)


def extract_auth(request: Request) -> AuthContext:
    """`Authorization: Bearer <token>` plus `X-Username`."""
    header = request.headers.get("authorization")
    if not header or not header.startswith("Bearer "):
        return AuthContext(username=request.headers.get("x-username"), token=None)
    return AuthContext(username=request.headers.get("x-username"), token=header[len("Bearer "):].strip() or None)


async def require_auth(
    auth: AuthContext = Depends(extract_auth),
    services: Services = Depends(get_services),
) -> AuthContext:
    if not auth.username or not auth.token:
        logger.info("Unauthorized: missing username or token")
        raise AuthError("Unauthorized - missing credentials")
    username = await services.auth.authenticate(auth.username, auth.token)
    return AuthContext(username=username, token=auth.token)


async def optional_auth(
    auth: AuthContext = Depends(extract_auth),
    services: Services = Depends(get_services),
) -> Optional[AuthContext]:
    """None when no credentials were sent; credentials that are sent must be valid."""
    if not auth.present:
        return None
    return await require_auth(auth, services)


def check_identity(auth: Optional[AuthContext], username: Optional[str]):
    """A username in the request body must be the authenticated one."""
    if auth is None or not username:
        return
    if username.lower() != (auth.username or "").lower():
        logger.info(f"Auth mismatch: body username ({username}) != auth username ({auth.username})")
        raise AuthError("Username mismatch")


async def _body_username(request: Request) -> Optional[str]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if isinstance(body, dict) and isinstance(body.get("username"), str):
        return body["username"]
    return None


async def client_identifier(request: Request) -> str:
    """Who a rate limit applies to: body username, then header username, then the client address."""
    identifier = (
        await _body_username(request)
        or request.headers.get("x-username")
        or request.headers.get("x-forwarded-for")
        or (request.client.host if request.client else None)
        or "anon"
    )
    return identifier.lower()


def rate_limited(action: str):
    """Route dependency enforcing the sensitive-action limit for `action`."""

    async def dependency(request: Request, services: Services = Depends(get_services)):
        identifier = await client_identifier(request)
        await services.limiter.enforce_action(action, identifier)

    return dependency
