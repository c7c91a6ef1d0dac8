import re
import time
from dataclasses import dataclass
from typing import Callable, Optional

from backend import collect_keys, iter_keys, load_json
from constants import USER_SEARCH_LIMIT, USER_SEARCH_MIN_QUERY
from errors import ConflictError, UserCreationRaceError, ValidationError
from logging_config import get_logger
from models import User
from redis_keys import REDIS_USER_PREFIX, user_key
from services.content import check_username_length, validate_username
from services.passwords import check_password_length

logger = get_logger(__name__)

_SEARCH_ALLOWED = re.compile(r"^[a-z0-9_-]+$")


@dataclass
class SignupResult:
    user: User
    token: str
    created: bool


def _parse_user(raw) -> Optional[User]:
    data = load_json(raw)
    if not isinstance(data, dict):
        return None
    try:
        return User.model_validate(data)
    except ValueError:
        return None


class UserDirectory:
    """User records. Users are created lazily and never expire."""

    def __init__(self, store, profanity, tokens, passwords, clock: Callable[[], float] = time.time):
        self.store = store
        self.profanity = profanity
        self.tokens = tokens
        self.passwords = passwords
        self.clock = clock

    def _now_ms(self) -> int:
        return round(self.clock() * 1000)

    def _check_username(self, username) -> str:
        if not username:
            raise ValidationError("Username is required")
        if self.profanity.is_profane(username):
            logger.info(f"Username contains inappropriate language: {username}")
            raise ValidationError("Username contains inappropriate language")
        check_username_length(username)
        return validate_username(username)

    async def get_user(self, username: str) -> Optional[User]:
        return _parse_user(await self.store.get(user_key(username)))

    async def exists(self, username: str) -> bool:
        return await self.store.exists(user_key(username))

    async def ensure_user(self, username: str) -> User:
        """Return the user record, creating it if needed. Concurrent creators converge on one record."""
        username = self._check_username(username)
        key = user_key(username)

        existing = await self.get_user(username)
        if existing is not None:
            return existing

        logger.info(f"User {username} not found. Attempting creation.")
        user = User(username=username, last_active=self._now_ms())
        if await self.store.set_if_absent(key, user.to_json()):
            logger.info(f"User {username} created successfully.")
            return user

        # Lost the race: read the winner's record
        logger.info(f"User {username} created concurrently. Fetching existing data.")
        existing = await self.get_user(username)
        if existing is None:
            logger.error(f"User {username} existed momentarily but is now gone. Race condition?")
            raise UserCreationRaceError()
        return existing

    async def create_user(self, username, password: Optional[str] = None) -> SignupResult:
        """Sign up. A taken username with the matching password signs in instead."""
        username = self._check_username(username)
        if password:
            check_password_length(password)

        logger.info(f"Creating user: {username}{' with password' if password else ''}")
        user = User(username=username, last_active=self._now_ms())
        created = await self.store.set_if_absent(user_key(username), user.to_json())

        if not created:
            if password and await self.passwords.verify(username, password):
                logger.info(f"Password correct for existing user {username}, logging in")
                existing = await self.get_user(username) or user
                token = await self.tokens.issue(username)
                return SignupResult(user=existing, token=token, created=False)
            logger.info(f"Username already taken: {username}")
            raise ConflictError("Username already taken")

        if password:
            await self.passwords.set_password(username, password)
        token = await self.tokens.issue(username)
        logger.info(f"User created with auth token: {username}")
        return SignupResult(user=user, token=token, created=True)

    async def touch(self, username: str, user: Optional[User] = None):
        """Record activity for `username`."""
        user = user or await self.get_user(username) or User(username=username.lower())
        updated = user.model_copy(update={"last_active": self._now_ms()})
        await self.store.set(user_key(username), updated.to_json())

    async def search(self, query: str) -> list:
        query = (query or "").lower()
        if len(query) < USER_SEARCH_MIN_QUERY or not _SEARCH_ALLOWED.match(query):
            return []

        users = []
        batch = []
        seen = set()
        async for key in iter_keys(self.store, f"{REDIS_USER_PREFIX}*{query}*"):
            if key in seen:
                continue
            seen.add(key)
            batch.append(key)
            if len(batch) >= USER_SEARCH_LIMIT:
                users.extend(await self._load_users(batch))
                batch = []
                if len(users) >= USER_SEARCH_LIMIT:
                    break
        if batch and len(users) < USER_SEARCH_LIMIT:
            users.extend(await self._load_users(batch))

        logger.info(f"Found {min(len(users), USER_SEARCH_LIMIT)} users matching \"{query}\"")
        return users[:USER_SEARCH_LIMIT]

    async def all_usernames(self) -> list:
        return [key[len(REDIS_USER_PREFIX):] for key in await collect_keys(self.store, f"{REDIS_USER_PREFIX}*")]

    async def _load_users(self, keys: list) -> list:
        users = []
        for raw in await self.store.mget(keys):
            user = _parse_user(raw)
            if user is None:
                logger.error("Error parsing user data")
                continue
            users.append(user)
        return users
