import asyncio

import bcrypt

from constants import PASSWORD_BCRYPT_ROUNDS, PASSWORD_MIN_LENGTH
from errors import ValidationError
from logging_config import get_logger
from redis_keys import password_key

logger = get_logger(__name__)


def hash_password(password: str, rounds: int = PASSWORD_BCRYPT_ROUNDS) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt hash
        logger.warning("Stored password hash could not be parsed")
        return False


def check_password_length(password: str):
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")


class PasswordStore:
    """bcrypt hashes keyed by username. Hashing runs in a worker thread."""

    def __init__(self, store, rounds: int = PASSWORD_BCRYPT_ROUNDS):
        self.store = store
        self.rounds = rounds

    async def set_password(self, username: str, password: str):
        if not password:
            raise ValidationError("Password is required")
        check_password_length(password)
        password_hash = await asyncio.to_thread(hash_password, password, self.rounds)
        await self.store.set(password_key(username), password_hash)
        logger.info(f"Password hash stored for user: {username.lower()}")

    async def has_password(self, username: str) -> bool:
        return bool(await self.store.get(password_key(username)))

    async def verify(self, username: str, password: str) -> bool:
        password_hash = await self.store.get(password_key(username))
        if not password_hash:
            logger.info(f"No password set for user: {username.lower()}")
            return False
        return await asyncio.to_thread(check_password, password, password_hash)
