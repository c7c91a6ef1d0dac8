"""Multi-device authentication tokens.

Storage
-------
- `chat:token:user:{username}:{token}` -> issue timestamp (ms), TTL = token lifetime.
  The authoritative collection; one key per signed-in device.
- `chat:token:{token}` -> username, same TTL. Reverse index used by revoke and
  token-only lookups. Tokens issued before the per-user collection existed only
  have this key; they are migrated into the collection the first time they validate.
- `chat:token:last:{username}` -> {"token", "expiredAt"}. Lets a client that was
  offline longer than the token lifetime trade its expired token for a new one
  within the grace period instead of being locked out.
"""
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional

from backend import collect_keys, dump_json, load_json
from constants import TOKEN_BYTES, TOKEN_GRACE_PERIOD_SECONDS, TOKEN_TTL_SECONDS
from errors import AuthError
from logging_config import get_logger
from redis_keys import (
    REDIS_LAST_TOKEN_PREFIX,
    REDIS_TOKEN_PREFIX,
    REDIS_USER_TOKEN_PREFIX,
    any_user_token_pattern,
    last_token_key,
    token_key,
    user_token_key,
    user_token_pattern,
)

logger = get_logger(__name__)


@dataclass
class TokenCheck:
    valid: bool
    expired: bool = False


@dataclass
class TokenInfo:
    token: str
    created_at: Optional[int] = None


@dataclass
class Identity:
    username: str
    expired: bool = False
    expired_at: Optional[int] = None


def _mapped_username(raw) -> Optional[str]:
    """Username stored under a flat token key. Old entries may hold a {"username": ...} object."""
    if raw is None:
        return None
    parsed = load_json(raw)
    if isinstance(parsed, dict):
        username = parsed.get("username")
        return username.lower() if isinstance(username, str) else None
    return str(raw).lower()


def _token_from_key(key: str) -> str:
    return key.rsplit(":", 1)[-1]


class TokenManager:
    def __init__(
        self,
        store,
        clock: Callable[[], float] = time.time,
        token_ttl: int = TOKEN_TTL_SECONDS,
        grace_period: int = TOKEN_GRACE_PERIOD_SECONDS,
        token_bytes: int = TOKEN_BYTES,
    ):
        self.store = store
        self.clock = clock
        self.token_ttl = token_ttl
        self.grace_period = grace_period
        self.token_bytes = token_bytes

    def _now_ms(self) -> int:
        return round(self.clock() * 1000)

    async def issue(self, username: str) -> str:
        """Create a new token for `username` without touching its other tokens."""
        username = username.lower()
        token = secrets.token_hex(self.token_bytes)
        await self._store_active(username, token)
        # Predictive grace record: once this token expires it can still be refreshed
        await self._store_last_valid(
            username,
            token,
            expired_at_ms=self._now_ms() + self.token_ttl * 1000,
            ttl=self.token_ttl + self.grace_period,
        )
        logger.info(f"Token issued for user {username}")
        return token

    async def validate(self, username: Optional[str], token: Optional[str], allow_expired: bool = False) -> TokenCheck:
        if not username or not token:
            logger.info("Auth validation failed: Missing username or token")
            return TokenCheck(valid=False)

        username = username.lower()
        identity_key = user_token_key(username, token)

        if await self.store.exists(identity_key):
            await self.store.expire(identity_key, self.token_ttl)
            await self.store.expire(token_key(token), self.token_ttl)
            return TokenCheck(valid=True)

        mapped = _mapped_username(await self.store.get(token_key(token)))
        if mapped == username:
            await self.store.expire(token_key(token), self.token_ttl)
            await self.store.set(identity_key, str(self._now_ms()), ttl=self.token_ttl)
            logger.info(f"Migrated flat token mapping into per-user collection for {username}")
            return TokenCheck(valid=True)

        if allow_expired:
            record = await self._load_last_valid(username)
            if record is not None:
                last_token, expired_at = record
                if last_token == token and self._now_ms() < expired_at + self.grace_period * 1000:
                    logger.info(f"Auth validation: Found expired token for user {username} within grace period")
                    return TokenCheck(valid=True, expired=True)

        logger.info(f"Auth validation failed for user {username}")
        return TokenCheck(valid=False)

    async def refresh(self, username: str, old_token: str) -> str:
        """Exchange `old_token` (valid, or expired within the grace period) for a new token."""
        username = username.lower()
        check = await self.validate(username, old_token, allow_expired=True)
        if not check.valid:
            logger.info(f"Invalid old token provided for user: {username}")
            raise AuthError("Invalid authentication token")

        await self.retire(username, old_token)

        # The archived record is left in place so the old token stays refreshable
        token = secrets.token_hex(self.token_bytes)
        await self._store_active(username, token)
        logger.info(f"Token refreshed successfully for user {username} (was {'expired' if check.expired else 'valid'})")
        return token

    async def retire(self, username: str, token: str):
        """Archive `token` as the grace-period record and remove it from active storage."""
        await self._store_last_valid(username, token, expired_at_ms=self._now_ms(), ttl=self.grace_period)
        await self._delete_active(token, username=username)
        logger.debug(f"Stored old token for future grace period use for user: {username.lower()}")

    async def revoke(self, token: str):
        """Delete one token everywhere it is stored, including a grace record that names it."""
        if not token:
            return
        owners = await self._delete_active(token)
        for owner in owners:
            record = await self._load_last_valid(owner)
            if record is not None and record[0] == token:
                await self.store.delete(last_token_key(owner))
        logger.info(f"Token revoked for {', '.join(sorted(owners)) or 'unknown user'}")

    async def revoke_all(self, username: str) -> int:
        """Delete every token of `username` plus its grace record. Returns how many tokens were revoked."""
        username = username.lower()
        revoked = 0

        identity_keys = await collect_keys(self.store, user_token_pattern(username))
        if identity_keys:
            doomed = list(identity_keys)
            doomed.extend(token_key(_token_from_key(key)) for key in identity_keys)
            await self.store.delete_batch(doomed)
            revoked += len(identity_keys)

        # Flat mappings with no per-user key (issued before the collection existed)
        candidates = [
            key
            for key in await collect_keys(self.store, f"{REDIS_TOKEN_PREFIX}*")
            if not key.startswith(REDIS_USER_TOKEN_PREFIX) and not key.startswith(REDIS_LAST_TOKEN_PREFIX)
        ]
        if candidates:
            values = await self.store.mget(candidates)
            orphaned = [key for key, value in zip(candidates, values) if _mapped_username(value) == username]
            if orphaned:
                revoked += await self.store.delete(*orphaned)

        await self.store.delete(last_token_key(username))
        logger.info(f"Deleted {revoked} tokens for user {username}")
        return revoked

    async def list_tokens(self, username: str) -> list:
        keys = await collect_keys(self.store, user_token_pattern(username))
        if not keys:
            return []
        values = await self.store.mget(keys)
        tokens = []
        for key, value in zip(keys, values):
            try:
                created_at = int(value) if value is not None else None
            except (TypeError, ValueError):
                created_at = None
            tokens.append(TokenInfo(token=_token_from_key(key), created_at=created_at))
        return tokens

    async def identify(self, token: str) -> Optional[Identity]:
        """Resolve a bare token to its owner; falls back to grace records for expired tokens."""
        if not token:
            return None

        mapped = _mapped_username(await self.store.get(token_key(token)))
        if mapped:
            await self.store.expire(token_key(token), self.token_ttl)
            identity_key = user_token_key(mapped, token)
            if await self.store.exists(identity_key):
                await self.store.expire(identity_key, self.token_ttl)
            else:
                await self.store.set(identity_key, str(self._now_ms()), ttl=self.token_ttl)
            return Identity(username=mapped)

        keys = await collect_keys(self.store, any_user_token_pattern(token))
        if keys:
            key = keys[0]
            username = key[len(REDIS_USER_TOKEN_PREFIX):].rsplit(":", 1)[0]
            await self.store.expire(key, self.token_ttl)
            await self.store.set(token_key(token), username, ttl=self.token_ttl)
            return Identity(username=username)

        last_keys = await collect_keys(self.store, f"{REDIS_LAST_TOKEN_PREFIX}*")
        if last_keys:
            now_ms = self._now_ms()
            for key, raw in zip(last_keys, await self.store.mget(last_keys)):
                record = _parse_last_valid(raw)
                if record is None or record[0] != token:
                    continue
                if now_ms < record[1] + self.grace_period * 1000:
                    return Identity(username=key[len(REDIS_LAST_TOKEN_PREFIX):], expired=True, expired_at=record[1])
        return None

    async def _store_active(self, username: str, token: str):
        await self.store.set(user_token_key(username, token), str(self._now_ms()), ttl=self.token_ttl)
        await self.store.set(token_key(token), username.lower(), ttl=self.token_ttl)

    async def _store_last_valid(self, username: str, token: str, expired_at_ms: int, ttl: int):
        await self.store.set(last_token_key(username), dump_json({"token": token, "expiredAt": expired_at_ms}), ttl=ttl)

    async def _load_last_valid(self, username: str):
        raw = await self.store.get(last_token_key(username))
        if raw is None:
            return None
        record = _parse_last_valid(raw)
        if record is None:
            logger.error(f"Error parsing last token data for {username}")
        return record

    async def _delete_active(self, token: str, username: Optional[str] = None) -> set:
        """Remove `token` from the flat mapping and the per-user collection. Returns the owners found."""
        flat_key = token_key(token)
        owners = set()
        mapped = _mapped_username(await self.store.get(flat_key))
        await self.store.delete(flat_key)
        if mapped:
            owners.add(mapped)
        if username:
            owners.add(username.lower())

        if owners:
            await self.store.delete(*(user_token_key(owner, token) for owner in owners))
            return owners

        # Flat mapping already expired: find the per-user key by scanning
        keys = await collect_keys(self.store, any_user_token_pattern(token))
        if keys:
            await self.store.delete_batch(keys)
            owners.update(key[len(REDIS_USER_TOKEN_PREFIX):].rsplit(":", 1)[0] for key in keys)
        return owners


def _parse_last_valid(raw):
    data = load_json(raw)
    if not isinstance(data, dict):
        return None
    token = data.get("token")
    try:
        expired_at = int(data.get("expiredAt"))
    except (TypeError, ValueError):
        return None
    if not isinstance(token, str):
        return None
    return token, expired_at
