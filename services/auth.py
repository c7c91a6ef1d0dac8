from typing import Optional

from errors import AuthError, NotFoundError, ValidationError
from logging_config import get_logger
from services.tokens import Identity

logger = get_logger(__name__)

INVALID_CREDENTIALS = "Invalid username or password"


class AuthService:
    """Account-level auth flows on top of the token manager and password store."""

    def __init__(self, tokens, passwords, users):
        self.tokens = tokens
        self.passwords = passwords
        self.users = users

    async def authenticate(self, username: Optional[str], token: Optional[str]) -> str:
        """Return the lowercase username if `token` is live for it, else raise AuthError."""
        check = await self.tokens.validate(username, token)
        if not check.valid:
            raise AuthError("Unauthorized - invalid token")
        return username.lower()

    async def generate_token(self, username: Optional[str]) -> str:
        if not username:
            logger.info("Token generation failed: Username is required")
            raise ValidationError("Username is required")
        username = username.lower()
        logger.info(f"Generating token for user: {username}")
        if not await self.users.exists(username):
            logger.info(f"User not found: {username}")
            raise NotFoundError("User not found")
        return await self.tokens.issue(username)

    async def refresh_token(self, username: Optional[str], old_token: Optional[str]) -> str:
        if not username or not old_token:
            logger.info("Token refresh failed: Username and oldToken are required")
            raise ValidationError("Username and oldToken are required")
        username = username.lower()
        logger.info(f"Refreshing token for user: {username}")
        if not await self.users.exists(username):
            logger.info(f"User not found: {username}")
            raise NotFoundError("User not found")
        return await self.tokens.refresh(username, old_token)

    async def verify_token(self, token: Optional[str]) -> Identity:
        if not token:
            logger.info("Token verification failed: Missing Authorization header")
            raise AuthError("Authorization token required")
        identity = await self.tokens.identify(token)
        if identity is None:
            raise AuthError("Invalid authentication token")
        return identity

    async def login_with_password(self, username: Optional[str], password: Optional[str],
                                  old_token: Optional[str] = None) -> str:
        if not username or not password:
            logger.info("Auth failed: Username and password are required")
            raise ValidationError("Username and password are required")
        username = username.lower()
        logger.info(f"Authenticating user with password: {username}")

        # Every failure below looks the same to the caller
        if not await self.users.exists(username):
            logger.info(f"User not found: {username}")
            raise AuthError(INVALID_CREDENTIALS)
        if not await self.passwords.verify(username, password):
            logger.info(f"Invalid password for user: {username}")
            raise AuthError(INVALID_CREDENTIALS)

        if old_token:
            if (await self.tokens.validate(username, old_token, allow_expired=True)).valid:
                await self.tokens.retire(username, old_token)
            else:
                logger.info(f"Ignoring old token that does not belong to {username}")
        token = await self.tokens.issue(username)
        logger.info(f"Password authentication successful for user {username}")
        return token

    async def set_password(self, username: str, password: Optional[str]):
        logger.info(f"Setting password for user: {username}")
        await self.passwords.set_password(username, password)

    async def has_password(self, username: str) -> bool:
        return await self.passwords.has_password(username)

    async def list_tokens(self, username: str, current_token: Optional[str] = None) -> list:
        tokens = await self.tokens.list_tokens(username)
        logger.info(f"Found {len(tokens)} active tokens for user {username}")
        return [
            {
                "maskedToken": f"...{info.token[-8:]}",
                "createdAt": info.created_at,
                "isCurrent": info.token == current_token,
            }
            for info in tokens
        ]

    async def logout_all(self, username: str) -> int:
        logger.info(f"Logging out all devices for user: {username}")
        return await self.tokens.revoke_all(username)

    async def logout(self, username: str, token: str):
        logger.info(f"Logging out current session for user: {username}")
        await self.tokens.revoke(token)
