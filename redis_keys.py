REDIS_ROOM_KEY = "chat:room:{room_id}" # room record (json)
REDIS_ROOM_PREFIX = "chat:room:"
REDIS_MESSAGES_KEY = "chat:messages:{room_id}" # list of message json, newest first
REDIS_MESSAGES_PREFIX = "chat:messages:"
REDIS_USER_KEY = "chat:users:{username}" # user record (json), never expires
REDIS_USER_PREFIX = "chat:users:"
REDIS_LEGACY_ROOM_USERS_KEY = "chat:room:users:{room_id}" # old membership set, purged on read
REDIS_LEGACY_ROOM_USERS_PREFIX = "chat:room:users:"
REDIS_PRESENCE_KEY = "chat:presence:{room_id}:{username}" # epoch ms, ttl = presence window
REDIS_PRESENCE_PREFIX = "chat:presence:"

REDIS_TOKEN_KEY = "chat:token:{token}" # flat token -> username mapping
REDIS_TOKEN_PREFIX = "chat:token:"
REDIS_USER_TOKEN_KEY = "chat:token:user:{username}:{token}" # per-identity token -> issued at
REDIS_USER_TOKEN_PREFIX = "chat:token:user:"
REDIS_LAST_TOKEN_KEY = "chat:token:last:{username}" # {"token", "expiredAt"} for grace refresh
REDIS_LAST_TOKEN_PREFIX = "chat:token:last:"
REDIS_PASSWORD_KEY = "chat:password:{username}" # bcrypt hash

REDIS_RATE_LIMIT_KEY = "rl:{action}:{identifier}"
REDIS_BURST_SHORT_KEY = "rl:chat:b:s:{room_id}:{username}"
REDIS_BURST_LONG_KEY = "rl:chat:b:l:{room_id}:{username}"
REDIS_BURST_LAST_KEY = "rl:chat:b:last:{room_id}:{username}"

# Pub/sub channel names
ROOM_CHANNEL = "room-{room_id}"
USER_CHANNEL = "chats-{username}"
PUBLIC_CHANNEL = "chats-public"


def room_key(room_id: str) -> str:
    return REDIS_ROOM_KEY.format(room_id=room_id)


def messages_key(room_id: str) -> str:
    return REDIS_MESSAGES_KEY.format(room_id=room_id)


def user_key(username: str) -> str:
    return REDIS_USER_KEY.format(username=username.lower())


def presence_key(room_id: str, username: str) -> str:
    return REDIS_PRESENCE_KEY.format(room_id=room_id, username=username.lower())


def presence_pattern(room_id: str) -> str:
    return f"{REDIS_PRESENCE_PREFIX}{room_id}:*"


def legacy_room_users_key(room_id: str) -> str:
    return REDIS_LEGACY_ROOM_USERS_KEY.format(room_id=room_id)


def token_key(token: str) -> str:
    return REDIS_TOKEN_KEY.format(token=token)


def user_token_key(username: str, token: str) -> str:
    return REDIS_USER_TOKEN_KEY.format(username=username.lower(), token=token)


def user_token_pattern(username: str) -> str:
    return f"{REDIS_USER_TOKEN_PREFIX}{username.lower()}:*"


def any_user_token_pattern(token: str) -> str:
    return f"{REDIS_USER_TOKEN_PREFIX}*:{token}"


def last_token_key(username: str) -> str:
    return REDIS_LAST_TOKEN_KEY.format(username=username.lower())


def password_key(username: str) -> str:
    return REDIS_PASSWORD_KEY.format(username=username.lower())


def room_id_from_key(key: str):
    """Return the room id of a `chat:room:{id}` key, or None for other keys sharing the prefix."""
    if not key.startswith(REDIS_ROOM_PREFIX):
        return None
    room_id = key[len(REDIS_ROOM_PREFIX):]
    # chat:room:users:{id} also matches chat:room:*
    if not room_id or ":" in room_id:
        return None
    return room_id


# **Key naming conventions**
# - `chat:room:{roomId}`: json, {id, name, type, createdAt, userCount, members?}
# - `chat:messages:{roomId}`: list, LPUSH + LTRIM 0..99
# - `chat:presence:{roomId}:{username}`: string with TTL, absence means offline
# - `chat:token:user:{username}:{token}`: string with TTL, one per device
# - `chat:token:last:{username}`: grace-period record, outlives the token it describes
