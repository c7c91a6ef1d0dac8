import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

REDIS_URL = f"redis://:{REDIS_PASSWORD}@{REDIS_HOST}:{REDIS_PORT}" if REDIS_PASSWORD else f"redis://{REDIS_HOST}:{REDIS_PORT}"

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

# The single identity allowed to manage public rooms and moderate messages
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "ryo").lower()

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", None)
AI_REPLY_MODEL = os.getenv("AI_REPLY_MODEL", "gpt-4o-mini")

DAY_SECONDS = 86400

# Tokens
TOKEN_BYTES = 32  # 256 bits
TOKEN_TTL_SECONDS = 90 * DAY_SECONDS
TOKEN_GRACE_PERIOD_SECONDS = 365 * DAY_SECONDS

# Passwords
PASSWORD_MIN_LENGTH = 8
PASSWORD_BCRYPT_ROUNDS = 10

# Presence: how long a client can stay silent before it is no longer counted in a room
PRESENCE_TTL_SECONDS = DAY_SECONDS

# Users and messages
MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 30
MAX_MESSAGE_LENGTH = 1000
MESSAGE_HISTORY_LIMIT = 100
RECENT_MESSAGES_LIMIT = 20
USER_SEARCH_MIN_QUERY = 2
USER_SEARCH_LIMIT = 20

# Sensitive-action limiter
RATE_LIMIT_WINDOW_SECONDS = 60
RATE_LIMIT_ATTEMPTS = 10
SENSITIVE_ACTIONS = frozenset({
    "generateToken",
    "refreshToken",
    "authenticateWithPassword",
    "setPassword",
    "createUser",
    "generateAiReply",
})

# Chat burst limiter (public rooms, per room + user)
CHAT_BURST_SHORT_WINDOW_SECONDS = 10
CHAT_BURST_SHORT_LIMIT = 3
CHAT_BURST_LONG_WINDOW_SECONDS = 60
CHAT_BURST_LONG_LIMIT = 20
CHAT_MIN_INTERVAL_SECONDS = 2

# Page size hint for SCAN iteration
SCAN_COUNT = 100
