"""Input validation and content sanitization for usernames, room ids and messages."""
import html
import re
from typing import Iterable, Optional

from better_profanity import Profanity

from constants import MAX_USERNAME_LENGTH, MIN_USERNAME_LENGTH
from errors import ValidationError
from logging_config import get_logger

logger = get_logger(__name__)

# 3-30 chars, starts with a letter, letters/digits, a single '-' or '_' only between alphanumerics.
# ok: "alice", "john_doe", "foo-bar"; rejected: "_joe", "joe_", "a--b", "a__b", "a b", "a@b"
USERNAME_REGEX = re.compile(r"^[a-z](?:[a-z0-9]|[-_](?=[a-z0-9])){2,29}$", re.IGNORECASE)

# Generated room ids are hex; ids coming from clients are still checked
ROOM_ID_REGEX = re.compile(r"^[a-z0-9]+$", re.IGNORECASE)

URL_REGEX = re.compile(r"https?://\S+")

CENSOR_CHAR = "█"
EXTRA_CENSOR_WORDS = ["badword1", "badword2", "inappropriate"]


def is_valid_username(username) -> bool:
    return isinstance(username, str) and bool(USERNAME_REGEX.match(username))


def is_valid_room_id(room_id) -> bool:
    return isinstance(room_id, str) and bool(ROOM_ID_REGEX.match(room_id))


def validate_username(username) -> str:
    """Return the normalized (lowercase) username or raise ValidationError."""
    if not is_valid_username(username):
        logger.info(f"Invalid username format: {username!r}")
        raise ValidationError(
            "Invalid username: use 3-30 letters/numbers; '-' or '_' allowed between characters; no spaces or symbols"
        )
    return username.lower()


def validate_room_id(room_id) -> str:
    if not is_valid_room_id(room_id):
        logger.info(f"Invalid roomId format: {room_id!r}")
        raise ValidationError("Invalid room ID format")
    return room_id


def check_username_length(username: str):
    if len(username) < MIN_USERNAME_LENGTH:
        raise ValidationError(f"Username must be at least {MIN_USERNAME_LENGTH} characters")
    if len(username) > MAX_USERNAME_LENGTH:
        raise ValidationError(f"Username must be {MAX_USERNAME_LENGTH} characters or less")


def escape_html(text: str) -> str:
    # & < > " ' -> entities; quote=True also escapes both quote characters
    return html.escape(text, quote=True)


def slugify_room_name(name: str) -> str:
    return name.lower().replace(" ", "-")


def private_room_name(members: Iterable[str]) -> str:
    return ", ".join(f"@{member}" for member in sorted(members))


class ProfanityFilter:
    """Wraps better-profanity so that URLs pass through untouched."""

    def __init__(self, words: Optional[Iterable[str]] = None, extra_words: Iterable[str] = EXTRA_CENSOR_WORDS):
        self._profanity = Profanity(list(words)) if words is not None else Profanity()
        extra_words = list(extra_words)
        if extra_words:
            self._profanity.add_censor_words(extra_words)

    def is_profane(self, text: str) -> bool:
        return self._profanity.contains_profanity(text)

    def clean(self, text: str) -> str:
        if not text:
            return text
        return self._profanity.censor(text, CENSOR_CHAR)

    def clean_preserving_urls(self, content: str) -> str:
        """Censor everything outside http(s) URLs; URLs are copied verbatim."""
        result = []
        last_index = 0
        for match in URL_REGEX.finditer(content):
            result.append(self.clean(content[last_index:match.start()]))
            result.append(match.group(0))
            last_index = match.end()
        result.append(self.clean(content[last_index:]))
        return "".join(result)

    def sanitize_message(self, content: str) -> str:
        return escape_html(self.clean_preserving_urls(content))
