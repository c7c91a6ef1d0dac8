import pytest

from errors import ValidationError
from services.content import (
    ProfanityFilter,
    escape_html,
    is_valid_room_id,
    is_valid_username,
    private_room_name,
    slugify_room_name,
    validate_username,
)


@pytest.mark.parametrize("username", ["alice", "john_doe", "foo-bar", "a1b", "Alice", "x" * 30])
def test_valid_usernames(username):
    assert is_valid_username(username)


@pytest.mark.parametrize("username", ["_joe", "joe_", "a--b", "a__b", "a b", "a@b", "1abc", "ab", "x" * 31, None])
def test_invalid_usernames(username):
    assert not is_valid_username(username)


def test_validate_username_lowercases():
    assert validate_username("Alice") == "alice"
    with pytest.raises(ValidationError):
        validate_username("a b")


def test_room_ids_are_alphanumeric():
    assert is_valid_room_id("abc123")
    assert not is_valid_room_id("abc-123")
    assert not is_valid_room_id("")


def test_escape_html():
    assert escape_html("<a href=\"x\">it's & more</a>") == "&lt;a href=&quot;x&quot;&gt;it&#x27;s &amp; more&lt;/a&gt;"


def test_room_names():
    assert slugify_room_name("General Chat") == "general-chat"
    assert private_room_name(["bob", "alice"]) == "@alice, @bob"


def test_profanity_filter_preserves_urls():
    profanity = ProfanityFilter(words=["darn"])

    cleaned = profanity.clean_preserving_urls("darn look at http://darn.example.com/darn")

    assert not cleaned.startswith("darn")
    assert cleaned.endswith("http://darn.example.com/darn")


def test_clean_text_unchanged():
    profanity = ProfanityFilter(words=["darn"])

    assert profanity.sanitize_message("hello world") == "hello world"
    assert not profanity.is_profane("hello world")
    assert profanity.is_profane("oh darn")
