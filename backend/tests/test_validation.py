"""
Tests for profile and message input validation.
"""

import pytest

from app.config import ChatConfig
from app.core.chat import Attachment
from app.core.validation import (
    validate_attachments,
    validate_bio,
    validate_content,
    validate_display_name,
    validate_emoji,
    validate_room_id,
    validate_username,
)


@pytest.fixture
def config():
    return ChatConfig()


class TestDisplayName:

    @pytest.mark.parametrize("name", ["A", "Alice Smith", "x" * 50, "Ünïcödé"])
    def test_valid(self, config, name):
        assert validate_display_name(name, config) == (True, None)

    def test_required(self, config):
        valid, error = validate_display_name("", config)
        assert not valid
        assert "required" in error

    def test_too_long(self, config):
        valid, error = validate_display_name("x" * 51, config)
        assert not valid
        assert "50" in error

    @pytest.mark.parametrize("name", ["@alice", "a/b"])
    def test_forbidden_characters(self, config, name):
        valid, _ = validate_display_name(name, config)
        assert not valid


class TestUsername:

    @pytest.mark.parametrize("username", ["bob", "Bob_99", "a" * 30])
    def test_valid(self, config, username):
        assert validate_username(username, config) == (True, None)

    @pytest.mark.parametrize("username,fragment", [
        ("ab", "at least 3"),
        ("a" * 31, "exceed 30"),
        ("bob.smith", "letters, numbers, and underscores"),
        ("bob smith", "letters, numbers, and underscores"),
    ])
    def test_invalid(self, config, username, fragment):
        valid, error = validate_username(username, config)
        assert not valid
        assert fragment in error


class TestBio:

    def test_limits(self, config):
        assert validate_bio("", config) == (True, None)
        assert validate_bio("x" * 500, config) == (True, None)
        assert validate_bio("x" * 501, config)[0] is False


class TestContent:

    def test_valid(self, config):
        assert validate_content("hello", config) == (True, None)
        assert validate_content("x" * 5000, config) == (True, None)

    @pytest.mark.parametrize("content", ["", " ", "\n\t"])
    def test_blank(self, config, content):
        valid, error = validate_content(content, config)
        assert not valid
        assert "required" in error

    def test_too_long(self, config):
        valid, error = validate_content("x" * 5001, config)
        assert not valid
        assert "5000" in error


class TestEmoji:

    @pytest.mark.parametrize("emoji", ["👍", ":thumbsup:", "🇳🇴"])
    def test_valid(self, config, emoji):
        assert validate_emoji(emoji, config) == (True, None)

    @pytest.mark.parametrize("emoji", ["", " 👍", "👍 ", "x" * 33])
    def test_invalid(self, config, emoji):
        assert validate_emoji(emoji, config)[0] is False


class TestRoomId:

    @pytest.mark.parametrize("room_id", ["general", "dev-chat", "team_1", "2024"])
    def test_valid(self, config, room_id):
        assert validate_room_id(room_id, config) == (True, None)

    @pytest.mark.parametrize("room_id", ["", "General", "-dash", "has space", "a" * 65])
    def test_invalid(self, config, room_id):
        assert validate_room_id(room_id, config)[0] is False


class TestAttachments:

    def test_valid(self, config):
        attachments = [
            Attachment("photo.png", "image/png", 1024),
            Attachment("sheet.xlsx", "application/vnd.ms-excel", 0),
        ]
        assert validate_attachments(attachments, config) == (True, None)

    def test_empty_list(self, config):
        assert validate_attachments([], config) == (True, None)

    def test_too_many(self, config):
        attachments = [Attachment(f"f{i}.txt", "text/plain", 1) for i in range(6)]
        valid, error = validate_attachments(attachments, config)
        assert not valid
        assert "At most 5" in error

    @pytest.mark.parametrize("attachment", [
        Attachment("", "text/plain", 1),
        Attachment("   ", "text/plain", 1),
        Attachment("file", "not a mime type", 1),
        Attachment("file", "text/plain", -1),
        Attachment("file", "text/plain", 25 * 1024 * 1024 + 1),
    ])
    def test_invalid(self, config, attachment):
        assert validate_attachments([attachment], config)[0] is False
