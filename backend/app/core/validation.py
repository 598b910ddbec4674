"""
Input validation for profiles and messages.

Each validator returns a tuple of (is_valid, error_message) so callers can
turn failures into a Result without raising.
"""

import re
from typing import List, Optional, Tuple

from app.config import ChatConfig
from app.core.chat import Attachment


# Username: letters, digits and underscores only (length checked separately)
USERNAME_PATTERN = re.compile(r'^[A-Za-z0-9_]+$')

# Room ids: lowercase slug
ROOM_ID_PATTERN = re.compile(r'^[a-z0-9][a-z0-9_-]*$')

# MIME type such as "image/png" or "application/vnd.ms-excel"
CONTENT_TYPE_PATTERN = re.compile(r'^[\w.+-]+/[\w.+-]+$')

DISPLAY_NAME_FORBIDDEN = ("@", "/")


def validate_display_name(display_name: str, config: ChatConfig) -> Tuple[bool, Optional[str]]:
    """
    Validate display name format.

    Args:
        display_name: Name to validate (already stripped by the caller)
        config: Chat limits

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not display_name:
        return False, "Display name is required"

    if len(display_name) > config.DISPLAY_NAME_MAX_LENGTH:
        return False, f"Display name must not exceed {config.DISPLAY_NAME_MAX_LENGTH} characters"

    for char in DISPLAY_NAME_FORBIDDEN:
        if char in display_name:
            return False, f"Display name must not contain '{char}'"

    return True, None


def validate_username(username: str, config: ChatConfig) -> Tuple[bool, Optional[str]]:
    """
    Validate username format.

    Args:
        username: Username to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if len(username) < config.USERNAME_MIN_LENGTH:
        return False, f"Username must be at least {config.USERNAME_MIN_LENGTH} characters"

    if len(username) > config.USERNAME_MAX_LENGTH:
        return False, f"Username must not exceed {config.USERNAME_MAX_LENGTH} characters"

    if not USERNAME_PATTERN.match(username):
        return False, "Username can only contain letters, numbers, and underscores"

    return True, None


def validate_bio(bio: str, config: ChatConfig) -> Tuple[bool, Optional[str]]:
    if len(bio) > config.BIO_MAX_LENGTH:
        return False, f"Bio must not exceed {config.BIO_MAX_LENGTH} characters"
    return True, None


def validate_content(content: str, config: ChatConfig) -> Tuple[bool, Optional[str]]:
    """
    Validate message content.

    Blank content is invalid input; content over the maximum length is
    reported separately so it can map to MESSAGE_TOO_LONG.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not content or not content.strip():
        return False, "Message content is required"

    if len(content) > config.MAX_MESSAGE_LENGTH:
        return False, f"Message must not exceed {config.MAX_MESSAGE_LENGTH} characters"

    return True, None


def validate_emoji(emoji: str, config: ChatConfig) -> Tuple[bool, Optional[str]]:
    if not emoji or emoji != emoji.strip():
        return False, "Emoji is required and must not contain surrounding whitespace"

    if len(emoji) > config.MAX_EMOJI_LENGTH:
        return False, f"Emoji must not exceed {config.MAX_EMOJI_LENGTH} characters"

    return True, None


def validate_room_id(room_id: str, config: ChatConfig) -> Tuple[bool, Optional[str]]:
    if not room_id:
        return False, "Room id is required"

    if len(room_id) > config.ROOM_ID_MAX_LENGTH:
        return False, f"Room id must not exceed {config.ROOM_ID_MAX_LENGTH} characters"

    if not ROOM_ID_PATTERN.match(room_id):
        return False, "Room id can only contain lowercase letters, numbers, dashes, and underscores"

    return True, None


def validate_attachments(attachments: List[Attachment], config: ChatConfig) -> Tuple[bool, Optional[str]]:
    """
    Validate attachment metadata.

    Only metadata is checked; the files themselves are never stored here.
    """
    if len(attachments) > config.MAX_ATTACHMENTS_PER_MESSAGE:
        return False, f"At most {config.MAX_ATTACHMENTS_PER_MESSAGE} attachments per message"

    for attachment in attachments:
        if not attachment.filename or not attachment.filename.strip():
            return False, "Attachment filename is required"
        if not CONTENT_TYPE_PATTERN.match(attachment.content_type):
            return False, f"Invalid content type: {attachment.content_type!r}"
        if attachment.size_bytes < 0 or attachment.size_bytes > config.MAX_ATTACHMENT_SIZE_BYTES:
            return False, f"Attachment {attachment.filename!r} exceeds maximum size"

    return True, None
