"""
ChatChain Server Configuration

This file contains all server-side configurable settings.
Modify these values to tune the chat limits and abuse controls.
"""

from dataclasses import dataclass
import os


@dataclass
class ServerConfig:
    """Server networking configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    POLL_INTERVAL_SECONDS: float = 5.0  # Advertised to polling clients


@dataclass
class ChatConfig:
    """Message and profile limits."""
    # Profiles
    DISPLAY_NAME_MAX_LENGTH: int = 50
    USERNAME_MIN_LENGTH: int = 3
    USERNAME_MAX_LENGTH: int = 30
    BIO_MAX_LENGTH: int = 500
    ONLINE_WINDOW_SECONDS: int = 300  # last_seen within this counts as online

    # Messages
    MAX_MESSAGE_LENGTH: int = 5000
    EDIT_WINDOW_SECONDS: int = 15 * 60
    MAX_PINNED_MESSAGES: int = 5
    MAX_REACTIONS_PER_MESSAGE: int = 50
    MAX_EMOJI_LENGTH: int = 32
    MAX_ATTACHMENTS_PER_MESSAGE: int = 5
    MAX_ATTACHMENT_SIZE_BYTES: int = 25 * 1024 * 1024
    DEFAULT_ROOM_ID: str = "general"
    ROOM_ID_MAX_LENGTH: int = 64

    # Reads
    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 200
    DEFAULT_SEARCH_LIMIT: int = 20
    TOP_POSTERS: int = 5

    # Moderation
    MAX_AUDIT_ENTRIES: int = 1000


@dataclass
class RateLimitConfig:
    """Per-identity send limits."""
    MIN_INTERVAL_SECONDS: float = 1.0
    DAILY_MESSAGE_CAP: int = 1000
    DAY_LENGTH_SECONDS: int = 86400
    CLEANUP_WINDOW_SECONDS: int = 86400  # Must be >= DAY_LENGTH_SECONDS


@dataclass
class RetentionConfig:
    """Background cleanup of old state."""
    RETENTION_SECONDS: int = 30 * 86400  # Non-pinned messages older than this are purged
    CLEANUP_EVERY_N_MESSAGES: int = 100


@dataclass
class DatabaseConfig:
    """Database configuration."""
    DATABASE_URL: str = ""  # Empty = SQLite file in the data directory
    ECHO_SQL: bool = False  # Log SQL queries
    MAX_STORED_SNAPSHOTS: int = 5


@dataclass
class Settings:
    """Main settings container."""
    server: ServerConfig = None
    chat: ChatConfig = None
    rate_limit: RateLimitConfig = None
    retention: RetentionConfig = None
    database: DatabaseConfig = None

    # Application info
    APP_NAME: str = "ChatChain"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    def __post_init__(self):
        self.server = self.server or ServerConfig()
        self.chat = self.chat or ChatConfig()
        self.rate_limit = self.rate_limit or RateLimitConfig()
        self.retention = self.retention or RetentionConfig()
        self.database = self.database or DatabaseConfig(
            DATABASE_URL=os.environ.get("CHATCHAIN_DATABASE_URL", "")
        )
        self.LOG_LEVEL = os.environ.get("CHATCHAIN_LOG_LEVEL", self.LOG_LEVEL)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings
