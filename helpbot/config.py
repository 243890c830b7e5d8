"""
Centralized Configuration Management

Loads and validates the help bot configuration from environment variables
and .env files. Settings are grouped into nested sections with their own
environment prefix.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.handler import DEFAULT_REJECTION_MESSAGE

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
VALID_POLICIES = ["exact", "nearest"]


class MatrixConfig(BaseSettings):
    """Matrix-specific configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MATRIX_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    homeserver: Optional[str] = None
    user_id: str = "@nvim-bot:matrix.org"
    device_id: Optional[str] = None
    device_name: str = "nvim_help_bot"
    store_path: str = "matrix_store"

    # Sync and send behaviour
    sync_timeout_ms: int = 30000
    send_timeout_seconds: float = 10.0
    sync_retry_base_delay: float = 1.0
    sync_retry_max_delay: float = 60.0
    login_max_attempts: int = 3
    auto_join_invites: bool = True

    # Room gate: unset means every room is answered
    allowed_room: Optional[str] = None
    rejection_message: str = DEFAULT_REJECTION_MESSAGE

    @field_validator("homeserver")
    @classmethod
    def validate_homeserver(cls, v):
        if v and not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("Homeserver URL must start with http:// or https://")
        return v

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v):
        if not v.startswith("@"):
            raise ValueError("Matrix user ID must start with @")
        if ":" not in v:
            raise ValueError("Matrix user ID must include homeserver domain")
        return v

    @field_validator("allowed_room")
    @classmethod
    def validate_allowed_room(cls, v):
        if v and not (v.startswith("!") or v.startswith("#")):
            raise ValueError("Matrix room must start with ! or #")
        return v

    @field_validator("send_timeout_seconds", "sync_retry_base_delay", "sync_retry_max_delay")
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    @property
    def server_name(self) -> str:
        """Server part of the user ID, e.g. matrix.org."""
        return self.user_id.split(":", 1)[1]


class TagsConfig(BaseSettings):
    """Tag table configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TAGS_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    file: str = "tags"
    policy: str = "exact"
    doc_base_url: str = "https://neovim.io/doc/user"

    @field_validator("policy")
    @classmethod
    def validate_policy(cls, v):
        if v.lower() not in VALID_POLICIES:
            raise ValueError(f"Lookup policy must be one of {VALID_POLICIES}")
        return v.lower()

    @field_validator("doc_base_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")


class AppConfig(BaseSettings):
    """
    Application configuration with nested sections.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    log_level: str = "INFO"
    log_format: str = "text"
    log_file: Optional[str] = None

    matrix: MatrixConfig = Field(default_factory=MatrixConfig)
    tags: TagsConfig = Field(default_factory=TagsConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        if v.upper() not in VALID_LOG_LEVELS:
            raise ValueError(f"Log level must be one of {VALID_LOG_LEVELS}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        if v.lower() not in ("text", "json"):
            raise ValueError("Log format must be 'text' or 'json'")
        return v.lower()


def create_settings() -> AppConfig:
    """Create settings instance from environment variables and .env files only."""
    return AppConfig()
