"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CrawlerSettings(BaseSettings):
    """Crawler-specific settings."""

    model_config = SettingsConfigDict(
        env_prefix="CRAWLER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    storage_root: str = Field(default="data", description="Root directory for all crawl state")
    db_path: str = Field(default="data/crawl.db", description="SQLite database path for frontier and posts")
    media_dir: str = Field(default="data/media", description="Blob storage root for uploaded media")
    download_dir: str = Field(default="data/downloads", description="Temporary directory for platform downloads")

    cutoff_year: int = Field(default=2018, description="Messages published before this year are skipped")
    call_timeout: float = Field(default=60.0, description="Timeout in seconds for a single platform call")
    bootstrap_timeout: float = Field(default=30.0, description="Timeout in seconds for client bootstrap")
    max_retries: int = Field(default=3, description="Max retry attempts for transport requests")
    retry_delay: float = Field(default=1.0, description="Initial delay between retries in seconds")

    message_batch_size: int = Field(default=100, description="Messages requested per history page")
    max_messages_per_channel: int = Field(default=0, description="Stop after this many messages (0 = no limit)")

    language_code: str = Field(default="", description="Language code stamped on every post")
    platform_name: str = Field(default="Telegram", description="Platform name stamped on every post")
    channel_url_template: str = Field(
        default="https://t.me/{channel}",
        description="External channel URL, formatted with the channel name",
    )

    @field_validator("cutoff_year")
    @classmethod
    def validate_cutoff_year(cls, v: int) -> int:
        if v < 1970:
            raise ValueError("cutoff_year must be 1970 or later")
        return v

    @field_validator("call_timeout", "bootstrap_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("message_batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("message_batch_size must be at least 1")
        return v

    @field_validator("channel_url_template")
    @classmethod
    def validate_channel_url_template(cls, v: str) -> str:
        if "{channel}" not in v:
            raise ValueError("channel_url_template must contain a {channel} placeholder")
        return v

    def ensure_dirs(self) -> None:
        """Create the storage directories if they don't exist."""
        for d in (self.storage_root, self.media_dir, self.download_dir):
            Path(d).mkdir(parents=True, exist_ok=True)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)


class PlatformSettings(BaseSettings):
    """Settings for the platform client (which client, where, and how to authenticate)."""

    model_config = SettingsConfigDict(
        env_prefix="PLATFORM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    name: str = Field(default="bridge", description="Registered platform client to use")
    base_url: str = Field(default="http://localhost:8080", description="Base URL of the platform bridge")
    api_token: str = Field(default="", description="Bearer token sent to the platform bridge")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        return v.rstrip("/")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = Field(default=False)

    @property
    def crawler(self) -> CrawlerSettings:
        return CrawlerSettings()

    @property
    def platform(self) -> PlatformSettings:
        return PlatformSettings()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reload_settings() -> Settings:
    """Reload settings (clear cache and return new instance).

    Call this when .env file is updated to pick up new values.
    """
    get_settings.cache_clear()
    return get_settings()
