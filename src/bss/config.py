"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates fields and produces the immutable ServerPolicy consumed by the engines.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from bss.types import DEFAULT_ALLOWED_MIME_TYPES, DEFAULT_MAX_FILE_SIZE, ServerPolicy


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Optional:
        ALLOWED_PUBKEYS: Comma-separated hex public keys allowed to upload/delete
        ALLOWED_MIME_TYPES: Comma-separated media types accepted for upload
        MAX_FILE_SIZE: Maximum upload size in bytes
        STORAGE_DIR: Directory for the local object store
        PUBLIC_BASE_URL: Origin used in blob descriptor URLs
        SWEEP_INTERVAL_SECONDS: Interval of the background expiry sweep (0 = off)
        HOST / PORT: Bind address for `bss serve`
        LOG_LEVEL: Logging level
        LOG_FILE: Optional JSON Lines log file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ALLOWED_PUBKEYS: str = Field(
        default="",
        description="Comma-separated hex public keys; empty allows every key",
    )
    ALLOWED_MIME_TYPES: str = Field(
        default="",
        description="Comma-separated media types; empty uses the built-in list",
    )
    MAX_FILE_SIZE: int = Field(
        default=DEFAULT_MAX_FILE_SIZE, ge=1, description="Maximum upload size in bytes"
    )

    STORAGE_DIR: Path = Field(default=Path(".blossom"), description="Object store directory")
    PUBLIC_BASE_URL: str | None = Field(
        default=None,
        description="Origin for descriptor URLs; the request origin is used when unset",
    )
    SWEEP_INTERVAL_SECONDS: int = Field(
        default=0, ge=0, description="Background expiry sweep interval (0 disables)"
    )

    HOST: str = Field(default="127.0.0.1", description="Bind host")
    PORT: int = Field(default=8000, ge=1, le=65535, description="Bind port")

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON Lines log file")

    @field_validator("PUBLIC_BASE_URL")
    @classmethod
    def validate_public_base_url(cls, v: str | None) -> str | None:
        """Require an absolute http(s) origin and drop any trailing slash."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("PUBLIC_BASE_URL must start with http:// or https://")
        return v.rstrip("/")

    @property
    def allowed_pubkeys(self) -> list[str]:
        return _split_csv(self.ALLOWED_PUBKEYS)

    @property
    def allowed_mime_types(self) -> list[str]:
        return _split_csv(self.ALLOWED_MIME_TYPES) or list(DEFAULT_ALLOWED_MIME_TYPES)

    def policy(self) -> ServerPolicy:
        """Build the immutable policy value handed to the engines."""
        return ServerPolicy(
            allowed_pubkeys=frozenset(self.allowed_pubkeys),
            allowed_mime_types=tuple(self.allowed_mime_types),
            max_file_size=self.MAX_FILE_SIZE,
        )

    def redacted_display(self) -> dict[str, str | int | None]:
        """Return settings for display with pubkeys shortened."""
        def shorten(pubkey: str) -> str:
            return f"{pubkey[:8]}...{pubkey[-4:]}" if len(pubkey) > 12 else pubkey

        pubkeys = self.allowed_pubkeys
        return {
            "ALLOWED_PUBKEYS": ", ".join(shorten(pk) for pk in pubkeys) if pubkeys else "(any)",
            "ALLOWED_MIME_TYPES": ", ".join(self.allowed_mime_types),
            "MAX_FILE_SIZE": self.MAX_FILE_SIZE,
            "STORAGE_DIR": str(self.STORAGE_DIR),
            "PUBLIC_BASE_URL": self.PUBLIC_BASE_URL,
            "SWEEP_INTERVAL_SECONDS": self.SWEEP_INTERVAL_SECONDS,
            "HOST": self.HOST,
            "PORT": self.PORT,
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
