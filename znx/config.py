"""Configuration settings for znx.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: env vars > .env file > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from znx.errors import ZnxError


def _field_name(loc: tuple) -> str:
    return "_".join(str(part) for part in loc).upper()


class ConfigError(ZnxError):
    """Settings from the environment or .env file are invalid."""

    def __init__(self, error: ValidationError) -> None:
        problems = "; ".join(
            f"ZNX_{_field_name(item['loc'])}: {item['msg']}"
            for item in error.errors()
        )
        super().__init__(
            f"Invalid configuration: {problems}", error_code="CONFIG_INVALID"
        )


def _default_bootloader_dir() -> Path:
    """Return the default bootloader skeleton directory."""
    return Path("/etc/znx/bootloader")


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the ZNX_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="ZNX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    tmp_dir: Path | None = Field(
        default=None,
        description="Parent directory for temporary mount points "
        "(uses system default if not set)",
    )
    bootloader_dir: Path = Field(
        default_factory=_default_bootloader_dir,
        description="Directory copied onto the boot volume by init",
    )

    # Device layout
    boot_size_mib: int = Field(
        default=132,
        ge=32,
        description="Size of the ZNX_BOOT partition in MiB",
    )

    # External tools
    zsync_bin: str = Field(
        default="zsync",
        description="Delta-sync engine executable",
    )

    # Mount handling
    unmount_retries: int = Field(
        default=10,
        ge=1,
        description="Unmount attempts before giving up",
    )
    unmount_retry_interval: float = Field(
        default=0.5,
        ge=0,
        description="Seconds to wait between unmount attempts",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level",
    )

    # Timeouts (in seconds)
    download_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for whole-file downloads",
    )
    command_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for external commands (sync engine, mkfs, ...)",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ConfigError: A ZNX_* value fails validation.
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigError(e) from e


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["ConfigError", "Settings", "get_settings", "print_settings_json"]
