"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_database_settings() -> "DatabaseSettings":
    """Build database settings from environment (see _build_app_settings)."""

    return DatabaseSettings()  # type: ignore[call-arg]


def _build_storage_settings() -> "StorageSettings":
    """Build object storage settings from environment."""

    return StorageSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_pepper: str | None = Field(
        None,
        description="Secret pepper prepended to API keys before hashing",
    )
    max_upload_bytes: int = Field(
        1_048_576,
        description="Maximum accepted document size in bytes",
        ge=1,
    )
    api_prefix: str = Field(
        "",
        description="Optional path prefix for the authenticated API (e.g. /api)",
    )
    front_page_path: str | None = Field(
        None,
        description="Markdown file served at GET /; falls back to ./frontpage.md",
    )
    trust_forwarded_for: bool = Field(
        True,
        description="Use the first X-Forwarded-For entry as the client IP",
    )

    account_rate_window_seconds: float = Field(
        1.0,
        description="Fixed window for authenticated calls, keyed by account",
        gt=0,
    )
    public_read_rate_window_seconds: float = Field(
        1.0,
        description="Fixed window for public reads, keyed by client IP",
        gt=0,
    )
    account_create_rate_window_seconds: float = Field(
        3600.0,
        description="Fixed window for account creation, keyed by client IP",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class DatabaseSettings(BaseSettings):
    """Relational metadata store configuration."""

    url: str = Field(
        ...,
        description="SQLAlchemy async URL (e.g. postgresql+asyncpg://user:pw@host/db)",
    )
    max_connections: int = Field(
        10,
        description="Connection pool size",
        ge=1,
    )
    pool_timeout_seconds: float = Field(
        10.0,
        description="Seconds to wait for a pooled connection",
        gt=0,
    )
    command_timeout_seconds: float = Field(
        30.0,
        description="Per-statement timeout for asyncpg connections",
        gt=0,
    )
    echo: bool = Field(
        False,
        description="Log emitted SQL statements",
    )
    create_schema: bool = Field(
        False,
        description="Create missing tables at startup (development and tests only)",
    )

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        case_sensitive=False,
    )


class StorageSettings(BaseSettings):
    """S3-compatible object store configuration."""

    backend: str = Field(
        "s3",
        validation_alias="STORAGE_BACKEND",
        description="Object store backend: s3 or memory",
    )
    endpoint: str | None = Field(
        None,
        description="Custom endpoint URL (MinIO, LocalStack, R2, ...)",
    )
    region: str = Field(
        "us-east-1",
        description="Bucket region",
    )
    bucket: str = Field(
        ...,
        description="Bucket holding revision blobs",
    )
    access_key_id: str | None = Field(
        None,
        description="Static access key; default credential chain when unset",
    )
    secret_access_key: str | None = Field(
        None,
        description="Static secret key; default credential chain when unset",
    )
    force_path_style: bool = Field(
        True,
        description="Use path-style bucket addressing",
    )
    create_bucket: bool = Field(
        True,
        description="Ensure the bucket exists at startup",
    )
    connect_timeout_seconds: float = Field(
        5.0,
        description="Connect timeout for object store calls",
        gt=0,
    )
    read_timeout_seconds: float = Field(
        30.0,
        description="Read timeout for object store calls",
        gt=0,
    )
    bucket_max_attempts: int = Field(
        6,
        description="Attempts to ensure the bucket exists before giving up",
        ge=1,
    )
    bucket_initial_backoff_ms: int = Field(
        200,
        description="First backoff delay between bucket bootstrap attempts",
        ge=0,
    )
    bucket_max_backoff_ms: int = Field(
        5000,
        description="Backoff ceiling between bucket bootstrap attempts",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="S3_",
        case_sensitive=False,
        populate_by_name=True,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10 * 1024 * 1024, description="Rotate after this many bytes (0 disables)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if required settings are missing
    (DATABASE_URL and S3_BUCKET).
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    database: DatabaseSettings = Field(default_factory=_build_database_settings)
    storage: StorageSettings = Field(default_factory=_build_storage_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
