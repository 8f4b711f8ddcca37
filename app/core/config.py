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

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file and os.getenv("TESTING") != "true":
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class LLMSettings(BaseSettings):
    """LLM provider configuration for the AI chat proxy."""

    provider: str = Field(
        "openai",
        description="LLM provider name (e.g., openai)",
    )
    model: str = Field(
        "gpt-4o-mini",
        description="Default model name when the request does not choose one",
    )
    api_key: str | None = Field(
        None,
        description="API key for cloud providers (required for OpenAI)",
    )
    base_url: str | None = Field(
        None,
        description="Custom API endpoint (OpenAI-compatible gateways)",
    )
    timeout_seconds: float = Field(
        45.0,
        description="Request timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        case_sensitive=False,
    )


class CacheSettings(BaseSettings):
    """Remote cache (Upstash Redis REST) configuration."""

    backend: str = Field(
        "upstash",
        description="Cache backend: 'upstash' (REST) or 'memory' (per-process)",
    )
    rest_url: str | None = Field(
        None,
        description="Upstash Redis REST endpoint URL",
    )
    rest_token: str | None = Field(
        None,
        description="Upstash Redis REST bearer token",
    )
    daily_request_limit: int = Field(
        9000,
        description="Maximum store commands per calendar day (buffer under the 10K plan cap)",
        ge=1,
    )
    timeout_seconds: float = Field(
        5.0,
        description="Timeout for a single store command in seconds",
        gt=0,
    )
    ttl_user_profile: int = Field(7200, description="TTL for cached user profiles (seconds)")
    ttl_notes: int = Field(1800, description="TTL for cached note pages (seconds)")
    ttl_ai_results: int = Field(172800, description="TTL for cached AI results (seconds)")

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
    )


class VerificationSettings(BaseSettings):
    """One-time code and reset-token lifetimes."""

    code_ttl_seconds: int = Field(600, description="Email verification code lifetime", ge=1)
    reset_ttl_seconds: int = Field(3600, description="Password reset token lifetime", ge=1)
    max_attempts: int = Field(5, description="Wrong-code attempts before lockout", ge=1)
    resend_cooldown_seconds: int = Field(60, description="Minimum gap between code sends", ge=1)

    model_config = SettingsConfigDict(
        env_prefix="VERIFICATION_",
        case_sensitive=False,
    )


class QuotaSettings(BaseSettings):
    """Per-plan daily ceilings for metered AI requests."""

    free_daily_limit: int = Field(10, description="Daily AI requests on the free plan", ge=0)
    pro_daily_limit: int = Field(100, description="Daily AI requests on the pro plan", ge=0)
    counter_ttl_seconds: int = Field(86400, description="Lifetime of a daily counter key", ge=1)
    lowest_tier: str = Field("free", description="Plan that gets upgrade suggestions on denial")

    model_config = SettingsConfigDict(
        env_prefix="QUOTA_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="'json' or 'plain'")
    output: str = Field("stdout", description="'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10_485_760, description="Rotate file after this many bytes (0 disables)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for authentication",
    )
    pro_api_keys: str | None = Field(
        None,
        description="Comma-separated subset of API keys on the pro plan",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    llm: LLMSettings = Field(default_factory=LLMSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    verification: VerificationSettings = Field(default_factory=VerificationSettings)
    quota: QuotaSettings = Field(default_factory=QuotaSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    app: AppSettings = Field(default_factory=AppSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
