"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Throttling options are read once into ``ThrottleSettings`` and then frozen
into a ``ThrottleConfig`` value that the resolvers and the middleware receive
explicitly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from throttler.core.errors import ValidationAppError
from throttler.schemas.throttle import FailMode, LimitLevel, TimeUnit


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


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required on admin routes",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for authentication",
    )
    trust_forwarded_for: bool = Field(
        False,
        description="Use the first X-Forwarded-For hop as client IP (behind a proxy)",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read/propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Connection options for the shared Redis store."""

    url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL (redis:// or rediss://)",
    )
    socket_timeout_seconds: float = Field(
        0.5,
        description="Socket timeout for every store call",
        gt=0,
    )
    key_prefix: str = Field(
        "throttle:",
        description="Prefix applied to every key written by the limiter",
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class ApiLimitRule(BaseModel):
    """Per-API override carrying its own limiting level."""

    limit_level: LimitLevel
    rate: tuple[int, int]


class ThrottleSettings(BaseSettings):
    """Request throttling configuration.

    Rates are ``[window_units, max_attempts]`` pairs where window units are
    expressed in ``rate_unit``.
    """

    enabled: bool = Field(True, description="Enable the throttle middleware")
    store: str = Field("redis", description="Counter store backend: redis or memory")
    rate_unit: TimeUnit = Field(TimeUnit.SECONDS, description="Unit of decay")
    limit_level: LimitLevel = Field(
        LimitLevel.USER,
        description="Default limiting level (user | device | ip | api)",
    )
    udid_name: str = Field(
        "mid",
        description="Query parameter carrying the device identifier",
    )
    method_rates: dict[str, tuple[int, int]] = Field(
        default_factory=lambda: {"get": (1, 10), "post": (2, 1)},
        description="Default rate per HTTP method bucket",
    )
    default_rate: tuple[int, int] = Field(
        (1, 10),
        description="Global default rate when no method bucket matches",
    )
    api_gateway: bool = Field(
        False,
        description="Extract the API name from a fixed path segment",
    )
    gateway_segment_index: int = Field(
        4,
        description="Index of the API-name segment in the '/'-split path",
        ge=1,
    )
    api_limit: dict[str, tuple[int, int] | ApiLimitRule] = Field(
        default_factory=dict,
        description="Per-API-name overrides (JSON object in env)",
    )
    error_code: int = Field(90429, description="Numeric code in rejection payloads")
    error_message: str = Field(
        "Too many requests, please try again later.",
        description="Human-readable message in rejection payloads",
    )
    rejection_status_code: int = Field(
        200,
        description="HTTP status of rejection responses",
        ge=100,
        le=599,
    )
    fail_mode: FailMode = Field(
        FailMode.OPEN,
        description="Behaviour when the store is unreachable: open or closed",
    )
    exempt_paths: list[str] = Field(
        default_factory=lambda: ["/health", "/health/ready"],
        description="Paths never throttled",
    )

    model_config = SettingsConfigDict(
        env_prefix="THROTTLE_",
        case_sensitive=False,
    )


def _build_app_settings() -> AppSettings:
    """Build app settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> LogSettings:
    return LogSettings()  # type: ignore[call-arg]


def _build_redis_settings() -> RedisSettings:
    return RedisSettings()  # type: ignore[call-arg]


def _build_throttle_settings() -> ThrottleSettings:
    return ThrottleSettings()  # type: ignore[call-arg]


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    throttle: ThrottleSettings = Field(default_factory=_build_throttle_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


@dataclass(frozen=True)
class RateOverride:
    """Normalized per-API override; ``level`` is None when not overridden."""

    window_units: int
    max_attempts: int
    level: LimitLevel | None = None


@dataclass(frozen=True)
class ThrottleConfig:
    """Immutable throttling configuration resolved once at startup."""

    rate_unit: TimeUnit
    limit_level: LimitLevel
    udid_name: str
    method_rates: Mapping[str, tuple[int, int]]
    default_rate: tuple[int, int]
    api_gateway: bool
    gateway_segment_index: int
    overrides: Mapping[str, RateOverride]
    error_code: int
    error_message: str
    rejection_status_code: int
    fail_mode: FailMode
    exempt_paths: frozenset[str]

    @classmethod
    def from_settings(cls, throttle: ThrottleSettings) -> "ThrottleConfig":
        """Validate and freeze throttle settings.

        Args:
            throttle: Settings loaded from the environment.

        Returns:
            ThrottleConfig ready to be shared by reference.

        Raises:
            ValidationAppError: If any rate is not a pair of positive integers.
        """

        method_rates = {
            method.lower(): _check_rate(rate, f"method_rates.{method}")
            for method, rate in throttle.method_rates.items()
        }
        overrides: dict[str, RateOverride] = {}
        for api_name, entry in throttle.api_limit.items():
            if isinstance(entry, ApiLimitRule):
                units, max_attempts = _check_rate(entry.rate, f"api_limit.{api_name}")
                overrides[api_name] = RateOverride(units, max_attempts, entry.limit_level)
            else:
                units, max_attempts = _check_rate(entry, f"api_limit.{api_name}")
                overrides[api_name] = RateOverride(units, max_attempts)

        return cls(
            rate_unit=throttle.rate_unit,
            limit_level=throttle.limit_level,
            udid_name=throttle.udid_name,
            method_rates=MappingProxyType(method_rates),
            default_rate=_check_rate(throttle.default_rate, "default_rate"),
            api_gateway=throttle.api_gateway,
            gateway_segment_index=throttle.gateway_segment_index,
            overrides=MappingProxyType(overrides),
            error_code=throttle.error_code,
            error_message=throttle.error_message,
            rejection_status_code=throttle.rejection_status_code,
            fail_mode=throttle.fail_mode,
            exempt_paths=frozenset(throttle.exempt_paths),
        )


def _check_rate(rate: tuple[int, int], name: str) -> tuple[int, int]:
    units, max_attempts = rate
    if units < 1 or max_attempts < 1:
        raise ValidationAppError(
            code="invalid_rate_config",
            message=f"{name} must be a pair of positive integers",
            details={"hint": "Use [window_units, max_attempts], e.g. [1, 10]"},
        )
    return int(units), int(max_attempts)


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
