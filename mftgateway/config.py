from __future__ import annotations

import os
from enum import Enum
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from mftgateway.logging import get_logger

logger = get_logger(__name__)


class ModelBackend(str, Enum):
    """Completion backends the orchestrator can be built with."""

    OPENAI = "openai"
    STUB = "stub"


class AppEnv(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TEST = "test"


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the gateway, sourced from the environment."""

    app_env: AppEnv = env_field(AppEnv.DEVELOPMENT, "APP_ENV")
    service_name: str = env_field("My Friend Teacher API", "SERVICE_NAME")

    # Shared secret callers present in the x-api-key header
    api_secret_key: str | None = env_field(None, "API_SECRET_KEY")

    # Completion provider
    model_backend: ModelBackend = env_field(ModelBackend.OPENAI, "MODEL_BACKEND")
    openai_api_key: str | None = env_field(None, "OPENAI_API_KEY")
    openai_base_url: str | None = env_field(None, "OPENAI_BASE_URL")
    model_name: str = env_field("gpt-3.5-turbo", "OPENAI_MODEL")
    provider_timeout_seconds: float = env_field(
        30.0,
        "PROVIDER_TIMEOUT_SECONDS",
        description="Upper bound on a single completion call, in seconds",
    )

    # Per-identity fixed window
    rate_limit_window_ms: int = env_field(60_000, "RATE_LIMIT_WINDOW")
    rate_limit_max: int = env_field(10, "RATE_LIMIT_MAX")
    rate_limit_sweep_interval_seconds: int = env_field(
        300,
        "RATE_LIMIT_SWEEP_INTERVAL",
        description="How often closed rate windows are swept from memory",
    )
    rate_limit_grace_ms: int = env_field(
        60_000,
        "RATE_LIMIT_GRACE_MS",
        description="How long a closed window is kept before the sweep drops it",
    )

    cors_allow_origin: str = env_field("*", "CORS_ALLOW_ORIGIN")

    host: str | None = env_field(None, "HOST")
    port: int = env_field(3000, "PORT")

    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("model_backend", mode="before")
    @classmethod
    def _validate_backend(cls, value: Any) -> ModelBackend:
        if isinstance(value, str):
            value = value.strip().lower()
        return ModelBackend(value)

    @field_validator("app_env", mode="before")
    @classmethod
    def _validate_app_env(cls, value: Any) -> AppEnv:
        if isinstance(value, str):
            value = value.strip().lower()
        return AppEnv(value)

    @field_validator("api_secret_key", "openai_api_key", "openai_base_url", "host")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @field_validator(
        "rate_limit_window_ms",
        "rate_limit_max",
        "rate_limit_sweep_interval_seconds",
        "port",
    )
    @classmethod
    def _ensure_positive_int(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("rate_limit_grace_ms")
    @classmethod
    def _ensure_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("provider_timeout_seconds")
    @classmethod
    def _ensure_positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("provider timeout must be positive")
        return value

    @property
    def bind_host(self) -> str:
        """Host for standalone serving; public interface only in production."""
        if self.host:
            return self.host
        return "0.0.0.0" if self.app_env == AppEnv.PRODUCTION else "localhost"


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
