"""Configuration management for Expense Autopilot."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_REPO_ROOT = Path(__file__).resolve().parents[1]
_DEFAULT_CONFIG_PATH = _REPO_ROOT / "config" / "expense-autopilot.yml"
_USER_CONFIG_PATHS = [
    Path("~/.config/expense-autopilot/config.yml").expanduser(),
    Path("/config/expense-autopilot.yml"),
]
_USER_SECRETS_PATHS = [
    Path("~/.config/expense-autopilot/secrets.yml").expanduser(),
    Path("/config/secrets.yml"),
]


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML mapping from disk, returning an empty mapping if missing."""
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data


def _yaml_settings_source(paths: list[Path]):
    """Create a Pydantic settings source for a list of YAML paths."""

    def source() -> dict[str, Any]:
        merged: dict[str, Any] = {}
        for path in paths:
            merged.update(_load_yaml(path))
        return merged

    return source


def _set_nested_value(target: dict[str, Any], path: str, value: Any) -> None:
    """Set a dotted-path value on a nested mapping, creating containers."""
    parts = path.split(".")
    cursor = target
    for key in parts[:-1]:
        node = cursor.get(key)
        if not isinstance(node, dict):
            node = {}
            cursor[key] = node
        cursor = node
    cursor[parts[-1]] = value


def _parse_env_value(raw: str, kind: str) -> Any:
    """Parse an environment value into the requested primitive type."""
    if kind == "int":
        return int(raw)
    if kind == "float":
        return float(raw)
    if kind == "bool":
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    if kind == "json":
        return json.loads(raw)
    return raw


def _env_settings_source():
    """Create a settings source that maps environment variables to config keys."""
    mapping = {
        "LOG_LEVEL": ("log_level", "str"),
        "LOG_JSON": ("log_json", "bool"),
        "DATABASE_URL": ("database.url", "str"),
        "EXPENSES_BASE_URL": ("expenses.base_url", "str"),
        "EXPENSES_API_TOKEN": ("expenses.api_token", "str"),
        "EXPENSES_TIMEOUT": ("expenses.timeout", "int"),
        "EXPENSES_MAX_ATTEMPTS": ("expenses.max_attempts", "int"),
        "SCHEDULER_DEFAULT_TIMEZONE": ("scheduler.default_timezone", "str"),
        "SCHEDULER_TIMER_BACKEND": ("scheduler.timer_backend", "str"),
        "NOTIFICATIONS_BACKEND": ("notifications.backend", "str"),
        "NOTIFY_ON_SUCCESS": ("notifications.notify_on_success", "bool"),
        "SIGNAL_URL": ("notifications.signal_url", "str"),
        "SIGNAL_PHONE_NUMBER": ("notifications.signal_from_number", "str"),
        "SIGNAL_RECIPIENTS": ("notifications.signal_recipients", "json"),
        "CELERY_BROKER_URL": ("celery.broker_url", "str"),
        "CELERY_RESULT_BACKEND": ("celery.result_backend", "str"),
        "CELERY_QUEUE_NAME": ("celery.queue_name", "str"),
    }

    def source() -> dict[str, Any]:
        data: dict[str, Any] = {}
        for env_key, (path, kind) in mapping.items():
            raw = os.environ.get(env_key)
            if raw is None:
                continue
            _set_nested_value(data, path, _parse_env_value(raw, kind))
        return data

    return source


class DatabaseConfig(BaseModel):
    """Database connection configuration for the key-value store."""

    url: str = "sqlite:///data/expense-autopilot.db"


class ExpensesConfig(BaseModel):
    """Remote expense API connection and transport retry settings."""

    base_url: str = "https://app.navan.com/api"
    api_token: str | None = None
    token_prefix: str = "Bearer"
    token_min_length: int = 20
    timeout: int = 30
    connect_timeout: int = 10
    max_attempts: int = 3
    backoff_factor: float = 1.0
    max_backoff: float = 30.0

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, value: int) -> int:
        """Ensure max attempts is positive."""
        if value < 1:
            raise ValueError("expenses.max_attempts must be >= 1.")
        return value

    @field_validator("timeout", "connect_timeout")
    @classmethod
    def validate_timeouts(cls, value: int) -> int:
        """Ensure transport timeouts are positive."""
        if value < 1:
            raise ValueError("expenses timeouts must be >= 1 second.")
        return value

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        """Strip trailing slashes so paths can be appended safely."""
        return value.strip().rstrip("/")


class SchedulerConfig(BaseModel):
    """Template scheduling defaults and failure notification policy."""

    default_timezone: str = "UTC"
    timer_backend: str = "in_process"
    min_custom_interval_ms: int = 5 * 60 * 1000
    max_custom_interval_ms: int = 365 * 24 * 60 * 60 * 1000
    failure_notification_threshold: int = 1
    failure_notification_throttle_seconds: int = 3600
    resolve_retry_delay_ms: int = 60 * 1000

    @field_validator("default_timezone")
    @classmethod
    def validate_default_timezone(cls, value: str) -> str:
        """Ensure the default timezone resolves to a ZoneInfo entry."""
        try:
            ZoneInfo(value)
        except ZoneInfoNotFoundError as exc:
            raise ValueError(f"Invalid timezone: {value}") from exc
        return value

    @field_validator("timer_backend")
    @classmethod
    def validate_timer_backend(cls, value: str) -> str:
        """Ensure the timer backend is supported."""
        normalized = value.strip().lower()
        if normalized not in {"in_process", "celery"}:
            raise ValueError("scheduler.timer_backend must be in_process or celery.")
        return normalized

    @field_validator("min_custom_interval_ms")
    @classmethod
    def validate_min_custom_interval(cls, value: int) -> int:
        """Ensure the minimum custom interval is positive."""
        if value < 1:
            raise ValueError("scheduler.min_custom_interval_ms must be >= 1.")
        return value

    @field_validator("resolve_retry_delay_ms")
    @classmethod
    def validate_resolve_retry_delay(cls, value: int) -> int:
        """Ensure the lookup retry delay is positive."""
        if value < 1:
            raise ValueError("scheduler.resolve_retry_delay_ms must be >= 1.")
        return value

    @field_validator("failure_notification_threshold")
    @classmethod
    def validate_failure_notification_threshold(cls, value: int) -> int:
        """Ensure failure notification threshold is positive."""
        if value < 1:
            raise ValueError("scheduler.failure_notification_threshold must be >= 1.")
        return value

    @field_validator("failure_notification_throttle_seconds")
    @classmethod
    def validate_failure_notification_throttle_seconds(cls, value: int) -> int:
        """Ensure failure notification throttle window is non-negative."""
        if value < 0:
            raise ValueError("scheduler.failure_notification_throttle_seconds must be >= 0.")
        return value

    @model_validator(mode="after")
    def validate_interval_bounds(self) -> "SchedulerConfig":
        """Ensure the custom interval bounds are ordered."""
        if self.max_custom_interval_ms < self.min_custom_interval_ms:
            raise ValueError(
                "scheduler.max_custom_interval_ms must be >= scheduler.min_custom_interval_ms."
            )
        return self


class NotificationsConfig(BaseModel):
    """User notification routing."""

    backend: str = "log"
    notify_on_success: bool = False
    signal_url: str = "http://signal-api:8080"
    signal_from_number: str | None = None
    signal_recipients: list[str] = Field(default_factory=list)

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, value: str) -> str:
        """Ensure the notification backend is supported."""
        normalized = value.strip().lower()
        if normalized not in {"log", "signal"}:
            raise ValueError("notifications.backend must be log or signal.")
        return normalized

    @model_validator(mode="after")
    def validate_signal_settings(self) -> "NotificationsConfig":
        """Require a sender and recipients when Signal delivery is selected."""
        if self.backend != "signal":
            return self
        if not self.signal_from_number:
            raise ValueError("notifications.signal_from_number is required for signal.")
        if not self.signal_recipients:
            raise ValueError("notifications.signal_recipients is required for signal.")
        return self


class CeleryConfig(BaseModel):
    """Celery broker settings for the distributed timer backend."""

    broker_url: str = "redis://redis:6379/1"
    result_backend: str = "redis://redis:6379/2"
    queue_name: str = "expense-autopilot"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and YAML files."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        """Layer settings sources in descending order of precedence."""
        return (
            init_settings,
            _env_settings_source(),
            _yaml_settings_source(_USER_SECRETS_PATHS),
            _yaml_settings_source(_USER_CONFIG_PATHS),
            _yaml_settings_source([_DEFAULT_CONFIG_PATH]),
        )

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    expenses: ExpensesConfig = Field(default_factory=ExpensesConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    celery: CeleryConfig = Field(default_factory=CeleryConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Normalize the log level name."""
        normalized = value.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log_level: {value}")
        return normalized


# Global settings instance
settings = Settings()
