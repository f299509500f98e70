"""Bot configuration loader."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG_FILE = "config.yaml"
DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_BASE_URL = "https://api.openai.com/v1"


@dataclass(frozen=True)
class DatabaseSettings:
    host: str
    port: int
    user: str
    password: str
    database: str
    pool_min_size: int
    pool_max_size: int


@dataclass(frozen=True)
class Settings:
    bot_token: str
    openai_api_key: str
    openai_model: str
    openai_base_url: str
    time_span: int
    rate_limit: int
    rate_limit_enabled: bool
    max_token: int
    context_count: int
    notification_channel: str
    image_rate_limit: int
    log_level: str
    database: DatabaseSettings

    @property
    def completion_enabled(self) -> bool:
        return bool(self.openai_api_key)


class SettingsError(ValueError):
    """Raised when the configuration file is missing or invalid."""


def _text(raw: dict[str, Any], key: str, default: str) -> str:
    value = raw.get(key)
    if not value:
        return default
    return str(value).strip() or default


def _positive_int(raw: dict[str, Any], key: str, default: int) -> int:
    value = raw.get(key)
    if not value:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise SettingsError(f"{key} must be an integer, got {value!r}") from exc
    if number <= 0:
        raise SettingsError(f"{key} must be positive, got {number}")
    return number


def _flag(raw: dict[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise SettingsError(f"{key} must be true or false, got {value!r}")
    return value


def load_settings(config_path: Path | str = DEFAULT_CONFIG_FILE) -> Settings:
    """Read and validate the YAML config file. Raises SettingsError on any problem."""
    path = Path(config_path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise SettingsError(f"Error reading {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise SettingsError(f"Config file must contain a mapping: {path}")

    bot_token = _text(raw, "BOT_TOKEN", "")
    if not bot_token:
        raise SettingsError(f"BOT_TOKEN is required in {path}")

    database = DatabaseSettings(
        host=_text(raw, "DB_HOST", "localhost"),
        port=_positive_int(raw, "DB_PORT", 5432),
        user=_text(raw, "DB_USER", "root"),
        password=str(raw.get("DB_PASSWORD") or ""),
        database=_text(raw, "DB_NAME", "test"),
        pool_min_size=_positive_int(raw, "DB_POOL_MIN_SIZE", 1),
        pool_max_size=_positive_int(raw, "DB_POOL_MAX_SIZE", 10),
    )
    if database.pool_min_size > database.pool_max_size:
        raise SettingsError("DB_POOL_MIN_SIZE cannot exceed DB_POOL_MAX_SIZE")

    log_level = _text(raw, "LOG_LEVEL", "INFO").upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise SettingsError(f"LOG_LEVEL is not a logging level: {log_level}")

    return Settings(
        bot_token=bot_token,
        openai_api_key=_text(raw, "OPENAI_API_KEY", ""),
        openai_model=_text(raw, "OPENAI_MODEL", DEFAULT_MODEL),
        openai_base_url=_text(raw, "OPENAI_BASE_URL", DEFAULT_BASE_URL),
        time_span=_positive_int(raw, "TIME_SPAN", 60),
        rate_limit=_positive_int(raw, "RATE_LIMIT", 3),
        rate_limit_enabled=_flag(raw, "RATE_LIMIT_ENABLED", False),
        max_token=_positive_int(raw, "MAX_TOKEN", 2000),
        context_count=_positive_int(raw, "CONTEXT_COUNT", 5),
        notification_channel=_text(raw, "NOTIFICATION_CHANNEL", ""),
        image_rate_limit=_positive_int(raw, "IMAGE_RATE_LIMIT", 2),
        log_level=log_level,
        database=database,
    )
