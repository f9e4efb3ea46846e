"""
Configuration module for chatkeeper.

This module centralizes the settings of the chat history store and the
conversation backend, loading values from environment variables (and an
optional ``.env`` file) with sensible defaults.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from chatkeeper.utils.errors import ConfigError
from chatkeeper.utils.logger import get_logger

logger = get_logger(__name__)

READ_POLICIES = ("recent", "oldest")


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of the runtime configuration."""

    db_url: str
    table_name: str = "chat_messages"
    max_storage_mb: float = 480.0
    prune_target_ratio: float = 0.9
    recent_message_limit: int = 200
    read_policy: str = "recent"
    db_timeout_seconds: float = 5.0
    native_stats: bool = True
    prune_in_background: bool = False
    admin_token: Optional[str] = None
    openai_api_key: Optional[str] = None
    chat_model: str = "gpt-4o-mini"

    @property
    def max_bytes(self) -> int:
        return int(self.max_storage_mb * 1024 * 1024)

    def validate(self) -> "Settings":
        """Raise ``ConfigError`` if any value is out of range."""
        if not self.db_url:
            raise ConfigError("CHATKEEPER_DB_URL is required")
        if self.max_storage_mb <= 0:
            raise ConfigError(f"CHAT_MAX_STORAGE_MB must be positive, got {self.max_storage_mb}")
        if not 0 < self.prune_target_ratio <= 1:
            raise ConfigError(
                f"CHAT_PRUNE_TARGET_RATIO must be in (0, 1], got {self.prune_target_ratio}"
            )
        if self.recent_message_limit <= 0:
            raise ConfigError("CHAT_RECENT_MESSAGE_LIMIT must be positive")
        if self.read_policy not in READ_POLICIES:
            raise ConfigError(f"CHAT_READ_POLICY must be one of {READ_POLICIES}, got {self.read_policy!r}")
        if self.db_timeout_seconds <= 0:
            raise ConfigError("CHAT_DB_TIMEOUT_SECONDS must be positive")
        return self


def _number(env: Mapping[str, str], name: str, default: str, cast=float):
    raw = env.get(name, default)
    try:
        return cast(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def _flag(env: Mapping[str, str], name: str, default: str) -> bool:
    return env.get(name, default).strip().lower() in {"1", "true", "yes"}


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build ``Settings`` from ``env`` (defaults to ``os.environ`` after loading ``.env``)."""
    if env is None:
        load_dotenv()
        env = os.environ

    db_url = env.get("CHATKEEPER_DB_URL", "").strip()
    if not db_url:
        logger.error("Missing required environment variable: CHATKEEPER_DB_URL")
        raise ConfigError("Missing CHATKEEPER_DB_URL in environment or .env")

    settings = Settings(
        db_url=db_url,
        table_name=env.get("CHAT_TABLE_NAME", "chat_messages"),
        max_storage_mb=_number(env, "CHAT_MAX_STORAGE_MB", "480"),
        prune_target_ratio=_number(env, "CHAT_PRUNE_TARGET_RATIO", "0.9"),
        recent_message_limit=_number(env, "CHAT_RECENT_MESSAGE_LIMIT", "200", int),
        read_policy=env.get("CHAT_READ_POLICY", "recent").strip().lower(),
        db_timeout_seconds=_number(env, "CHAT_DB_TIMEOUT_SECONDS", "5"),
        native_stats=_flag(env, "CHAT_NATIVE_STATS", "true"),
        prune_in_background=_flag(env, "CHAT_PRUNE_IN_BACKGROUND", "false"),
        admin_token=env.get("CHAT_ADMIN_TOKEN") or None,
        openai_api_key=env.get("OPENAI_API_KEY") or None,
        chat_model=env.get("CHAT_MODEL", "gpt-4o-mini"),
    )
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set - model calls will not work")
    return settings.validate()
