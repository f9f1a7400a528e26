"""Environment configuration for igbridge.

All settings come from environment variables (optionally via a .env file
loaded with python-dotenv). Validation collects every problem before
failing so the operator can fix the environment in one pass.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from core.config import (
    FilterConfig,
    InstagramConfig,
    LoggingConfig,
    MediaConfig,
    RouterConfig,
    TelegramConfig,
)
from core.errors import ConfigurationError

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    database_path: str
    router: RouterConfig
    filters: FilterConfig
    media: MediaConfig
    telegram: TelegramConfig
    instagram: InstagramConfig
    logging: LoggingConfig
    admin_users: tuple[str, ...] = ()

    def secrets(self) -> list[str]:
        """Values that must never appear in log output."""

        values = [
            self.telegram.bot_token,
            self.telegram.api_hash,
            self.instagram.password,
        ]
        return [value for value in values if value]


class _Reader:
    """Typed environment access that records problems instead of raising."""

    def __init__(self, environ: Mapping[str, str]) -> None:
        self._env = environ
        self.problems: list[str] = []

    def text(self, key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
        value = (self._env.get(key) or "").strip()
        if value:
            return value
        if required:
            self.problems.append(f"{key} is required")
        return default

    def flag(self, key: str, default: bool) -> bool:
        raw = (self._env.get(key) or "").strip().lower()
        if not raw:
            return default
        if raw in _TRUE:
            return True
        if raw in _FALSE:
            return False
        self.problems.append(f"{key} must be true or false, got {raw!r}")
        return default

    def integer(self, key: str, default: Optional[int] = None, required: bool = False) -> Optional[int]:
        raw = self.text(key, required=required)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError:
            self.problems.append(f"{key} must be an integer, got {raw!r}")
            return default

    def number(self, key: str, default: float) -> float:
        raw = self.text(key)
        if raw is None:
            return default
        try:
            value = float(raw)
        except ValueError:
            self.problems.append(f"{key} must be a number, got {raw!r}")
            return default
        if value <= 0:
            self.problems.append(f"{key} must be positive")
            return default
        return value


def database_path_from_url(url: str) -> str:
    """Accept ``sqlite:///relative.db``, ``sqlite:////abs.db`` or a bare path."""

    if url.startswith("sqlite:///"):
        path = url[len("sqlite:///"):]
    elif "://" in url:
        raise ValueError(f"Unsupported DATABASE_URL scheme: {url.split('://', 1)[0]}")
    else:
        path = url
    if path != ":memory:" and not os.path.isabs(path):
        path = os.path.join(PROJECT_ROOT, path)
    return path


def _resolve(path: str) -> Path:
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    return Path(PROJECT_ROOT) / candidate


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from the environment or raise ConfigurationError."""

    if environ is None:
        load_dotenv()
        environ = os.environ
    read = _Reader(environ)

    telegram_enabled = read.flag("TELEGRAM_ENABLED", True)
    instagram_enabled = read.flag("INSTAGRAM_ENABLED", True)
    bridge_enabled = read.flag("BRIDGE_ENABLED", True)

    telegram = TelegramConfig(
        enabled=telegram_enabled,
        api_id=read.integer("TELEGRAM_API_ID", required=telegram_enabled),
        api_hash=read.text("TELEGRAM_API_HASH", required=telegram_enabled),
        bot_token=read.text("TELEGRAM_BOT_TOKEN", required=telegram_enabled),
        chat_id=read.integer("TELEGRAM_CHAT_ID", required=telegram_enabled),
        send_timeout_seconds=read.number("SEND_TIMEOUT_SECONDS", 30.0),
        session_name=read.text("TELEGRAM_SESSION_NAME", "igbridge_bot"),
    )
    instagram = InstagramConfig(
        enabled=instagram_enabled,
        username=read.text("INSTAGRAM_USERNAME", required=instagram_enabled),
        # A cached session can stand in for the password; see client.py.
        password=read.text("INSTAGRAM_PASSWORD"),
        session_path=_resolve(read.text("INSTAGRAM_SESSION_PATH", "instagram_session.json")),
        poll_seconds=read.number("INSTAGRAM_POLL_SECONDS", 5.0),
        send_timeout_seconds=read.number("SEND_TIMEOUT_SECONDS", 30.0),
    )

    database_url = read.text("DATABASE_URL", required=True)
    database_path = ""
    if database_url:
        try:
            database_path = database_path_from_url(database_url)
        except ValueError as exc:
            read.problems.append(str(exc))

    max_bytes = read.integer("MAX_MEDIA_BYTES", 50 * 1024 * 1024)
    if max_bytes is not None and max_bytes <= 0:
        read.problems.append("MAX_MEDIA_BYTES must be positive")

    media = MediaConfig(
        max_bytes=max_bytes or 50 * 1024 * 1024,
        fetch_timeout_seconds=read.number("MEDIA_FETCH_TIMEOUT_SECONDS", 30.0),
        staging_dir=_resolve(read.text("STAGING_DIR", "temp")),
        staging_max_age_seconds=read.number("STAGING_MAX_AGE_SECONDS", 3600.0),
    )
    router = RouterConfig(
        enabled=bridge_enabled,
        command_prefixes=read.text("COMMAND_PREFIXES", "/."),
        telegram_chat_id=telegram.chat_id or 0,
    )
    filters = FilterConfig(freshness_window_seconds=read.number("FRESHNESS_WINDOW_SECONDS", 60.0))
    logging_config = LoggingConfig(
        level=(read.text("LOG_LEVEL", "INFO") or "INFO").upper(),
        console=read.flag("LOG_CONSOLE", True),
        file_enabled=read.flag("LOG_FILE", False),
        file_path=read.text("LOG_FILE_PATH", "logs/igbridge.log"),
        redact=read.flag("LOG_REDACT", True),
    )
    admins = tuple(
        user.strip() for user in (read.text("ADMIN_USERS", "") or "").split(",") if user.strip()
    )

    if read.problems:
        raise ConfigurationError(read.problems)

    return Settings(
        database_path=database_path,
        router=router,
        filters=filters,
        media=media,
        telegram=telegram,
        instagram=instagram,
        logging=logging_config,
        admin_users=admins,
    )


def load_instagram_settings(environ: Optional[Mapping[str, str]] = None) -> InstagramConfig:
    """Instagram-only settings for the interactive login command."""

    if environ is None:
        load_dotenv()
        environ = os.environ
    read = _Reader(environ)
    config = InstagramConfig(
        enabled=True,
        username=read.text("INSTAGRAM_USERNAME"),
        password=read.text("INSTAGRAM_PASSWORD"),
        session_path=_resolve(read.text("INSTAGRAM_SESSION_PATH", "instagram_session.json")),
    )
    if read.problems:
        raise ConfigurationError(read.problems)
    return config
