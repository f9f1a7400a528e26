"""Core configuration dataclasses.

We keep config parsing outside the core (see settings.py), but these
dataclasses define the shape the core expects so adapters and the app layer
can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class RouterConfig:
    """Routing settings consumed by the Router."""

    enabled: bool = True
    command_prefixes: str = "/."
    telegram_chat_id: int = 0


@dataclass(frozen=True)
class FilterConfig:
    """Inbound event filtering applied by the adapters."""

    freshness_window_seconds: float = 60.0


@dataclass(frozen=True)
class MediaConfig:
    """Media pipeline limits and staging area."""

    max_bytes: int = 50 * 1024 * 1024
    fetch_timeout_seconds: float = 30.0
    staging_dir: Path = Path("temp")
    staging_max_age_seconds: float = 3600.0


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool
    api_id: Optional[int]
    api_hash: Optional[str]
    bot_token: Optional[str]
    chat_id: Optional[int]
    send_timeout_seconds: float = 30.0
    session_name: str = "igbridge_bot"


@dataclass(frozen=True)
class InstagramConfig:
    enabled: bool
    username: Optional[str]
    password: Optional[str]
    session_path: Path = Path("instagram_session.json")
    poll_seconds: float = 5.0
    send_timeout_seconds: float = 30.0


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    console: bool = True
    file_enabled: bool = False
    file_path: str = "logs/igbridge.log"
    redact: bool = True
