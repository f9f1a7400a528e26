from __future__ import annotations

import os

import pytest

from core.errors import ConfigurationError
from settings import PROJECT_ROOT, database_path_from_url, load_settings

BASE_ENV = {
    "TELEGRAM_API_ID": "12345",
    "TELEGRAM_API_HASH": "hash",
    "TELEGRAM_BOT_TOKEN": "123:token",
    "TELEGRAM_CHAT_ID": "-1001234567890",
    "INSTAGRAM_USERNAME": "bridge_account",
    "INSTAGRAM_PASSWORD": "secret",
    "DATABASE_URL": "sqlite:///bridge.db",
}


def test_defaults() -> None:
    settings = load_settings(dict(BASE_ENV))

    assert settings.telegram.chat_id == -1001234567890
    assert settings.router.telegram_chat_id == -1001234567890
    assert settings.router.command_prefixes == "/."
    assert settings.router.enabled
    assert settings.filters.freshness_window_seconds == 60.0
    assert settings.media.max_bytes == 50 * 1024 * 1024
    assert settings.media.fetch_timeout_seconds == 30.0
    assert settings.database_path == os.path.join(PROJECT_ROOT, "bridge.db")
    assert settings.admin_users == ()
    assert set(settings.secrets()) == {"123:token", "hash", "secret"}


def test_all_missing_keys_are_reported_together() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        load_settings({})

    problems = excinfo.value.problems
    for key in (
        "TELEGRAM_API_ID",
        "TELEGRAM_API_HASH",
        "TELEGRAM_BOT_TOKEN",
        "TELEGRAM_CHAT_ID",
        "INSTAGRAM_USERNAME",
        "DATABASE_URL",
    ):
        assert f"{key} is required" in problems


def test_disabled_channel_does_not_require_its_keys() -> None:
    env = {"DATABASE_URL": "sqlite:///bridge.db", "INSTAGRAM_USERNAME": "bridge", "TELEGRAM_ENABLED": "false"}

    settings = load_settings(env)

    assert not settings.telegram.enabled
    assert settings.telegram.chat_id is None


def test_malformed_values_are_reported() -> None:
    env = dict(
        BASE_ENV,
        TELEGRAM_CHAT_ID="not-a-number",
        FRESHNESS_WINDOW_SECONDS="-5",
        BRIDGE_ENABLED="maybe",
    )

    with pytest.raises(ConfigurationError) as excinfo:
        load_settings(env)

    problems = excinfo.value.problems
    assert any(problem.startswith("TELEGRAM_CHAT_ID must be an integer") for problem in problems)
    assert "FRESHNESS_WINDOW_SECONDS must be positive" in problems
    assert any(problem.startswith("BRIDGE_ENABLED must be true or false") for problem in problems)


def test_overrides() -> None:
    env = dict(
        BASE_ENV,
        COMMAND_PREFIXES="!",
        FRESHNESS_WINDOW_SECONDS="120",
        MAX_MEDIA_BYTES="1024",
        ADMIN_USERS="1, 2,,3",
        BRIDGE_ENABLED="off",
        LOG_LEVEL="debug",
    )

    settings = load_settings(env)

    assert settings.router.command_prefixes == "!"
    assert settings.filters.freshness_window_seconds == 120.0
    assert settings.media.max_bytes == 1024
    assert settings.admin_users == ("1", "2", "3")
    assert not settings.router.enabled
    assert settings.logging.level == "DEBUG"


def test_database_url_forms(tmp_path) -> None:
    absolute = str(tmp_path / "bridge.db")

    assert database_path_from_url("sqlite:///" + absolute) == absolute
    assert database_path_from_url("data/bridge.db") == os.path.join(PROJECT_ROOT, "data/bridge.db")
    assert database_path_from_url(":memory:") == ":memory:"
    with pytest.raises(ValueError):
        database_path_from_url("postgres://localhost/bridge")
