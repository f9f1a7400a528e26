"""Platform client factories for igbridge.

We explicitly manage each client's lifecycle (connect/login here,
disconnect in app.py) so it is obvious when sessions are created and when
they end.
"""

from __future__ import annotations

import asyncio
import logging

from instagrapi import Client
from instagrapi.exceptions import ClientError, LoginRequired
from telethon import TelegramClient

from core.config import InstagramConfig, TelegramConfig
from core.errors import ConfigurationError

LOGGER = logging.getLogger(__name__)


def build_telegram_client(config: TelegramConfig) -> TelegramClient:
    """Create a Telethon client for the bridge bot.

    sequential_updates keeps handler calls in arrival order so messages
    from one topic reach the router in the order Telegram sent them.
    """

    LOGGER.info("Initializing Telegram client")
    return TelegramClient(
        config.session_name,
        int(config.api_id),
        config.api_hash,
        sequential_updates=True,
    )


async def start_telegram(client: TelegramClient, config: TelegramConfig) -> None:
    await client.start(bot_token=config.bot_token)
    me = await client.get_me()
    LOGGER.info("Telegram bot connected as @%s", getattr(me, "username", None))


def build_instagram_client(config: InstagramConfig) -> Client:
    client = Client()
    client.delay_range = [1, 3]
    return client


def _login_instagram(client: Client, config: InstagramConfig) -> None:
    session_path = config.session_path
    if session_path.exists():
        client.load_settings(session_path)
        try:
            if config.password:
                client.login(config.username, config.password)
            else:
                client.account_info()
            LOGGER.info("Logged in to Instagram using saved session")
            client.dump_settings(session_path)
            return
        except LoginRequired:
            LOGGER.warning("Saved Instagram session is no longer valid")

    # Fresh login is only attempted when a password is configured.
    if not config.password:
        raise ConfigurationError(
            ["INSTAGRAM_PASSWORD is required for fresh login (no valid cached session)"]
        )
    LOGGER.info("Attempting fresh Instagram login")
    client.login(config.username, config.password)
    session_path.parent.mkdir(parents=True, exist_ok=True)
    client.dump_settings(session_path)
    LOGGER.info("Fresh Instagram login successful, session saved")


async def login_instagram(client: Client, config: InstagramConfig) -> None:
    """Restore the cached session, or log in with the password."""

    try:
        await asyncio.to_thread(_login_instagram, client, config)
    except ClientError as exc:
        raise ConfigurationError([f"Instagram login failed: {exc}"]) from exc
    LOGGER.info("Connected to Instagram as @%s (ID: %s)", config.username, client.user_id)
