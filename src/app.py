"""Application entry point for the igbridge Telegram/Instagram bridge."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint

import settings as settings_module
from adapters.instagram_adapter import InstagramDirectAdapter
from adapters.media import MediaPipeline
from adapters.offline import OfflineAdapter
from adapters.sqlite_store import SQLiteThreadStore
from adapters.telegram_adapter import TelegramTopicsAdapter
from client import (
    build_instagram_client,
    build_telegram_client,
    login_instagram,
    start_telegram,
)
from core.commands import CommandHandler
from core.config import LoggingConfig
from core.errors import ConfigurationError, TransportError
from core.formatting import format_mapping_list
from core.models import Platform
from core.pump import AdapterPump
from core.router import Router
from core.state import BridgeSwitch

NAME = "IGBRIDGE"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _configure_logging(config: LoggingConfig, secrets: list[str]) -> None:
    level = getattr(logging, config.level.upper(), logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(secrets if config.redact else [], fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    if config.file_enabled:
        path = config.file_path
        if not os.path.isabs(path):
            path = os.path.join(settings_module.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # Telethon is chatty at INFO about reconnects and update gaps.
    logging.getLogger("telethon").setLevel(max(level, logging.WARNING))


def _load_settings_or_exit() -> settings_module.Settings:
    try:
        return settings_module.load_settings()
    except ConfigurationError as exc:
        print("Configuration is invalid:", file=sys.stderr)
        for problem in exc.problems:
            print(f"  - {problem}", file=sys.stderr)
        raise SystemExit(2)


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for signame in ("SIGINT", "SIGTERM"):
        sig = getattr(signal, signame, None)
        if sig is None:
            continue
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops lack add_signal_handler.
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop.set))


async def _notify(adapter, text: str) -> None:
    try:
        await adapter.send_text("", text)
    except TransportError as exc:
        LOGGER.warning("Could not send notice: %s", exc)


async def _serve(settings: settings_module.Settings) -> None:
    store = SQLiteThreadStore(settings.database_path)
    store.init_db()

    media = MediaPipeline(settings.media)
    removed = media.sweep()
    LOGGER.info("Staging cleanup removed %s files", removed)
    sweeper = asyncio.create_task(media.run_sweeper(), name="media-sweeper")

    telegram_client = None
    telegram = None
    adapters = []
    pumps: list[AdapterPump] = []
    receivers: list[asyncio.Task] = []
    stop_waiter: Optional[asyncio.Task] = None
    try:
        if settings.telegram.enabled:
            telegram_client = build_telegram_client(settings.telegram)
            await start_telegram(telegram_client, settings.telegram)
            telegram = TelegramTopicsAdapter(
                telegram_client,
                settings.telegram,
                media,
                settings.filters.freshness_window_seconds,
                settings.router.command_prefixes,
            )
        else:
            LOGGER.warning("Telegram is disabled in configuration")
            telegram = OfflineAdapter(Platform.TELEGRAM)

        if settings.instagram.enabled:
            instagram_client = build_instagram_client(settings.instagram)
            await login_instagram(instagram_client, settings.instagram)
            instagram = InstagramDirectAdapter(
                instagram_client,
                settings.instagram,
                media,
                settings.filters.freshness_window_seconds,
            )
        else:
            LOGGER.warning("Instagram is disabled in configuration")
            instagram = OfflineAdapter(Platform.INSTAGRAM)

        switch = BridgeSwitch(settings.router.enabled)
        commands = CommandHandler(
            store,
            switch,
            settings.router.command_prefixes,
            admin_users=settings.admin_users,
            channel_status=lambda: {
                "📱 Instagram": instagram.is_connected(),
                "💬 Telegram": telegram.is_connected(),
            },
        )
        router = Router(store, telegram, instagram, settings.router, switch, commands)

        adapters = [telegram, instagram]
        pumps = [AdapterPump(adapter.platform.value, router.handle) for adapter in adapters]
        stop = asyncio.Event()
        _install_signal_handlers(stop)

        for pump in pumps:
            pump.start()
        receivers = [
            asyncio.create_task(adapter.receive(pump.offer), name=f"receive-{pump.name}")
            for adapter, pump in zip(adapters, pumps)
        ]
        LOGGER.info("Bridge is running (bridge %s)", "enabled" if switch.enabled else "disabled")
        await _notify(telegram, "🚀 <b>Bridge started</b>\nUse /status to check the bridge.")

        stop_waiter = asyncio.create_task(stop.wait())
        done, _ = await asyncio.wait(
            [stop_waiter, *receivers], return_when=asyncio.FIRST_COMPLETED
        )
        for task in done:
            if task is not stop_waiter and not task.cancelled() and task.exception() is not None:
                LOGGER.error("Receiver stopped unexpectedly", exc_info=task.exception())
    finally:
        LOGGER.info("Shutting down gracefully...")
        if stop_waiter is not None:
            stop_waiter.cancel()
        if receivers:
            await _notify(telegram, "📴 Bridge is shutting down...")
        # Stop intake first, then let in-flight forwards finish.
        for adapter in adapters:
            await adapter.stop()
        await asyncio.gather(*receivers, return_exceptions=True)
        for pump in pumps:
            await pump.close()
        sweeper.cancel()
        await asyncio.gather(sweeper, return_exceptions=True)
        await media.aclose()
        if telegram_client is not None:
            await telegram_client.disconnect()
        LOGGER.info("Shutdown complete")


def _run() -> None:
    _print_banner()
    settings = _load_settings_or_exit()
    _configure_logging(settings.logging, settings.secrets())
    LOGGER.info("Starting igbridge")
    try:
        asyncio.run(_serve(settings))
    except ConfigurationError as exc:
        LOGGER.error("Startup failed: %s", exc)
        raise SystemExit(2)


def _threads() -> None:
    settings = _load_settings_or_exit()
    store = SQLiteThreadStore(settings.database_path)
    store.init_db()
    mappings = store.list()
    if not mappings:
        print(format_mapping_list(mappings))
        return
    for index, mapping in enumerate(mappings, start=1):
        print(
            f"{index}. @{mapping.display_name} | IG thread {mapping.source_thread_id} | "
            f"topic {mapping.destination_topic_id} | {mapping.message_count} messages | "
            f"last activity {mapping.last_activity_at.isoformat()}"
        )


def _login() -> None:
    _print_banner()
    import ig_session

    try:
        config = settings_module.load_instagram_settings()
    except ConfigurationError as exc:
        print(exc, file=sys.stderr)
        raise SystemExit(2)
    ig_session.main(config)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="igbridge")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the bridge")
    subparsers.add_parser("threads", help="List thread mappings")
    subparsers.add_parser("login", help="Log in to Instagram and cache the session")

    args = parser.parse_args(argv)
    if args.command == "threads":
        _threads()
        return
    if args.command == "login":
        _login()
        return
    _run()


if __name__ == "__main__":
    main()
