"""Telegram forum adapter.

A bot account inside one forum-enabled supergroup. Each bridged Instagram
thread gets its own topic; messages posted in a topic flow back to the
mapped Instagram thread.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from telethon import TelegramClient, events
from telethon.errors import RPCError
from telethon.tl.functions.messages import CreateForumTopicRequest
from telethon.tl.types import MessageActionTopicCreate, UpdateMessageID

from adapters.media import MediaPipeline
from adapters.telegram_mapper import (
    LOCATOR_SCHEME,
    build_inbound,
    chat_id_variants,
    parse_locator,
)
from core.config import TelegramConfig
from core.errors import DeliveryError, FetchError
from core.filters import EventGate
from core.models import Attachment, AttachmentKind, DeliveryReceipt, Platform
from core.ports import MessageCallback

LOGGER = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (RPCError, ConnectionError, OSError, ValueError, asyncio.TimeoutError)

MAX_TOPIC_TITLE = 128


def topic_id_from_updates(result) -> int:
    """Extract the new topic id from a CreateForumTopic response."""

    updates = getattr(result, "updates", None) or []
    for update in updates:
        message = getattr(update, "message", None)
        if isinstance(getattr(message, "action", None), MessageActionTopicCreate):
            return message.id
    for update in updates:
        if isinstance(update, UpdateMessageID):
            return update.id
    raise DeliveryError("Topic creation returned no topic id", platform=Platform.TELEGRAM.value)


class TelegramTopicsAdapter:
    """ChannelAdapter implementation backed by a Telethon bot client."""

    platform = Platform.TELEGRAM

    def __init__(
        self,
        client: TelegramClient,
        config: TelegramConfig,
        media: MediaPipeline,
        freshness_window_seconds: float,
        command_prefixes: str,
    ) -> None:
        self._client = client
        self._config = config
        self._media = media
        self._chat_id = int(config.chat_id)
        self._gate = EventGate(
            [str(variant) for variant in chat_id_variants(self._chat_id)],
            freshness_window_seconds,
        )
        self._prefixes = command_prefixes
        self._callback: Optional[MessageCallback] = None
        self._stopped = asyncio.Event()
        self._handler_event = events.NewMessage(incoming=True)
        media.register(LOCATOR_SCHEME, self._download)

    def is_connected(self) -> bool:
        return bool(self._client.is_connected()) and not self._stopped.is_set()

    async def receive(self, callback: MessageCallback) -> None:
        """Register the message handler and block until stop() is called."""

        self._callback = callback
        self._client.add_event_handler(self._on_message, self._handler_event)
        LOGGER.info("Listening for Telegram messages in chat %s", self._chat_id)
        try:
            await self._stopped.wait()
        finally:
            self._client.remove_event_handler(self._on_message, self._handler_event)

    async def stop(self) -> None:
        self._stopped.set()

    async def _on_message(self, event) -> None:
        if self._stopped.is_set() or self._callback is None:
            return
        message = event.message
        # Stale backlog and other chats are dropped before anything else.
        if not self._gate.admits(event.chat_id, message.date):
            return
        inbound = await build_inbound(message, self._prefixes)
        LOGGER.info(
            "Telegram message from @%s in topic %s: %s",
            inbound.sender.handle,
            inbound.thread_id,
            inbound.text[:50] or "[Media]",
        )
        await self._callback(inbound)

    async def _call(self, coro, what: str):
        try:
            return await asyncio.wait_for(coro, timeout=self._config.send_timeout_seconds)
        except _TRANSPORT_ERRORS as exc:
            raise DeliveryError(f"{what} failed: {exc}", platform=self.platform.value) from exc

    async def send_text(self, destination: str, text: str) -> DeliveryReceipt:
        sent = await self._call(
            self._client.send_message(
                self._chat_id,
                text,
                reply_to=int(destination) if destination else None,
                parse_mode="html",
                link_preview=False,
            ),
            "Sending Telegram message",
        )
        LOGGER.debug("Sent Telegram message to topic %s: %s", destination, text[:50])
        return DeliveryReceipt(self.platform, destination, str(getattr(sent, "id", "")))

    async def send_media(
        self, destination: str, attachment: Attachment, caption: str
    ) -> DeliveryReceipt:
        # Every kind maps onto a Telegram upload; only the flags differ.
        kind = attachment.kind
        if kind == AttachmentKind.VOICE:
            options = {"voice_note": True}
        elif kind == AttachmentKind.VIDEO:
            options = {"supports_streaming": True}
        elif kind == AttachmentKind.DOCUMENT:
            options = {"force_document": True}
        elif kind == AttachmentKind.STICKER:
            options = {"caption": None}
        else:
            options = {}

        staged = await self._media.stage(attachment)
        kwargs = {"caption": caption or None, "parse_mode": "html"}
        kwargs.update(options)
        sent = await self._call(
            self._client.send_file(
                self._chat_id,
                str(staged.path),
                reply_to=int(destination) if destination else None,
                **kwargs,
            ),
            f"Sending Telegram {kind.value}",
        )
        LOGGER.info("Sent %s to Telegram topic %s", kind.value, destination)
        return DeliveryReceipt(self.platform, destination, str(getattr(sent, "id", "")))

    async def create_destination_container(self, parent: str, title: str) -> str:
        peer = await self._call(
            self._client.get_input_entity(int(parent)), "Resolving Telegram chat"
        )
        result = await self._call(
            self._client(CreateForumTopicRequest(peer=peer, title=title[:MAX_TOPIC_TITLE])),
            "Creating forum topic",
        )
        topic_id = topic_id_from_updates(result)
        LOGGER.info("Created forum topic: %s (ID: %s)", title, topic_id)
        return str(topic_id)

    async def _download(self, locator: str) -> bytes:
        """Download the media of a Telegram message referenced by a tg:// locator."""

        chat_id, message_id = parse_locator(locator)
        try:
            message = await self._client.get_messages(chat_id, ids=message_id)
            if message is None or not message.media:
                raise FetchError(f"Telegram message {message_id} has no media")
            data = await self._client.download_media(message, file=bytes)
        except _TRANSPORT_ERRORS as exc:
            raise FetchError(f"Error getting Telegram file: {exc}") from exc
        if not data:
            raise FetchError(f"Telegram message {message_id} media is empty")
        return data
