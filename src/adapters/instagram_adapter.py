"""Instagram Direct adapter.

instagrapi is synchronous, so every call runs in a worker thread. Inbound
messages are discovered by polling the inbox; messages already seen, sent
by the bridged account itself, or older than the freshness window are
dropped before they reach the router.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections import deque
from datetime import datetime
from typing import Any, Iterable, Optional

from instagrapi import Client
from instagrapi.exceptions import ClientError

from adapters.instagram_mapper import build_inbound
from adapters.media import MediaPipeline
from core.config import InstagramConfig
from core.errors import DeliveryError, MediaUnsupported
from core.filters import is_fresh
from core.models import Attachment, AttachmentKind, DeliveryReceipt, InboundMessage, Platform
from core.ports import MessageCallback

LOGGER = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (ClientError, OSError, asyncio.TimeoutError)

# Enough to cover several polls of a busy inbox.
_SEEN_LIMIT = 2000


class InstagramDirectAdapter:
    """ChannelAdapter implementation backed by an instagrapi Client."""

    platform = Platform.INSTAGRAM

    def __init__(
        self,
        client: Client,
        config: InstagramConfig,
        media: MediaPipeline,
        freshness_window_seconds: float,
        thread_batch: int = 20,
    ) -> None:
        self._client = client
        self._config = config
        self._media = media
        self._window = freshness_window_seconds
        self._thread_batch = thread_batch
        self._account_id: Optional[str] = None
        self._seen_order: deque[str] = deque()
        self._seen: set[str] = set()
        self._stopped = asyncio.Event()

    @property
    def account_id(self) -> Optional[str]:
        if self._account_id is None and getattr(self._client, "user_id", None):
            self._account_id = str(self._client.user_id)
        return self._account_id

    def is_connected(self) -> bool:
        return self.account_id is not None and not self._stopped.is_set()

    async def _run(self, func, *args, **kwargs) -> Any:
        call = functools.partial(func, *args, **kwargs)
        return await asyncio.wait_for(
            asyncio.to_thread(call), timeout=self._config.send_timeout_seconds
        )

    async def receive(self, callback: MessageCallback) -> None:
        """Poll the inbox until stop() is called."""

        LOGGER.info("Polling Instagram inbox every %ss", self._config.poll_seconds)
        while not self._stopped.is_set():
            try:
                threads = await self._run(self._client.direct_threads, self._thread_batch)
                inbound_messages = self.collect(threads)
            except _TRANSPORT_ERRORS as exc:
                LOGGER.error("Instagram polling error: %s", exc)
            except Exception:
                # instagrapi raises KeyError/ValidationError when payloads change.
                LOGGER.exception("Unexpected error while polling Instagram")
            else:
                for inbound in inbound_messages:
                    LOGGER.info(
                        "New Instagram message from @%s: %s",
                        inbound.sender.handle,
                        inbound.text[:50] or "[Media]",
                    )
                    await callback(inbound)
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self._config.poll_seconds)
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        self._stopped.set()

    def _remember(self, message_id: str) -> None:
        self._seen.add(message_id)
        self._seen_order.append(message_id)
        while len(self._seen_order) > _SEEN_LIMIT:
            self._seen.discard(self._seen_order.popleft())

    def collect(
        self, threads: Iterable[Any], now: Optional[datetime] = None
    ) -> list[InboundMessage]:
        """Return new, fresh, foreign messages from an inbox page, oldest first."""

        own_id = self.account_id
        fresh: list[InboundMessage] = []
        for thread in threads:
            for message in getattr(thread, "messages", None) or []:
                message_id = str(getattr(message, "id", ""))
                if not message_id or message_id in self._seen:
                    continue
                if getattr(message, "is_sent_by_viewer", False):
                    continue
                if own_id is not None and str(getattr(message, "user_id", "")) == own_id:
                    continue
                try:
                    inbound = build_inbound(message, thread)
                except Exception:
                    LOGGER.exception("Skipping malformed Instagram message %s", message_id)
                    self._remember(message_id)
                    continue
                if not is_fresh(inbound.timestamp, self._window, now):
                    continue
                fresh.append(inbound)
        fresh.sort(key=lambda item: item.timestamp)
        for inbound in fresh:
            self._remember(inbound.external_id)
        return fresh

    async def send_text(self, destination: str, text: str) -> DeliveryReceipt:
        try:
            sent = await self._run(self._client.direct_send, text, thread_ids=[int(destination)])
        except _TRANSPORT_ERRORS as exc:
            raise DeliveryError(
                f"Error sending Instagram message: {exc}", platform=self.platform.value
            ) from exc
        LOGGER.info("Sent message to Instagram thread %s", destination)
        return DeliveryReceipt(self.platform, destination, str(getattr(sent, "id", "") or ""))

    async def send_media(
        self, destination: str, attachment: Attachment, caption: str
    ) -> DeliveryReceipt:
        kind = attachment.kind
        if kind == AttachmentKind.IMAGE:
            sender = self._client.direct_send_photo
        elif kind == AttachmentKind.VIDEO:
            sender = self._client.direct_send_video
        else:
            # The private API has no upload path for voice, audio, files or stickers.
            raise MediaUnsupported(kind.value, self.platform.value)

        staged = await self._media.stage(attachment)
        try:
            sent = await self._run(sender, staged.path, thread_ids=[int(destination)])
        except _TRANSPORT_ERRORS as exc:
            raise DeliveryError(
                f"Error sending {kind.value} to Instagram: {exc}", platform=self.platform.value
            ) from exc
        LOGGER.info("Sent %s to Instagram thread %s", kind.value, destination)
        return DeliveryReceipt(self.platform, destination, str(getattr(sent, "id", "") or ""))

    async def create_destination_container(self, parent: str, title: str) -> str:
        raise DeliveryError(
            "Instagram threads are only created by the counterpart", platform=self.platform.value
        )
