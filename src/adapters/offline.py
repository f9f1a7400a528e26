"""Stand-in adapter for a channel disabled in configuration.

It never receives anything and rejects every send, so the router treats the
channel exactly like one whose transport is down.
"""

from __future__ import annotations

import asyncio

from core.errors import DeliveryError
from core.models import Attachment, DeliveryReceipt, Platform
from core.ports import MessageCallback


class OfflineAdapter:
    def __init__(self, platform: Platform) -> None:
        self.platform = platform
        self._stopped = asyncio.Event()

    def is_connected(self) -> bool:
        return False

    async def receive(self, callback: MessageCallback) -> None:
        await self._stopped.wait()

    async def stop(self) -> None:
        self._stopped.set()

    def _disabled(self) -> DeliveryError:
        return DeliveryError(f"{self.platform.value} is disabled", platform=self.platform.value)

    async def send_text(self, destination: str, text: str) -> DeliveryReceipt:
        raise self._disabled()

    async def send_media(
        self, destination: str, attachment: Attachment, caption: str
    ) -> DeliveryReceipt:
        raise self._disabled()

    async def create_destination_container(self, parent: str, title: str) -> str:
        raise self._disabled()
