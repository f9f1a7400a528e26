"""Ports (interfaces) used by the core router.

Ports define the minimal contracts for the thread store and the two channel
adapters so that the core can be exercised with fakes and reused with
different backends.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Protocol

from core.models import (
    Attachment,
    DeliveryReceipt,
    InboundMessage,
    Platform,
    ThreadMapping,
)

MessageCallback = Callable[[InboundMessage], Awaitable[None]]


class ThreadStorePort(Protocol):
    """Mapping persistence required by the router."""

    def find(self, source_thread_id: str) -> Optional[ThreadMapping]:
        ...

    def find_by_destination(self, destination_topic_id: int) -> Optional[ThreadMapping]:
        ...

    def create(
        self, source_thread_id: str, destination_topic_id: int, display_name: str
    ) -> ThreadMapping:
        """Insert a mapping; raise DuplicateMapping if the thread is mapped."""
        ...

    def touch(self, source_thread_id: str) -> None:
        ...

    def list(self) -> list[ThreadMapping]:
        ...

    def log_message(self, message: InboundMessage) -> None:
        ...


class ChannelAdapter(Protocol):
    """Send/receive capability set implemented per platform."""

    platform: Platform

    async def receive(self, callback: MessageCallback) -> None:
        """Deliver normalized inbound messages to ``callback`` until stopped."""
        ...

    async def stop(self) -> None:
        ...

    def is_connected(self) -> bool:
        ...

    async def send_text(self, destination: str, text: str) -> DeliveryReceipt:
        ...

    async def send_media(
        self, destination: str, attachment: Attachment, caption: str
    ) -> DeliveryReceipt:
        ...

    async def create_destination_container(self, parent: str, title: str) -> str:
        ...
