"""Core message routing.

This module is integration-agnostic. It only relies on ports for the thread
store and the two channel adapters, so it can be driven by fakes in tests.

Each inbound message goes through a strict sequence:
1) Commands from Telegram go to the command handler and stop there
2) Fast-exit for a disabled bridge, a General-topic message, or no content
3) Resolve the mapping (by Instagram thread, or by Telegram topic)
4) Provision a topic for an unseen Instagram thread, under a per-thread lock
5) Touch the mapping, then forward text and each attachment independently
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from core.commands import CommandHandler
from core.config import RouterConfig
from core.errors import DuplicateMapping, MediaError, TransportError
from core.formatting import (
    REJECTION_NOTICE,
    format_body,
    format_caption,
    format_failure_notice,
    format_introduction,
    topic_title,
)
from core.models import (
    ActionKind,
    AttachmentKind,
    InboundMessage,
    OutboundAction,
    Platform,
    RouteResult,
    RouteState,
    ThreadMapping,
)
from core.ports import ChannelAdapter, ThreadStorePort
from core.state import BridgeSwitch

LOGGER = logging.getLogger(__name__)


class Router:
    """Resolves mappings and forwards messages between the two adapters."""

    def __init__(
        self,
        store: ThreadStorePort,
        telegram: ChannelAdapter,
        instagram: ChannelAdapter,
        config: RouterConfig,
        switch: Optional[BridgeSwitch] = None,
        commands: Optional[CommandHandler] = None,
    ) -> None:
        self._store = store
        self._adapters = {Platform.TELEGRAM: telegram, Platform.INSTAGRAM: instagram}
        self._config = config
        self._switch = switch or BridgeSwitch(config.enabled)
        self._commands = commands
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @property
    def switch(self) -> BridgeSwitch:
        return self._switch

    async def handle(self, message: InboundMessage) -> RouteResult:
        """Route one inbound message and return what was done."""

        result = RouteResult(state=RouteState.IGNORED)
        stage = "received"
        try:
            if message.is_command:
                stage = "command"
                return await self._handle_command(message, result)

            if not self._switch.enabled:
                LOGGER.debug("Bridge disabled, dropping %s message", message.platform.value)
                return result

            # Media-only messages are forwarded; messages with nothing are not.
            if message.is_empty:
                return result

            if message.platform == Platform.INSTAGRAM:
                stage = "resolving"
                LOGGER.info("Resolving mapping for Instagram thread %s", message.thread_id)
                mapping = self._store.find(message.thread_id)
                if mapping is None:
                    stage = "provisioning"
                    LOGGER.info("No mapping for Instagram thread %s, provisioning a topic", message.thread_id)
                    mapping = await self._provision(message, result)
                stage = "forwarding"
                await self._forward(message, mapping, str(mapping.destination_topic_id), result)
                return result

            # General-topic chatter in the Telegram group is not bridged.
            if message.thread_id is None:
                return result

            stage = "resolving"
            LOGGER.info("Resolving mapping for Telegram topic %s", message.thread_id)
            mapping = self._store.find_by_destination(int(message.thread_id))
            if mapping is None:
                stage = "rejected"
                await self._reject(message, result)
                return result
            stage = "forwarding"
            await self._forward(message, mapping, mapping.source_thread_id, result)
            return result
        except Exception:
            LOGGER.exception(
                "Routing failed (platform=%s, thread=%s, stage=%s)",
                message.platform.value,
                message.thread_id,
                stage,
            )
            result.state = RouteState.FAILED
            return result

    async def _handle_command(self, message: InboundMessage, result: RouteResult) -> RouteResult:
        result.state = RouteState.COMMAND
        # Command text never crosses the bridge, mapped topic or not.
        if message.platform != Platform.TELEGRAM or self._commands is None:
            return result
        reply = await self._commands.handle(message)
        if reply is not None:
            destination = message.thread_id or ""
            ok = await self._send_text(Platform.TELEGRAM, destination, reply)
            result.actions.append(
                OutboundAction(ActionKind.COMMAND_REPLY, Platform.TELEGRAM, destination, reply, ok)
            )
        return result

    @asynccontextmanager
    async def _thread_lock(self, source_thread_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(source_thread_id, asyncio.Lock())
        self._lock_users[source_thread_id] = self._lock_users.get(source_thread_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[source_thread_id] -= 1
            if not self._lock_users[source_thread_id]:
                del self._lock_users[source_thread_id]
                self._locks.pop(source_thread_id, None)

    async def _provision(self, message: InboundMessage, result: RouteResult) -> ThreadMapping:
        """Create a topic and mapping for an unseen thread, exactly once."""

        source_thread_id = message.thread_id
        async with self._thread_lock(source_thread_id):
            # Another message for the same thread may have provisioned while
            # we waited for the lock.
            existing = self._store.find(source_thread_id)
            if existing is not None:
                return existing

            title = topic_title(message)
            telegram = self._adapters[Platform.TELEGRAM]
            topic_id = await telegram.create_destination_container(
                str(self._config.telegram_chat_id), title
            )
            result.actions.append(
                OutboundAction(ActionKind.CREATE_CONTAINER, Platform.TELEGRAM, str(topic_id), title)
            )
            try:
                mapping = self._store.create(source_thread_id, int(topic_id), message.sender.handle)
            except DuplicateMapping:
                # Lost an insert race against another writer; its mapping wins.
                LOGGER.info("Mapping for %s already exists, re-resolving", source_thread_id)
                winner = self._store.find(source_thread_id)
                if winner is None:
                    raise
                return winner

            LOGGER.info("Created topic %s (%s) for thread %s", topic_id, title, source_thread_id)
            intro = format_introduction(mapping)
            ok = await self._send_text(Platform.TELEGRAM, str(topic_id), intro)
            result.actions.append(
                OutboundAction(ActionKind.INTRODUCTION, Platform.TELEGRAM, str(topic_id), intro, ok)
            )
            return mapping

    async def _reject(self, message: InboundMessage, result: RouteResult) -> None:
        result.state = RouteState.REJECTED
        LOGGER.info("No mapping for Telegram topic %s", message.thread_id)
        ok = await self._send_text(Platform.TELEGRAM, message.thread_id, REJECTION_NOTICE)
        result.actions.append(
            OutboundAction(
                ActionKind.REJECTION_NOTICE, Platform.TELEGRAM, message.thread_id, REJECTION_NOTICE, ok
            )
        )

    async def _forward(
        self,
        message: InboundMessage,
        mapping: ThreadMapping,
        destination: str,
        result: RouteResult,
    ) -> None:
        self._store.touch(mapping.source_thread_id)
        try:
            self._store.log_message(message)
        except Exception:
            LOGGER.warning("Could not record message %s in history", message.external_id, exc_info=True)

        target = message.platform.opposite
        adapter = self._adapters[target]

        if message.text.strip():
            body = format_body(message)
            ok = await self._send_text(target, destination, body)
            result.actions.append(OutboundAction(ActionKind.SEND_TEXT, target, destination, body, ok))

        caption = format_caption(message)
        for attachment in message.attachments:
            try:
                await adapter.send_media(destination, attachment, caption)
            except (MediaError, TransportError) as exc:
                LOGGER.warning(
                    "Failed to forward %s to %s thread %s: %s",
                    attachment.kind.value,
                    target.value,
                    destination,
                    exc,
                )
                await self._attachment_failed(message, attachment.kind, target, destination, result)
                continue
            except Exception:
                LOGGER.exception(
                    "Unexpected error forwarding %s to %s thread %s",
                    attachment.kind.value,
                    target.value,
                    destination,
                )
                await self._attachment_failed(message, attachment.kind, target, destination, result)
                continue
            result.actions.append(
                OutboundAction(ActionKind.SEND_MEDIA, target, destination, attachment.kind.value)
            )

        result.state = RouteState.DELIVERED
        result.mapping = self._store.find(mapping.source_thread_id) or mapping
        LOGGER.info(
            "Forwarded %s message to %s thread %s",
            message.platform.value,
            target.value,
            destination,
        )

    async def _attachment_failed(
        self,
        message: InboundMessage,
        kind: AttachmentKind,
        target: Platform,
        destination: str,
        result: RouteResult,
    ) -> None:
        result.actions.append(
            OutboundAction(ActionKind.SEND_MEDIA, target, destination, kind.value, ok=False)
        )
        notice = format_failure_notice(message, kind)
        ok = await self._send_text(target, destination, notice)
        result.actions.append(
            OutboundAction(ActionKind.FAILURE_NOTICE, target, destination, notice, ok)
        )

    async def _send_text(self, platform: Platform, destination: str, text: str) -> bool:
        try:
            await self._adapters[platform].send_text(destination, text)
        except TransportError as exc:
            LOGGER.error("Sending text to %s %s failed: %s", platform.value, destination, exc)
            return False
        return True
