"""Explicit queue between one adapter and the router.

Each adapter pushes normalized messages into its own pump. A single worker
drains the queue in order, so one slow forward delays the next event from
the same adapter (backpressure), while the two adapters run independently.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from core.models import InboundMessage

LOGGER = logging.getLogger(__name__)

_STOP = object()


class AdapterPump:
    """Sequential consumer of one adapter's inbound stream."""

    def __init__(
        self,
        name: str,
        handler: Callable[[InboundMessage], Awaitable[Any]],
        maxsize: int = 100,
    ) -> None:
        self._name = name
        self._handler = handler
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._worker: Optional[asyncio.Task] = None
        self._accepting = True
        self.processed = 0

    @property
    def name(self) -> str:
        return self._name

    def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run(), name=f"pump-{self._name}")

    async def offer(self, message: InboundMessage) -> None:
        """Adapter callback: enqueue a message, waiting while the queue is full."""

        if not self._accepting:
            LOGGER.info("Pump %s is closed, dropping message %s", self._name, message.external_id)
            return
        await self._queue.put(message)

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                if message is _STOP:
                    return
                await self._handler(message)
                self.processed += 1
            except Exception:
                # One bad message must never take down the receive stream.
                LOGGER.exception(
                    "Unhandled error for %s message %s (thread=%s)",
                    self._name,
                    getattr(message, "external_id", None),
                    getattr(message, "thread_id", None),
                )
            finally:
                self._queue.task_done()

    async def close(self) -> None:
        """Stop accepting, let queued and in-flight messages finish, then return."""

        self._accepting = False
        if self._worker is None:
            return
        await self._queue.put(_STOP)
        await self._worker
        self._worker = None
        LOGGER.info("Pump %s drained (%s messages processed)", self._name, self.processed)
