"""Operator commands issued from the Telegram group.

The command table is fixed: commands only read store and bridge state (or
flip the bridge switch) and never touch the routing invariants.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from core.filters import parse_command
from core.formatting import format_mapping_list, format_status
from core.models import InboundMessage
from core.ports import ThreadStorePort
from core.state import BridgeSwitch

LOGGER = logging.getLogger(__name__)

ADMIN_ONLY = {"toggle", "enable", "disable"}


class CommandHandler:
    """Answers ``status``, ``toggle``/``enable``/``disable``, ``threads`` and ``ping``."""

    def __init__(
        self,
        store: ThreadStorePort,
        switch: BridgeSwitch,
        prefixes: str,
        admin_users: Iterable[str] = (),
        channel_status: Optional[Callable[[], dict[str, bool]]] = None,
    ) -> None:
        self._store = store
        self._switch = switch
        self._prefixes = prefixes
        self._admins = {str(user) for user in admin_users}
        self._channel_status = channel_status or (lambda: {})

    async def handle(self, message: InboundMessage) -> Optional[str]:
        """Return the reply text for a command message, or None to stay silent."""

        parsed = parse_command(message.text, self._prefixes)
        if parsed is None:
            return None
        name, args = parsed
        LOGGER.info("Executing command: %s with args: %s", name, args)

        if name in ADMIN_ONLY and self._admins and message.sender.id not in self._admins:
            return "⛔ This command is restricted to bridge admins."

        if name in {"status", "bridge"}:
            return format_status(
                bridge_enabled=self._switch.enabled,
                channels=self._channel_status(),
                mapping_count=len(self._store.list()),
                uptime_seconds=self._switch.uptime_seconds(),
            )
        if name == "toggle":
            return self._announce(self._switch.toggle())
        if name == "enable":
            self._switch.set(True)
            return self._announce(True)
        if name == "disable":
            self._switch.set(False)
            return self._announce(False)
        if name == "threads":
            return format_mapping_list(self._store.list())
        if name == "ping":
            return "🏓 Pong!"
        return f"❌ Unknown command: {name}"

    @staticmethod
    def _announce(enabled: bool) -> str:
        LOGGER.info("Bridge %s by command", "enabled" if enabled else "disabled")
        return f"🌉 Bridge {'enabled' if enabled else 'disabled'}"
