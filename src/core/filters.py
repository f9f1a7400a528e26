"""Inbound event filters (core domain).

Adapters call these before handing anything to the router: stale events
from a reconnect backlog and events outside the configured scope never
reach the routing pipeline.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional


def is_command(text: Optional[str], prefixes: str) -> bool:
    """Return True when text starts with one of the command prefix characters."""

    if not text or not prefixes:
        return False
    return text.lstrip()[:1] in set(prefixes)


def parse_command(text: str, prefixes: str) -> Optional[tuple[str, list[str]]]:
    """Split command text into (name, args), or None if it is not a command."""

    if not is_command(text, prefixes):
        return None
    parts = text.strip()[1:].split()
    if not parts:
        return None
    # Telegram appends "@botname" to commands picked from the menu.
    name = parts[0].split("@", 1)[0].lower()
    return name, parts[1:]


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_fresh(
    timestamp: datetime, window_seconds: float, now: Optional[datetime] = None
) -> bool:
    """Return True when the event is within the freshness window."""

    current = _as_aware(now or datetime.now(timezone.utc))
    age = current - _as_aware(timestamp)
    return age <= timedelta(seconds=window_seconds)


class EventGate:
    """Freshness and scope check applied by the adapters before routing."""

    def __init__(self, scopes: Iterable[str], window_seconds: float) -> None:
        self._scopes = {str(scope) for scope in scopes}
        self._window = window_seconds

    @property
    def window_seconds(self) -> float:
        return self._window

    def in_scope(self, scope: object) -> bool:
        return str(scope) in self._scopes

    def admits(self, scope: object, timestamp: datetime, now: Optional[datetime] = None) -> bool:
        if not self.in_scope(scope):
            return False
        return is_fresh(timestamp, self._window, now)
