"""Runtime bridge state shared by the router and the command handler."""

from __future__ import annotations

import time
from typing import Callable


class BridgeSwitch:
    """Mutable on/off flag plus process start time."""

    def __init__(self, enabled: bool = True, clock: Callable[[], float] = time.monotonic) -> None:
        self._enabled = enabled
        self._clock = clock
        self._started = clock()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set(self, enabled: bool) -> None:
        self._enabled = enabled

    def toggle(self) -> bool:
        self._enabled = not self._enabled
        return self._enabled

    def uptime_seconds(self) -> float:
        return self._clock() - self._started
