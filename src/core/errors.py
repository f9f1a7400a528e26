"""Bridge error taxonomy.

Adapters translate library-specific failures into these types so the
router only ever reasons about bridge-level errors.
"""

from __future__ import annotations

from typing import Iterable, Optional


class BridgeError(Exception):
    """Base exception for bridge errors."""


class TransportError(BridgeError):
    """Adapter send/receive failure."""

    def __init__(self, message: str, platform: Optional[str] = None):
        super().__init__(message)
        self.platform = platform


class DeliveryError(TransportError):
    """A send or topic-creation call failed on the destination platform."""


class DuplicateMapping(BridgeError):
    """The source thread is already mapped."""

    def __init__(self, source_thread_id: str):
        super().__init__(f"Thread {source_thread_id} is already mapped")
        self.source_thread_id = source_thread_id


class MediaError(BridgeError):
    """Base class for per-attachment failures."""


class MediaUnsupported(MediaError):
    """The destination platform cannot represent this attachment kind."""

    def __init__(self, kind: str, platform: str):
        super().__init__(f"{platform} does not support {kind} attachments")
        self.kind = kind
        self.platform = platform


class FetchError(MediaError):
    """Media download failed (network error, timeout, bad status)."""


class SizeExceeded(MediaError):
    """Media is larger than the configured ceiling."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"File too large: {size} bytes (max: {limit})")
        self.size = size
        self.limit = limit


class ConfigurationError(BridgeError):
    """Missing or malformed required settings."""

    def __init__(self, problems: Iterable[str]):
        self.problems = list(problems)
        super().__init__("Invalid configuration: " + "; ".join(self.problems))
