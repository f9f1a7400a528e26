"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to Telethon or instagrapi types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class Platform(str, Enum):
    """Which side of the bridge a message came from."""

    TELEGRAM = "telegram"
    INSTAGRAM = "instagram"

    @property
    def opposite(self) -> "Platform":
        if self is Platform.TELEGRAM:
            return Platform.INSTAGRAM
        return Platform.TELEGRAM


class AttachmentKind(str, Enum):
    """Closed set of attachment kinds the bridge understands."""

    IMAGE = "image"
    VIDEO = "video"
    VOICE = "voice"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"


@dataclass(frozen=True)
class Attachment:
    """One media item attached to an inbound message."""

    kind: AttachmentKind
    locator: str
    size_hint: Optional[int] = None
    file_name: Optional[str] = None


@dataclass(frozen=True)
class Sender:
    """Sender identity: opaque id plus an optional human handle."""

    id: str
    display: Optional[str] = None

    @property
    def handle(self) -> str:
        """Human-readable handle, falling back to ``user_<id>``."""

        if self.display:
            return self.display.lstrip("@")
        return f"user_{self.id}"


@dataclass(frozen=True)
class InboundMessage:
    """Normalized, platform-agnostic inbound event.

    ``thread_id`` is the Instagram thread id for Instagram messages and the
    Telegram topic id (as a string) for Telegram messages.
    """

    platform: Platform
    external_id: str
    thread_id: Optional[str]
    sender: Sender
    timestamp: datetime
    text: str = ""
    attachments: tuple[Attachment, ...] = ()
    is_command: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and not self.attachments


@dataclass(frozen=True)
class ThreadMapping:
    """Persisted association between one Instagram thread and one topic."""

    source_thread_id: str
    destination_topic_id: int
    display_name: str
    created_at: datetime
    last_activity_at: datetime
    message_count: int = 0


@dataclass(frozen=True)
class DeliveryReceipt:
    """Identifier of a delivered item on the destination platform."""

    platform: Platform
    destination: str
    message_id: Optional[str] = None


class RouteState(str, Enum):
    """Terminal states of one message's routing pass."""

    DELIVERED = "delivered"
    REJECTED = "rejected"
    IGNORED = "ignored"
    COMMAND = "command"
    FAILED = "failed"


class ActionKind(str, Enum):
    CREATE_CONTAINER = "create_container"
    INTRODUCTION = "introduction"
    SEND_TEXT = "send_text"
    SEND_MEDIA = "send_media"
    FAILURE_NOTICE = "failure_notice"
    REJECTION_NOTICE = "rejection_notice"
    COMMAND_REPLY = "command_reply"


@dataclass(frozen=True)
class OutboundAction:
    """One outbound side effect performed while routing a message."""

    kind: ActionKind
    platform: Platform
    destination: str
    detail: str = ""
    ok: bool = True


@dataclass
class RouteResult:
    """Outcome of routing one inbound message."""

    state: RouteState
    actions: list[OutboundAction] = field(default_factory=list)
    mapping: Optional[ThreadMapping] = None

    def of_kind(self, kind: ActionKind) -> list[OutboundAction]:
        return [action for action in self.actions if action.kind == kind]
