"""Instagram-to-core message mapping adapter.

Converts instagrapi DirectThread/DirectMessage objects into core
InboundMessages. Fields are read with getattr so that partial payloads
(and test doubles) map cleanly.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from core.models import Attachment, AttachmentKind, InboundMessage, Platform, Sender

LOGGER = logging.getLogger(__name__)

# DirectMedia.media_type values used by the private API.
_PHOTO = 1
_VIDEO = 2


def _url(value: Any) -> Optional[str]:
    return str(value) if value else None


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if data is None:
            return None
        if isinstance(data, dict):
            data = data.get(key)
        else:
            data = getattr(data, key, None)
    return data


def attachments_from_direct(message: Any) -> tuple[Attachment, ...]:
    """Return attachments of a direct message, dropping unknown media with a warning."""

    item_type = (getattr(message, "item_type", None) or "").lower()
    attachments: list[Attachment] = []

    media = getattr(message, "media", None)
    if media is not None:
        media_type = getattr(media, "media_type", None)
        if media_type == _VIDEO and getattr(media, "video_url", None):
            attachments.append(Attachment(AttachmentKind.VIDEO, _url(media.video_url)))
        elif media_type == _PHOTO and getattr(media, "thumbnail_url", None):
            attachments.append(Attachment(AttachmentKind.IMAGE, _url(media.thumbnail_url)))
        else:
            LOGGER.warning("Dropping Instagram media of type %s", media_type)

    clip = getattr(message, "clip", None)
    if clip is not None and getattr(clip, "video_url", None):
        attachments.append(Attachment(AttachmentKind.VIDEO, _url(clip.video_url)))

    voice_src = _dig(getattr(message, "voice_media", None), "media", "audio", "audio_src")
    if voice_src:
        attachments.append(Attachment(AttachmentKind.VOICE, _url(voice_src)))

    animated = _dig(getattr(message, "animated_media", None), "images", "fixed_height", "url")
    if animated:
        attachments.append(Attachment(AttachmentKind.STICKER, _url(animated)))

    if not attachments and item_type not in {"", "text", "link", "like"} and not getattr(message, "text", None):
        LOGGER.warning("Dropping unsupported Instagram item type %s", item_type)
    return tuple(attachments)


def sender_for(message: Any, thread: Any) -> Sender:
    user_id = str(getattr(message, "user_id", "") or "")
    username = None
    for user in getattr(thread, "users", None) or []:
        if str(getattr(user, "pk", "")) == user_id:
            username = getattr(user, "username", None)
            break
    return Sender(id=user_id or "unknown", display=username)


def _timestamp(message: Any) -> datetime:
    value = getattr(message, "timestamp", None)
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if value:
        # Raw API timestamps are microseconds since the epoch.
        return datetime.fromtimestamp(int(value) / 1_000_000, tz=timezone.utc)
    return datetime.now(timezone.utc)


def build_inbound(message: Any, thread: Any) -> InboundMessage:
    """Build a core InboundMessage from an instagrapi direct message."""

    thread_id = getattr(thread, "id", None) or getattr(message, "thread_id", None)
    return InboundMessage(
        platform=Platform.INSTAGRAM,
        external_id=str(getattr(message, "id", "")),
        thread_id=str(thread_id),
        sender=sender_for(message, thread),
        timestamp=_timestamp(message),
        text=getattr(message, "text", None) or "",
        attachments=attachments_from_direct(message),
        # Prefix characters are only commands on the Telegram side.
        is_command=False,
    )
