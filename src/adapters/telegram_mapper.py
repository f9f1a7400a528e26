"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the core router.
"""

from __future__ import annotations

import logging
from typing import Optional

from telethon.tl.custom import Message

from core.filters import is_command
from core.models import Attachment, AttachmentKind, InboundMessage, Platform, Sender

LOGGER = logging.getLogger(__name__)

LOCATOR_SCHEME = "tg"


def chat_id_variants(raw_chat_id: int) -> set[int]:
    """Return equivalent chat id variants (peer id, chat id, channel id)."""

    variants: set[int] = {raw_chat_id}
    if raw_chat_id < 0:
        raw_text = str(raw_chat_id)
        if raw_text.startswith("-100"):
            # Channel/supergroup peer id: -100<channel_id>
            channel_part = raw_text[4:]
            if channel_part.isdigit():
                variants.add(int(channel_part))
        else:
            variants.add(abs(raw_chat_id))
        return variants

    # raw_chat_id is positive: add PeerChat and PeerChannel-style ids.
    variants.add(-raw_chat_id)
    variants.add(-1000000000000 - raw_chat_id)
    return variants


def topic_id_from_message(message: Message) -> Optional[int]:
    reply_to = getattr(message, "reply_to", None)
    if not reply_to or not getattr(reply_to, "forum_topic", False):
        return None
    top_id = getattr(reply_to, "reply_to_top_id", None)
    if top_id:
        return top_id
    return getattr(reply_to, "reply_to_msg_id", None)


def build_locator(chat_id: int, message_id: int) -> str:
    return f"{LOCATOR_SCHEME}://{chat_id}/{message_id}"


def parse_locator(locator: str) -> tuple[int, int]:
    """Split a ``tg://<chat_id>/<message_id>`` locator."""

    body = locator.split("://", 1)[1]
    chat_part, _, message_part = body.partition("/")
    return int(chat_part), int(message_part)


def _attachment_kind(message: Message) -> Optional[AttachmentKind]:
    # Order matters: stickers, voice notes and videos are all documents too.
    if getattr(message, "sticker", None):
        return AttachmentKind.STICKER
    if getattr(message, "voice", None):
        return AttachmentKind.VOICE
    if getattr(message, "video", None) or getattr(message, "video_note", None) or getattr(message, "gif", None):
        return AttachmentKind.VIDEO
    if getattr(message, "audio", None):
        return AttachmentKind.AUDIO
    if getattr(message, "photo", None):
        return AttachmentKind.IMAGE
    if getattr(message, "document", None):
        return AttachmentKind.DOCUMENT
    return None


def attachments_from_message(message: Message) -> tuple[Attachment, ...]:
    """Return the message's attachment, dropping media kinds we cannot bridge."""

    if not getattr(message, "media", None):
        return ()
    kind = _attachment_kind(message)
    if kind is None:
        LOGGER.warning(
            "Dropping unsupported Telegram media %s in message %s",
            type(message.media).__name__,
            message.id,
        )
        return ()
    file = getattr(message, "file", None)
    return (
        Attachment(
            kind=kind,
            locator=build_locator(message.chat_id, message.id),
            size_hint=getattr(file, "size", None),
            file_name=getattr(file, "name", None),
        ),
    )


def sender_from_message(message: Message) -> Sender:
    sender = getattr(message, "sender", None)
    username = getattr(sender, "username", None)
    display = username or getattr(sender, "first_name", None)
    sender_id = getattr(message, "sender_id", None) or getattr(sender, "id", None)
    return Sender(id=str(sender_id or "unknown"), display=display)


async def build_inbound(message: Message, command_prefixes: str) -> InboundMessage:
    """Build a core InboundMessage from a Telethon Message."""

    if getattr(message, "sender", None) is None and hasattr(message, "get_sender"):
        await message.get_sender()
    topic_id = topic_id_from_message(message)
    text = message.raw_text or ""
    return InboundMessage(
        platform=Platform.TELEGRAM,
        external_id=str(message.id),
        thread_id=str(topic_id) if topic_id is not None else None,
        sender=sender_from_message(message),
        timestamp=message.date,
        text=text,
        attachments=attachments_from_message(message),
        is_command=is_command(text, command_prefixes),
    )
