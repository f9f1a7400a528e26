from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from adapters.telegram_mapper import (
    attachments_from_message,
    build_inbound,
    build_locator,
    chat_id_variants,
    parse_locator,
    topic_id_from_message,
)
from core.models import AttachmentKind, Platform


class DummySender:
    def __init__(self, user_id: int, username: "str | None" = None, first_name: "str | None" = None) -> None:
        self.id = user_id
        self.username = username
        self.first_name = first_name


class DummyReply:
    def __init__(
        self,
        forum_topic: bool,
        reply_to_top_id: "int | None",
        reply_to_msg_id: "int | None",
    ) -> None:
        self.forum_topic = forum_topic
        self.reply_to_top_id = reply_to_top_id
        self.reply_to_msg_id = reply_to_msg_id


class DummyFile:
    def __init__(self, size: int, name: "str | None" = None) -> None:
        self.size = size
        self.name = name


class DummyMessage:
    def __init__(
        self,
        *,
        chat_id: int = -100123,
        message_id: int = 10,
        text: str = "",
        sender: "DummySender | None" = None,
        reply_to=None,
        media=None,
        file=None,
        **media_flags,
    ) -> None:
        self.chat_id = chat_id
        self.id = message_id
        self.raw_text = text
        self.sender = sender or DummySender(7, "operator")
        self.sender_id = self.sender.id
        self.reply_to = reply_to
        self.media = media
        self.file = file
        self.date = datetime(2024, 1, 1, tzinfo=timezone.utc)
        for flag in ("sticker", "voice", "video", "video_note", "gif", "audio", "photo", "document"):
            setattr(self, flag, media_flags.get(flag))


def test_topic_id_from_reply_to_top_id() -> None:
    message = DummyMessage(reply_to=DummyReply(True, 555, 111))

    assert topic_id_from_message(message) == 555


def test_topic_id_falls_back_to_reply_to_msg_id() -> None:
    message = DummyMessage(reply_to=DummyReply(True, None, 777))

    assert topic_id_from_message(message) == 777


def test_topic_id_none_outside_forum_topics() -> None:
    assert topic_id_from_message(DummyMessage(reply_to=DummyReply(False, 555, 111))) is None
    assert topic_id_from_message(DummyMessage()) is None


def test_build_inbound_for_topic_message() -> None:
    message = DummyMessage(text="hello there", reply_to=DummyReply(True, 555, 111))

    inbound = asyncio.run(build_inbound(message, "/."))

    assert inbound.platform == Platform.TELEGRAM
    assert inbound.external_id == "10"
    assert inbound.thread_id == "555"
    assert inbound.sender.id == "7"
    assert inbound.sender.handle == "operator"
    assert inbound.text == "hello there"
    assert inbound.attachments == ()
    assert not inbound.is_command


def test_build_inbound_flags_commands() -> None:
    for text in ("/status", ".ping", "  /threads"):
        inbound = asyncio.run(build_inbound(DummyMessage(text=text), "/."))
        assert inbound.is_command
        assert inbound.thread_id is None

    inbound = asyncio.run(build_inbound(DummyMessage(text="!status"), "/."))
    assert not inbound.is_command


def test_sender_without_username_uses_first_name() -> None:
    message = DummyMessage(text="hi", sender=DummySender(9, None, "Ann"))

    inbound = asyncio.run(build_inbound(message, "/."))

    assert inbound.sender.handle == "Ann"


def test_attachment_kinds() -> None:
    cases = [
        ({"sticker": object(), "document": object()}, AttachmentKind.STICKER),
        ({"voice": object(), "audio": object(), "document": object()}, AttachmentKind.VOICE),
        ({"video_note": object(), "document": object()}, AttachmentKind.VIDEO),
        ({"gif": object(), "document": object()}, AttachmentKind.VIDEO),
        ({"audio": object(), "document": object()}, AttachmentKind.AUDIO),
        ({"photo": object()}, AttachmentKind.IMAGE),
        ({"document": object()}, AttachmentKind.DOCUMENT),
    ]
    for flags, expected in cases:
        message = DummyMessage(media=object(), file=DummyFile(2048, "file.bin"), **flags)
        (attachment,) = attachments_from_message(message)
        assert attachment.kind == expected
        assert attachment.locator == "tg://-100123/10"
        assert attachment.size_hint == 2048


def test_unknown_media_is_dropped() -> None:
    message = DummyMessage(text="look", media=object())

    assert attachments_from_message(message) == ()


def test_locator_round_trip() -> None:
    assert parse_locator(build_locator(-1001234567890, 42)) == (-1001234567890, 42)


def test_chat_id_variants_for_supergroup_peer_id() -> None:
    assert chat_id_variants(-1001234567890) == {-1001234567890, 1234567890}


def test_chat_id_variants_for_bare_channel_id() -> None:
    assert chat_id_variants(1234567890) == {1234567890, -1234567890, -1001234567890}
