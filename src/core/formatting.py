"""Shared message formatting helpers.

Keeping formatting here prevents drift between the router and the command
handler, and keeps messages consistent regardless of direction. Anything
bound for Telegram is HTML (sent with parse_mode="html"); anything bound
for Instagram is plain text.
"""

from __future__ import annotations

import html
from datetime import datetime
from typing import Iterable

from core.models import AttachmentKind, InboundMessage, Platform, ThreadMapping

DIVIDER = "──────────────"


def sender_header(message: InboundMessage) -> str:
    """Return the sender-identity header for a Telegram-bound message."""

    return f"📱 <b>@{html.escape(message.sender.handle)}</b>"


def format_body(message: InboundMessage) -> str:
    """Return the text body to deliver on the opposite platform."""

    if message.platform == Platform.INSTAGRAM:
        return f"{sender_header(message)}\n{html.escape(message.text)}"
    # Instagram counterparts already see the bridged account as the sender,
    # so Telegram text goes out verbatim.
    return message.text


def format_caption(message: InboundMessage) -> str:
    if message.platform == Platform.INSTAGRAM:
        return sender_header(message)
    return ""


def format_failure_notice(message: InboundMessage, kind: AttachmentKind) -> str:
    if message.platform == Platform.INSTAGRAM:
        return f"{sender_header(message)}\n❌ Failed to forward {kind.value}"
    return f"❌ Failed to forward {kind.value} from Telegram"


def format_introduction(mapping: ThreadMapping) -> str:
    """Create the one-time message posted into a freshly created topic."""

    return "\n".join(
        [
            "🆕 <b>New Instagram conversation</b>",
            f"👤 User: @{html.escape(mapping.display_name)}",
            f"🔗 Thread ID: <code>{html.escape(mapping.source_thread_id)}</code>",
        ]
    )


REJECTION_NOTICE = "❌ No Instagram thread mapping found for this topic."


def topic_title(message: InboundMessage) -> str:
    """Title for a new topic, never empty."""

    return f"@{message.sender.handle}"


def _timestamp(value: datetime) -> str:
    return value.astimezone().strftime("%H:%M:%S %d-%m-%Y").strip()


def format_mapping_list(mappings: Iterable[ThreadMapping]) -> str:
    """Render thread mappings for the ``threads`` command."""

    mappings = list(mappings)
    if not mappings:
        return "📭 No active thread mappings found."

    lines = ["🔗 <b>Active Thread Mappings</b>", ""]
    for mapping in mappings:
        lines.extend(
            [
                f"👤 @{html.escape(mapping.display_name)}",
                f"📱 IG Thread: <code>{html.escape(mapping.source_thread_id)}</code>",
                f"💬 TG Topic: {mapping.destination_topic_id}",
                f"✉️ Messages: {mapping.message_count}",
                f"⏰ Last Activity: {_timestamp(mapping.last_activity_at)}",
                "",
            ]
        )
    return "\n".join(lines).rstrip()


def format_uptime(seconds: float) -> str:
    seconds = int(seconds)
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_status(
    *,
    bridge_enabled: bool,
    channels: dict[str, bool],
    mapping_count: int,
    uptime_seconds: float,
) -> str:
    def mark(flag: bool) -> str:
        return "✅" if flag else "❌"

    lines = [
        "🌉 <b>Bridge Status</b>",
        DIVIDER,
        f"🔄 Bridge: {mark(bridge_enabled)} {'Active' if bridge_enabled else 'Inactive'}",
    ]
    for name, connected in channels.items():
        lines.append(f"{name}: {mark(connected)}")
    lines.extend(
        [
            f"🔗 Active Threads: {mapping_count}",
            f"⏱️ Uptime: {format_uptime(uptime_seconds)}",
        ]
    )
    return "\n".join(lines)
