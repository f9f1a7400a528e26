from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

import pytest

from adapters.sqlite_store import SQLiteThreadStore
from core.errors import DuplicateMapping
from core.models import Attachment, AttachmentKind, InboundMessage, Platform, Sender


def _store(tmp_path) -> SQLiteThreadStore:
    store = SQLiteThreadStore(str(tmp_path / "bridge.db"))
    store.init_db()
    return store


def test_create_and_find_both_directions(tmp_path) -> None:
    store = _store(tmp_path)

    created = store.create("t1", 101, "alice")

    assert created.message_count == 0
    assert created.created_at == created.last_activity_at
    assert store.find("t1") == created
    assert store.find_by_destination(101) == created
    assert store.find("missing") is None
    assert store.find_by_destination(999) is None


def test_create_twice_raises_duplicate_mapping(tmp_path) -> None:
    store = _store(tmp_path)
    store.create("t1", 101, "alice")

    with pytest.raises(DuplicateMapping) as excinfo:
        store.create("t1", 202, "alice")

    assert excinfo.value.source_thread_id == "t1"
    assert store.find("t1").destination_topic_id == 101


def test_topic_cannot_be_mapped_twice(tmp_path) -> None:
    store = _store(tmp_path)
    store.create("t1", 101, "alice")

    with pytest.raises(sqlite3.IntegrityError):
        store.create("t2", 101, "bob")


def test_touch_bumps_activity_and_count(tmp_path) -> None:
    store = _store(tmp_path)
    created = store.create("t1", 101, "alice")

    store.touch("t1")
    store.touch("t1")

    mapping = store.find("t1")
    assert mapping.message_count == 2
    assert mapping.last_activity_at >= created.last_activity_at
    assert mapping.created_at == created.created_at


def test_touch_unknown_thread_is_ignored(tmp_path) -> None:
    store = _store(tmp_path)

    store.touch("nobody")

    assert store.list() == []


def test_list_orders_by_recent_activity(tmp_path) -> None:
    store = _store(tmp_path)
    store.create("a", 1, "alice")
    store.create("b", 2, "bob")
    store.create("c", 3, "carol")

    store.touch("a")

    assert [mapping.source_thread_id for mapping in store.list()] == ["a", "c", "b"]


def test_mappings_survive_reopen(tmp_path) -> None:
    store = _store(tmp_path)
    store.create("t1", 101, "alice")

    reopened = _store(tmp_path)

    assert reopened.find("t1").display_name == "alice"


def test_log_message_records_history(tmp_path) -> None:
    store = _store(tmp_path)
    message = InboundMessage(
        platform=Platform.INSTAGRAM,
        external_id="m1",
        thread_id="t1",
        sender=Sender("1", "alice"),
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        text="hi",
        attachments=(Attachment(AttachmentKind.IMAGE, "https://cdn.example/a.jpg"),),
    )

    store.log_message(message)
    store.log_message(message)

    assert store.count_messages() == 2
