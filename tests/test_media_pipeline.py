from __future__ import annotations

import asyncio
import os
import time

import httpx
import pytest

from adapters.media import (
    MediaPipeline,
    extension_from_locator,
    infer_extension,
    staged_filename,
)
from core.config import MediaConfig
from core.errors import FetchError, SizeExceeded
from core.models import Attachment, AttachmentKind


def _pipeline(tmp_path, handler, **overrides) -> MediaPipeline:
    config = MediaConfig(staging_dir=tmp_path / "staging", **overrides)
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MediaPipeline(config, http=http)


def _serve(content: bytes, content_type: str = "image/jpeg"):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=content, headers={"content-type": content_type})

    return handler


def test_extension_from_locator() -> None:
    assert extension_from_locator("https://cdn.example/a/b/photo.JPG?x=1") == ".jpg"
    assert extension_from_locator("https://cdn.example/v/t51.2885-15/") is None
    assert extension_from_locator("https://cdn.example/v/t51.2885-15") is None
    assert extension_from_locator("tg://-100123/55") is None


def test_infer_extension_prefers_file_name_then_locator_then_kind() -> None:
    assert infer_extension(Attachment(AttachmentKind.DOCUMENT, "tg://1/2", file_name="report.PDF")) == ".pdf"
    assert infer_extension(Attachment(AttachmentKind.VIDEO, "https://cdn.example/clip.mov")) == ".mov"
    assert infer_extension(Attachment(AttachmentKind.VOICE, "https://cdn.example/audio")) == ".ogg"
    assert infer_extension(Attachment(AttachmentKind.IMAGE, "tg://1/2")) == ".jpg"


def test_staged_filename_uses_kind_and_timestamp() -> None:
    assert staged_filename(AttachmentKind.IMAGE, ".jpg", now_ns=123) == "image_123.jpg"
    assert staged_filename(AttachmentKind.VOICE, ".ogg", now_ns=5) == "voice_5.ogg"


def test_fetch_returns_bytes_and_content_type(tmp_path) -> None:
    pipeline = _pipeline(tmp_path, _serve(b"jpeg-bytes"))

    fetched = asyncio.run(pipeline.fetch("https://cdn.example/a.jpg"))

    assert fetched.data == b"jpeg-bytes"
    assert fetched.size_bytes == len(b"jpeg-bytes")
    assert fetched.content_type == "image/jpeg"


def test_fetch_rejects_oversized_media(tmp_path) -> None:
    pipeline = _pipeline(tmp_path, _serve(b"x" * 100), max_bytes=10)

    with pytest.raises(SizeExceeded) as excinfo:
        asyncio.run(pipeline.fetch("https://cdn.example/big.jpg"))

    assert excinfo.value.limit == 10


def test_size_hint_is_checked_before_download(tmp_path) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, content=b"x")

    pipeline = _pipeline(tmp_path, handler, max_bytes=10)

    with pytest.raises(SizeExceeded):
        asyncio.run(pipeline.fetch("https://cdn.example/big.jpg", size_hint=11))

    assert requests == []


def test_fetch_maps_bad_status_to_fetch_error(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    pipeline = _pipeline(tmp_path, handler)

    with pytest.raises(FetchError):
        asyncio.run(pipeline.fetch("https://cdn.example/gone.jpg"))


def test_fetch_maps_timeout_to_fetch_error(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow cdn", request=request)

    pipeline = _pipeline(tmp_path, handler)

    with pytest.raises(FetchError):
        asyncio.run(pipeline.fetch("https://cdn.example/slow.jpg"))


def test_unknown_scheme_is_a_fetch_error(tmp_path) -> None:
    pipeline = _pipeline(tmp_path, _serve(b""))

    with pytest.raises(FetchError):
        asyncio.run(pipeline.fetch("ftp://example/file.jpg"))


def test_registered_downloader_handles_its_scheme(tmp_path) -> None:
    pipeline = _pipeline(tmp_path, _serve(b""), max_bytes=4)
    calls: list[str] = []

    async def download(locator: str) -> bytes:
        calls.append(locator)
        return b"abc" if locator.endswith("/1") else b"abcdef"

    pipeline.register("tg", download)

    fetched = asyncio.run(pipeline.fetch("tg://-100/1"))
    assert fetched.data == b"abc"
    with pytest.raises(SizeExceeded):
        asyncio.run(pipeline.fetch("tg://-100/2"))
    assert calls == ["tg://-100/1", "tg://-100/2"]


def test_registered_downloader_timeout(tmp_path) -> None:
    pipeline = _pipeline(tmp_path, _serve(b""), fetch_timeout_seconds=0.01)

    async def download(locator: str) -> bytes:
        await asyncio.sleep(1)
        return b""

    pipeline.register("tg", download)

    with pytest.raises(FetchError):
        asyncio.run(pipeline.fetch("tg://-100/1"))


def test_stage_writes_file_into_staging_dir(tmp_path) -> None:
    pipeline = _pipeline(tmp_path, _serve(b"video-bytes", "video/mp4"))
    attachment = Attachment(AttachmentKind.VIDEO, "https://cdn.example/v/t50.2886-16/clip")

    staged = asyncio.run(pipeline.stage(attachment))

    assert staged.path.parent == tmp_path / "staging"
    assert staged.path.name.startswith("video_")
    assert staged.path.suffix == ".mp4"
    assert staged.path.read_bytes() == b"video-bytes"
    assert staged.kind == AttachmentKind.VIDEO


def test_sweep_removes_only_old_files(tmp_path) -> None:
    pipeline = _pipeline(tmp_path, _serve(b""), staging_max_age_seconds=3600.0)
    staging = tmp_path / "staging"
    staging.mkdir()
    old = staging / "image_1.jpg"
    fresh = staging / "image_2.jpg"
    old.write_bytes(b"old")
    fresh.write_bytes(b"fresh")
    two_hours_ago = time.time() - 7200
    os.utime(old, (two_hours_ago, two_hours_ago))

    removed = pipeline.sweep()

    assert removed == 1
    assert not old.exists()
    assert fresh.exists()


def test_sweep_without_staging_dir(tmp_path) -> None:
    pipeline = _pipeline(tmp_path, _serve(b""))

    assert pipeline.sweep() == 0


def test_stage_maps_disk_errors_to_fetch_error(tmp_path) -> None:
    blocker = tmp_path / "staging"
    blocker.write_bytes(b"not a directory")
    pipeline = _pipeline(tmp_path, _serve(b"jpeg-bytes"))

    with pytest.raises(FetchError):
        asyncio.run(pipeline.stage(Attachment(AttachmentKind.IMAGE, "https://cdn.example/a.jpg")))
