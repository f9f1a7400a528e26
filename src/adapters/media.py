"""Media pipeline: download, stage, and sweep attachments.

Media is forwarded download-then-reupload. Bytes are staged on disk under a
generated name so platform clients that want a file path (instagrapi) can
upload them; the staging area is swept periodically and never holds state
the bridge depends on.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

import httpx

from core.config import MediaConfig
from core.errors import FetchError, SizeExceeded
from core.models import Attachment, AttachmentKind

LOGGER = logging.getLogger(__name__)

Downloader = Callable[[str], Awaitable[bytes]]

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

_DEFAULT_EXTENSIONS: dict[AttachmentKind, str] = {
    AttachmentKind.IMAGE: ".jpg",
    AttachmentKind.VIDEO: ".mp4",
    AttachmentKind.VOICE: ".ogg",
    AttachmentKind.AUDIO: ".mp3",
    AttachmentKind.DOCUMENT: ".bin",
    AttachmentKind.STICKER: ".webp",
}

_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".ogg": "audio/ogg",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".wav": "audio/wav",
}


def default_extension(kind: AttachmentKind) -> str:
    return _DEFAULT_EXTENSIONS[kind]


def extension_from_locator(locator: str) -> Optional[str]:
    """Return the lowercase extension of the locator's path, if it has one."""

    try:
        path = urlparse(locator).path
    except ValueError:
        return None
    suffix = PurePosixPath(path).suffix.lower()
    # "file.jpg" yes, "/v/t51.2885-15" no: reject suffixes that are not a word.
    if not suffix or len(suffix) > 6 or not suffix[1:].isalnum():
        return None
    return suffix


def infer_extension(attachment: Attachment) -> str:
    if attachment.file_name:
        suffix = PurePosixPath(attachment.file_name).suffix.lower()
        if suffix:
            return suffix
    return extension_from_locator(attachment.locator) or default_extension(attachment.kind)


def content_type_for(extension: str) -> str:
    return (
        _MIME_TYPES.get(extension)
        or mimetypes.types_map.get(extension)
        or "application/octet-stream"
    )


def staged_filename(kind: AttachmentKind, extension: str, now_ns: Optional[int] = None) -> str:
    return f"{kind.value}_{now_ns or time.time_ns()}{extension}"


@dataclass(frozen=True)
class FetchedMedia:
    data: bytes
    size_bytes: int
    content_type: str


@dataclass(frozen=True)
class StagedMedia:
    path: Path
    size_bytes: int
    content_type: str
    kind: AttachmentKind


class MediaPipeline:
    """Fetches attachment bytes and stages them for re-upload."""

    def __init__(
        self,
        config: MediaConfig,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config
        self._http = http or httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
        self._downloaders: dict[str, Downloader] = {}

    def register(self, scheme: str, downloader: Downloader) -> None:
        """Route locators with this URL scheme to a platform-specific downloader."""

        self._downloaders[scheme] = downloader

    def _check_size(self, size: int) -> None:
        if size > self._config.max_bytes:
            raise SizeExceeded(size, self._config.max_bytes)

    async def fetch(self, locator: str, size_hint: Optional[int] = None) -> FetchedMedia:
        """Download a locator, enforcing the timeout and size ceiling."""

        if size_hint:
            self._check_size(size_hint)

        scheme = urlparse(locator).scheme
        extension = extension_from_locator(locator)
        downloader = self._downloaders.get(scheme)
        if downloader is not None:
            try:
                data = await asyncio.wait_for(
                    downloader(locator), timeout=self._config.fetch_timeout_seconds
                )
            except asyncio.TimeoutError as exc:
                raise FetchError(f"Timed out fetching {locator}") from exc
            self._check_size(len(data))
            content_type = content_type_for(extension) if extension else "application/octet-stream"
            return FetchedMedia(data=data, size_bytes=len(data), content_type=content_type)

        if scheme not in {"http", "https"}:
            raise FetchError(f"Unsupported media locator: {locator}")
        return await self._fetch_http(locator, extension)

    async def _fetch_http(self, locator: str, extension: Optional[str]) -> FetchedMedia:
        chunks: list[bytes] = []
        total = 0
        try:
            async with self._http.stream(
                "GET", locator, timeout=self._config.fetch_timeout_seconds
            ) as response:
                response.raise_for_status()
                declared = response.headers.get("content-length")
                if declared and declared.isdigit():
                    self._check_size(int(declared))
                async for chunk in response.aiter_bytes():
                    total += len(chunk)
                    self._check_size(total)
                    chunks.append(chunk)
                header_type = response.headers.get("content-type", "").split(";")[0].strip()
        except httpx.TimeoutException as exc:
            raise FetchError(f"Timed out fetching {locator}") from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Error downloading media: {exc}") from exc

        content_type = header_type or (content_type_for(extension) if extension else "")
        LOGGER.info("Downloaded media %s (%s bytes)", locator[:80], total)
        return FetchedMedia(
            data=b"".join(chunks),
            size_bytes=total,
            content_type=content_type or "application/octet-stream",
        )

    async def stage(self, attachment: Attachment) -> StagedMedia:
        """Fetch an attachment and write it into the staging directory."""

        fetched = await self.fetch(attachment.locator, attachment.size_hint)
        staging = Path(self._config.staging_dir)
        path = staging / staged_filename(attachment.kind, infer_extension(attachment))
        try:
            staging.mkdir(parents=True, exist_ok=True)
            path.write_bytes(fetched.data)
        except OSError as exc:
            raise FetchError(f"Could not stage media in {staging}: {exc}") from exc
        return StagedMedia(
            path=path,
            size_bytes=fetched.size_bytes,
            content_type=fetched.content_type,
            kind=attachment.kind,
        )

    def sweep(self, now: Optional[float] = None) -> int:
        """Delete staged files older than the configured age; return the count."""

        staging = Path(self._config.staging_dir)
        if not staging.is_dir():
            return 0
        cutoff = (now if now is not None else time.time()) - self._config.staging_max_age_seconds
        removed = 0
        for path in staging.iterdir():
            try:
                if path.is_file() and path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except FileNotFoundError:
                continue
        if removed:
            LOGGER.info("Cleaned up %s staged media files", removed)
        return removed

    async def run_sweeper(self, interval_seconds: Optional[float] = None) -> None:
        """Sweep the staging area forever; cancel the task to stop it."""

        interval = interval_seconds or self._config.staging_max_age_seconds
        while True:
            try:
                self.sweep()
            except OSError:
                LOGGER.exception("Staging sweep failed")
            await asyncio.sleep(interval)

    async def aclose(self) -> None:
        await self._http.aclose()
