"""Two-phase relocation of archive images to the object store.

Phase 1 (``collect_pending_images``) runs synchronously against an open
``ArchiveReader`` and copies every image payload into memory. Phase 2
(``ImageRelocator.relocate``) only sees those in-memory copies, so no archive
handle is ever held across an ``await``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from manuscript_ingest.ingest.archive_reader import ArchiveReader
from manuscript_ingest.ingest.error_handling import StorageFailure
from manuscript_ingest.ingest.progress import ProgressCallback, safe_emit
from manuscript_ingest.model.content import (
    ExtractedImage,
    PathUrlMap,
    PendingImage,
    archive_basename,
)
from manuscript_ingest.model.extraction_options import ExtractionOptions
from manuscript_ingest.types import ObjectStore

logger = logging.getLogger(__name__)

IMAGE_CONTENT_TYPES: dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
}


def _image_extension(name: str) -> str | None:
    lower = name.lower()
    for ext in IMAGE_CONTENT_TYPES:
        if lower.endswith(ext):
            return ext
    return None


def is_image_member(name: str) -> bool:
    return _image_extension(name) is not None


def guess_content_type(name: str) -> str:
    """Content type from the member's extension; payload bytes are not inspected."""
    ext = _image_extension(name)
    if ext is None:
        return "application/octet-stream"
    return IMAGE_CONTENT_TYPES[ext]


def collect_pending_images(
    reader: ArchiveReader, member_prefix: str | None = None
) -> list[PendingImage]:
    """Copy every image member out of the archive, in enumeration order.

    Args:
        reader: Open archive reader
        member_prefix: Only consider members whose path starts with this prefix
            (DOCX keeps its media under ``word/media/``)

    Returns:
        PendingImage list in archive enumeration order

    Raises:
        ReadFailure: If an image member cannot be decompressed
    """
    pending: list[PendingImage] = []
    for index, name in enumerate(reader.names()):
        if reader.is_dir(name):
            continue
        if member_prefix is not None and not name.startswith(member_prefix):
            continue
        if not is_image_member(name):
            continue
        data = reader.read_bytes(index)
        pending.append(
            PendingImage(
                archive_path=name,
                raw_bytes=data,
                content_type=guess_content_type(name),
                size_bytes=len(data),
            )
        )
        logger.debug(f"Collected image {name} ({len(data)} bytes)")
    return pending


class StorageNameClock:
    """Millisecond timestamps for storage filenames, strictly increasing per instance.

    Two images with the same basename in one extraction therefore never share
    a storage key, even when uploaded within the same millisecond.
    """

    def __init__(self, now_ms: Callable[[], int] | None = None) -> None:
        self._now_ms = now_ms or (lambda: time.time_ns() // 1_000_000)
        self._last = -1

    def next(self) -> int:
        stamp = max(self._now_ms(), self._last + 1)
        self._last = stamp
        return stamp


def storage_filename(archive_path: str, timestamp_ms: int) -> str:
    return f"{timestamp_ms}_{archive_basename(archive_path).replace(' ', '_')}"


def storage_key(folder: str, asset_namespace: str, filename: str) -> str:
    return f"{folder}/{asset_namespace}/{filename}"


class ImageRelocator:
    """Upload collected images and map their archive paths to public URLs."""

    def __init__(
        self,
        store: ObjectStore,
        options: ExtractionOptions | None = None,
        on_progress: ProgressCallback = None,
        clock: StorageNameClock | None = None,
    ) -> None:
        self.store = store
        self.options = options or ExtractionOptions()
        self.on_progress = on_progress
        self._clock = clock

    async def relocate(
        self, pending: list[PendingImage], asset_namespace: str
    ) -> tuple[list[ExtractedImage], PathUrlMap]:
        """Upload every pending image and build the path map.

        Uploads run concurrently up to ``max_concurrent_uploads``. The returned
        images keep the order of ``pending``, and the path map is filled in that
        same order so the last image with a given basename owns that key.

        Raises:
            StorageFailure: If any upload fails. Outstanding uploads are
                cancelled and, with ``cleanup_on_failure``, every upload that
                started and did not itself fail is deleted again.
        """
        path_map = PathUrlMap()
        if not pending:
            return [], path_map

        clock = self._clock or StorageNameClock()
        keys = [
            storage_key(
                self.options.asset_folder,
                asset_namespace,
                storage_filename(item.archive_path, clock.next()),
            )
            for item in pending
        ]

        semaphore = asyncio.Semaphore(max(1, self.options.max_concurrent_uploads))
        # Keys whose upload started and did not report failure; a cancelled
        # upload may still land in the store.
        uploaded: list[str] = []

        async def _upload(item: PendingImage, key: str) -> str:
            async with semaphore:
                uploaded.append(key)
                try:
                    url = await self.store.upload(key, item.raw_bytes, item.content_type)
                except Exception as exc:
                    uploaded.remove(key)
                    logger.error(f"Upload failed for {item.archive_path} -> {key}: {exc}")
                    raise StorageFailure(key, exc) from exc
            logger.debug(f"Uploaded {item.archive_path} -> {url}")
            safe_emit(
                self.on_progress,
                "extract:image_uploaded",
                {"path": item.archive_path, "url": url},
            )
            return url

        tasks = [
            asyncio.ensure_future(_upload(item, key)) for item, key in zip(pending, keys)
        ]
        try:
            urls = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if self.options.cleanup_on_failure:
                await self._cleanup(uploaded)
            raise

        images: list[ExtractedImage] = []
        for item, key, url in zip(pending, keys, urls):
            path_map.add(item.archive_path, url)
            images.append(
                ExtractedImage(
                    original_path=item.archive_path,
                    relocated_url=url,
                    content_type=item.content_type,
                    size_bytes=item.size_bytes,
                    storage_key=key,
                )
            )
        return images, path_map

    async def discard(self, images: list[ExtractedImage]) -> None:
        """Delete relocated images again, e.g. when a later extraction step fails."""
        await self._cleanup([img.storage_key for img in images if img.storage_key])

    async def _cleanup(self, keys: list[str]) -> None:
        """Best-effort delete; failures are logged and never raised."""
        for key in keys:
            try:
                await self.store.delete(key)
            except Exception as exc:
                logger.warning(f"Could not delete orphaned object {key}: {exc}")
