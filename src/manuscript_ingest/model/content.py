"""Content data structures for manuscript extraction (format, images, HTML)."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ContentFormat(Enum):
    """Container format as sniffed from the archive bytes."""

    EPUB = "epub"
    DOCX = "docx"
    UNKNOWN = "unknown"


def archive_basename(path: str) -> str:
    """Return the last `/`-separated segment of an archive member path."""
    return path.rsplit("/", 1)[-1]


@dataclass(frozen=True, slots=True)
class ExtractedImage:
    # Path as stored in the container (e.g., "OEBPS/images/cover.jpg")
    original_path: str
    relocated_url: str
    content_type: str
    size_bytes: int
    storage_key: str = ""


@dataclass(slots=True)
class PendingImage:
    """Image bytes collected from the archive, waiting to be uploaded."""

    archive_path: str
    raw_bytes: bytes
    content_type: str
    size_bytes: int


class PathUrlMap:
    """Archive path (and basename) to relocated URL.

    Both the full member path and its basename are stored for every image.
    A later image sharing a basename overwrites the basename key only.
    """

    def __init__(self) -> None:
        self._urls: dict[str, str] = {}

    def add(self, archive_path: str, url: str) -> None:
        self._urls[archive_path] = url
        self._urls[archive_basename(archive_path)] = url

    def lookup(self, reference: str) -> str | None:
        """Resolve a reference verbatim first, then by its basename."""
        url = self._urls.get(reference)
        if url is None:
            url = self._urls.get(archive_basename(reference))
        return url

    def get(self, key: str) -> str | None:
        return self._urls.get(key)

    def items(self) -> Iterator[tuple[str, str]]:
        return iter(self._urls.items())

    def __contains__(self, key: object) -> bool:
        return key in self._urls

    def __len__(self) -> int:
        return len(self._urls)

    def __repr__(self) -> str:
        return f"PathUrlMap({self._urls!r})"


@dataclass(slots=True)
class ExtractedContent:
    html_content: str
    images: list[ExtractedImage] = field(default_factory=list)
    format: ContentFormat = ContentFormat.UNKNOWN

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "format": self.format.value,
            "html_content": self.html_content,
            "images": [
                {
                    "original_path": img.original_path,
                    "relocated_url": img.relocated_url,
                    "content_type": img.content_type,
                    "size_bytes": img.size_bytes,
                    "storage_key": img.storage_key,
                }
                for img in self.images
            ],
        }


__all__ = [
    "ContentFormat",
    "ExtractedContent",
    "ExtractedImage",
    "PathUrlMap",
    "PendingImage",
    "archive_basename",
]
