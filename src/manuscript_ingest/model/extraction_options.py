"""Extraction options for manuscript ingestion.

Defaults reproduce the storage layout consumers already depend on:
images land under ``content-images/<namespace>/`` and EPUB documents are
joined with a ``<!-- Chapter Break -->`` comment.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

DEFAULT_ASSET_FOLDER = "content-images"
DEFAULT_CHAPTER_SEPARATOR = "\n\n<!-- Chapter Break -->\n\n"


@dataclass
class ExtractionOptions:
    """Pipeline configuration for a ContentExtractor."""

    # Top-level storage folder for relocated images
    asset_folder: str = DEFAULT_ASSET_FOLDER

    # Upper bound on uploads in flight for a single extraction
    max_concurrent_uploads: int = 4

    # Delete already-uploaded objects when a later upload fails
    cleanup_on_failure: bool = True

    # Inserted between EPUB content documents
    chapter_separator: str = DEFAULT_CHAPTER_SEPARATOR

    @classmethod
    def from_cli(
        cls,
        *,
        folder: str = DEFAULT_ASSET_FOLDER,
        concurrency: int = 4,
        cleanup: bool = True,
    ) -> ExtractionOptions:
        """Build ExtractionOptions from CLI argument values.

        Args:
            folder: Storage folder name for relocated images
            concurrency: Maximum number of concurrent uploads
            cleanup: Whether to delete uploaded objects after a failed extraction

        Returns:
            ExtractionOptions instance

        Raises:
            ValueError: If any argument has an invalid value
        """
        folder = folder.strip().strip("/")
        if not folder or ".." in folder.split("/"):
            raise ValueError(f"Invalid asset folder '{folder}'")

        if concurrency < 1:
            raise ValueError(f"Invalid concurrency {concurrency}. Must be >= 1")

        return cls(
            asset_folder=folder,
            max_concurrent_uploads=concurrency,
            cleanup_on_failure=cleanup,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization/logging."""
        return {
            "asset_folder": self.asset_folder,
            "max_concurrent_uploads": self.max_concurrent_uploads,
            "cleanup_on_failure": self.cleanup_on_failure,
        }


__all__ = [
    "DEFAULT_ASSET_FOLDER",
    "DEFAULT_CHAPTER_SEPARATOR",
    "ExtractionOptions",
]
