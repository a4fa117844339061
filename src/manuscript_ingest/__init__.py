"""manuscript-ingest: turn uploaded EPUB/DOCX manuscripts into storage-backed HTML."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
