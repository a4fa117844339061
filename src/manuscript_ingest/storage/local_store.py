"""Filesystem-backed object store.

Objects are written under ``root`` using their key as a relative path and are
served from ``public_base_url``. Suitable for local runs and for deployments
that put a static file server or CDN in front of a mounted volume.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from tempfile import NamedTemporaryFile

logger = logging.getLogger(__name__)


class LocalObjectStore:
    def __init__(self, root: Path, public_base_url: str) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def path_for(self, key: str) -> Path:
        """Resolve ``key`` to a file path under ``root``.

        Raises:
            ValueError: If the key is empty, absolute or escapes ``root``
        """
        if not key or key.startswith("/") or "\\" in key:
            raise ValueError(f"Invalid storage key '{key}'")
        parts = key.split("/")
        if any(part in ("", ".", "..") for part in parts):
            raise ValueError(f"Invalid storage key '{key}'")
        return self.root.joinpath(*parts)

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def _write(self, dest: Path, data: bytes) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        with NamedTemporaryFile("wb", delete=False, dir=str(dest.parent)) as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_name = tmp.name
        os.replace(tmp_name, dest)

    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        dest = self.path_for(key)
        await asyncio.to_thread(self._write, dest, data)
        logger.debug(f"Stored {key} ({content_type}, {len(data)} bytes)")
        return self.public_url(key)

    async def delete(self, key: str) -> None:
        dest = self.path_for(key)
        await asyncio.to_thread(dest.unlink, missing_ok=True)
