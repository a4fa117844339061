from __future__ import annotations

from typing import Protocol


class ObjectStore(Protocol):
    """Minimal protocol for the durable object store images are relocated to.

    Implementations must tolerate concurrent calls from independent
    extractions.
    """

    async def upload(
        self, key: str, data: bytes, content_type: str
    ) -> str:  # pragma: no cover - typing
        """Store ``data`` under ``key`` and return its public URL."""
        ...

    async def delete(self, key: str) -> None:  # pragma: no cover - typing
        ...
