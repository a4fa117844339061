"""Random-access reading of ZIP containers held in memory.

An ``ArchiveReader`` is the only object that touches a live ZIP handle. It is
cheap to construct from the same immutable bytes, so each extraction pass
opens its own reader and closes it before doing anything that can suspend.
"""

from __future__ import annotations

import io
import logging
import lzma
import zipfile
import zlib
from types import TracebackType

from manuscript_ingest.ingest.error_handling import DecodeError, InvalidArchive, ReadFailure

logger = logging.getLogger(__name__)


class ArchiveReader:
    """Enumerate and read members of a ZIP archive held in ``data``."""

    def __init__(self, data: bytes) -> None:
        try:
            self._zip: zipfile.ZipFile | None = zipfile.ZipFile(io.BytesIO(data))
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError, EOFError) as exc:
            raise InvalidArchive(exc) from exc
        self._infos = self._zip.infolist()

    def __enter__(self) -> ArchiveReader:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._zip is not None:
            self._zip.close()
            self._zip = None

    @property
    def closed(self) -> bool:
        return self._zip is None

    def _archive(self) -> zipfile.ZipFile:
        if self._zip is None:
            raise InvalidArchive(ValueError("archive reader is closed"))
        return self._zip

    def names(self) -> list[str]:
        """Member names in archive enumeration order, directories included."""
        self._archive()
        return [info.filename for info in self._infos]

    def is_dir(self, name: str) -> bool:
        return name.endswith("/")

    def contains(self, name: str) -> bool:
        self._archive()
        return any(info.filename == name for info in self._infos)

    def __len__(self) -> int:
        return len(self._infos)

    def read_bytes(self, member: str | int) -> bytes:
        """Read a member, by name or enumeration index, fully into memory.

        Reading by index addresses that exact entry, even when the archive
        holds several entries with the same name.
        """
        archive = self._archive()
        target: str | zipfile.ZipInfo
        if isinstance(member, int):
            try:
                target = self._infos[member]
            except IndexError as exc:
                raise ReadFailure(f"#{member}", exc) from exc
            name = target.filename
        else:
            target = name = member
        try:
            return archive.read(target)
        except KeyError as exc:
            raise ReadFailure(name, exc) from exc
        except (
            zipfile.BadZipFile,
            zlib.error,
            lzma.LZMAError,
            OSError,
            EOFError,
            NotImplementedError,
            RuntimeError,
        ) as exc:
            # RuntimeError covers encrypted members read without a password
            raise ReadFailure(name, exc) from exc

    def read_text(self, member: str | int) -> str:
        """Read a member the caller knows to be UTF-8 text."""
        raw = self.read_bytes(member)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            name = member if isinstance(member, str) else self._infos[member].filename
            raise DecodeError(name, exc) from exc
