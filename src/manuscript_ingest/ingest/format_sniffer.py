from __future__ import annotations

import io
import logging
import zipfile

from manuscript_ingest.model.content import ContentFormat

logger = logging.getLogger(__name__)

ZIP_LOCAL_HEADER = b"PK\x03\x04"


def _classify_member(name: str) -> ContentFormat | None:
    lower = name.lower()
    if lower == "mimetype" or "meta-inf/container.xml" in lower:
        return ContentFormat.EPUB
    if "[content_types].xml" in lower or "word/document.xml" in lower:
        return ContentFormat.DOCX
    return None


def detect_format(data: bytes) -> ContentFormat:
    """Classify a manuscript container from its bytes alone.

    Only the ZIP central directory is read; nothing is decompressed. Member
    names are scanned in directory order and the first EPUB or DOCX marker
    decides. Anything that is not an openable ZIP archive is UNKNOWN.
    """
    if len(data) < 4 or data[:4] != ZIP_LOCAL_HEADER:
        return ContentFormat.UNKNOWN

    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            names = archive.namelist()
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError, EOFError) as exc:
        logger.debug(f"Format sniffing could not open archive: {exc}")
        return ContentFormat.UNKNOWN

    for name in names:
        verdict = _classify_member(name)
        if verdict is not None:
            return verdict

    return ContentFormat.UNKNOWN
