"""Error taxonomy for manuscript extraction.

Every error is terminal for the extraction call that raised it. Only
``StorageFailure`` is worth retrying; the rest describe the uploaded file
itself and will fail the same way again.
"""

from __future__ import annotations


class ExtractionError(Exception):
    """Base class for all extraction failures."""

    retryable = False


class UnsupportedFormat(ExtractionError):
    """The bytes are neither an EPUB nor a DOCX container."""

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail
        message = "Unsupported file format. Only EPUB and DOCX are supported."
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class InvalidArchive(ExtractionError):
    """The bytes could not be opened as a ZIP archive."""

    def __init__(self, cause: Exception | None = None) -> None:
        self.cause = cause
        message = "Invalid archive"
        if cause:
            message += f": {cause}"
        super().__init__(message)


class ReadFailure(ExtractionError):
    """A member could not be read or decompressed."""

    def __init__(self, member: str, cause: Exception | None = None) -> None:
        self.member = member
        self.cause = cause
        message = f"Failed to read archive member '{member}'"
        if cause:
            message += f": {cause}"
        super().__init__(message)


class DecodeError(ReadFailure):
    """A member expected to hold text is not valid UTF-8."""

    def __init__(self, member: str, cause: Exception | None = None) -> None:
        self.member = member
        self.cause = cause
        message = f"Archive member '{member}' is not valid UTF-8"
        if cause:
            message += f": {cause}"
        ExtractionError.__init__(self, message)


class StorageFailure(ExtractionError):
    """An image upload to the object store failed."""

    retryable = True

    def __init__(self, key: str, cause: Exception | None = None) -> None:
        self.key = key
        self.cause = cause
        message = f"Failed to upload '{key}'"
        if cause:
            message += f": {cause}"
        super().__init__(message)


__all__ = [
    "DecodeError",
    "ExtractionError",
    "InvalidArchive",
    "ReadFailure",
    "StorageFailure",
    "UnsupportedFormat",
]
