"""
Error types raised by yumdb

Every error names the stage that failed, so callers can tell a broken
schema from a bad row or a missing checksum without parsing messages.
"""

from typing import ClassVar, Optional


class YumDBError(Exception):
    """Root of the error hierarchy. Don't raise this directly, use more specific error types."""

    default_stage: ClassVar[str] = "yumdb"

    def __init__(self, reason: str, *, stage: Optional[str] = None) -> None:
        self.reason = reason
        self.stage = stage or self.default_stage
        super().__init__(f"{self.stage}: {reason}")


class SchemaError(YumDBError):
    """The primary_db schema could not be created or is not usable."""

    default_stage = "creating primary db"


class StatementError(YumDBError):
    """A statement could not be prepared or executed."""

    default_stage = "executing statement"


class ScanError(YumDBError):
    """A stored row does not have the expected shape."""

    default_stage = "scanning rows"


class MissingChecksumError(YumDBError):
    default_stage = "inserting packages"


class FileInsertError(YumDBError):
    default_stage = "inserting files"


class MetadataError(YumDBError):
    """A primary metadata document could not be decoded."""

    default_stage = "decoding primary metadata"


class RpmQueryError(YumDBError):
    default_stage = "querying rpm"
