"""Zip container access without recompression."""

from romcrate.archive.zipraw import (
    ArchiveFormatError,
    MemberReadError,
    RawZipReader,
    RawZipWriter,
    ZipMember,
)

__all__ = [
    "ArchiveFormatError",
    "MemberReadError",
    "RawZipReader",
    "RawZipWriter",
    "ZipMember",
]
