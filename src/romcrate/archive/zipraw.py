"""Raw zip member access.

Reads and writes compressed member payloads without inflating or
deflating them. Member listings (names, CRC-32, sizes) come from the
central directory through zipfile; payloads are located by parsing each
member's local file header.

Local header layout (APPNOTE 4.3.7), little-endian:
    signature         4s  b"PK\\x03\\x04"
    version needed    H
    flags             H
    method            H
    mod time          H   (DOS)
    mod date          H   (DOS)
    crc-32            I
    compressed size   I
    uncompressed size I
    name length       H
    extra length      H
"""

from __future__ import annotations

import logging
import os
import struct
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

LOCAL_HEADER = struct.Struct("<4sHHHHHIIIHH")
CENTRAL_HEADER = struct.Struct("<4sHHHHHHIIIHHHHHII")
END_OF_CENTRAL_DIR = struct.Struct("<4sHHHHIIH")

LOCAL_MAGIC = b"PK\x03\x04"
CENTRAL_MAGIC = b"PK\x01\x02"
END_MAGIC = b"PK\x05\x06"

FLAG_ENCRYPTED = 0x0001
FLAG_DATA_DESCRIPTOR = 0x0008
FLAG_UTF8 = 0x0800

MAX_U32 = 0xFFFFFFFF
MAX_U16 = 0xFFFF


class ArchiveFormatError(Exception):
    """Raised when a file cannot be opened or written as a zip archive."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class MemberReadError(Exception):
    """Raised when one member of an otherwise valid archive is unreadable."""

    def __init__(self, path: Path, member: str, reason: str):
        self.path = path
        self.member = member
        self.reason = reason
        super().__init__(f"{path}: member {member!r}: {reason}")


@dataclass
class ZipMember:
    """A member as listed in an archive's central directory."""

    name: str
    crc32: int
    compress_type: int
    compress_size: int
    file_size: int
    flag_bits: int
    date_time: tuple[int, int, int, int, int, int]
    extract_version: int
    create_version: int
    create_system: int
    external_attr: int
    data_offset: int

    @property
    def is_dir(self) -> bool:
        return self.name.endswith("/")

    @property
    def is_encrypted(self) -> bool:
        return bool(self.flag_bits & FLAG_ENCRYPTED)


def _dos_time(date_time: tuple[int, ...]) -> tuple[int, int]:
    """Pack a (Y, M, D, h, m, s) tuple into DOS (time, date) words."""
    year, month, day, hour, minute, second = date_time
    year = min(max(year, 1980), 2107)
    dos_time = (hour << 11) | (minute << 5) | (second // 2)
    dos_date = ((year - 1980) << 9) | (month << 5) | day
    return dos_time, dos_date


def _encode_name(name: str, flags: int) -> tuple[bytes, int]:
    try:
        return name.encode("ascii"), flags & ~FLAG_UTF8
    except UnicodeEncodeError:
        return name.encode("utf-8"), flags | FLAG_UTF8


class RawZipReader:
    """Read-only view of a zip archive's members and raw payloads.

    Usage:
        with RawZipReader(path) as reader:
            for member in reader.members():
                payload = reader.read_raw(member)
    """

    def __init__(self, path: Path | str):
        """Open an archive.

        Raises:
            ArchiveFormatError: If the file is not a readable zip archive
        """
        self.path = Path(path)
        try:
            self._fp = open(self.path, "rb")
        except OSError as e:
            raise ArchiveFormatError(self.path, f"cannot open: {e}") from e

        try:
            self._zip = zipfile.ZipFile(self._fp, "r")
            self._size = os.fstat(self._fp.fileno()).st_size
        except (zipfile.BadZipFile, OSError, EOFError, ValueError) as e:
            self._fp.close()
            raise ArchiveFormatError(self.path, f"not a zip archive: {e}") from e

    def _locate(self, info: zipfile.ZipInfo) -> int:
        """Validate a member's local header and return its payload offset."""
        try:
            self._fp.seek(info.header_offset)
            header = self._fp.read(LOCAL_HEADER.size)
        except OSError as e:
            raise MemberReadError(self.path, info.filename, str(e)) from e
        if len(header) != LOCAL_HEADER.size:
            raise MemberReadError(self.path, info.filename, "truncated local header")

        fields = LOCAL_HEADER.unpack(header)
        if fields[0] != LOCAL_MAGIC:
            raise MemberReadError(self.path, info.filename, "bad local header signature")

        name_len, extra_len = fields[9], fields[10]
        data_offset = info.header_offset + LOCAL_HEADER.size + name_len + extra_len
        if data_offset + info.compress_size > self._size:
            raise MemberReadError(self.path, info.filename, "payload extends past end of file")
        return data_offset

    def members(self) -> Iterator[ZipMember]:
        """Iterate members in central directory order.

        Raises:
            MemberReadError: On the first member whose local header is broken
        """
        for info in self._zip.infolist():
            yield ZipMember(
                name=info.filename,
                crc32=info.CRC,
                compress_type=info.compress_type,
                compress_size=info.compress_size,
                file_size=info.file_size,
                flag_bits=info.flag_bits,
                date_time=info.date_time,
                extract_version=info.extract_version,
                create_version=info.create_version,
                create_system=info.create_system,
                external_attr=info.external_attr,
                data_offset=self._locate(info),
            )

    def find_by_crc(self, crc32: int) -> ZipMember | None:
        """Get the first member with this CRC-32, ignoring its name."""
        for member in self.members():
            if member.crc32 == crc32:
                return member
        return None

    def read_raw(self, member: ZipMember) -> bytes:
        """Read a member's compressed payload exactly as stored.

        Raises:
            MemberReadError: If the member is encrypted or the read is short
        """
        if member.is_encrypted:
            raise MemberReadError(self.path, member.name, "encrypted members are not supported")

        try:
            self._fp.seek(member.data_offset)
            payload = self._fp.read(member.compress_size)
        except OSError as e:
            raise MemberReadError(self.path, member.name, str(e)) from e
        if len(payload) != member.compress_size:
            raise MemberReadError(
                self.path,
                member.name,
                f"short read: {len(payload)} of {member.compress_size} bytes",
            )
        return payload

    def close(self) -> None:
        self._zip.close()
        self._fp.close()

    def __enter__(self) -> "RawZipReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class RawZipWriter:
    """Write a zip archive from raw member payloads.

    Data goes to a temporary file beside the destination; commit() moves
    it into place, abort() deletes it. Used as a context manager, the
    archive is committed only if the block exits without an exception.

    Usage:
        with RawZipWriter(dest) as writer:
            writer.write_raw("pacman.6e", member, payload)
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".partial", dir=self.path.parent
        )
        self._tmp_path = Path(tmp_name)
        self._fp = os.fdopen(fd, "wb")
        self._central: list[bytes] = []
        self._names: set[str] = set()

    @property
    def names(self) -> set[str]:
        """Entry names written so far."""
        return set(self._names)

    def write_raw(self, name: str, member: ZipMember, payload: bytes) -> None:
        """Append a member under a new name, payload copied unchanged.

        Raises:
            ValueError: If name was already written or the payload size
                does not match the member
            ArchiveFormatError: If the archive would need ZIP64
        """
        if name in self._names:
            raise ValueError(f"Duplicate entry name: {name}")
        if len(payload) != member.compress_size:
            raise ValueError(
                f"Payload for {name} is {len(payload)} bytes, expected {member.compress_size}"
            )

        offset = self._fp.tell()
        if max(offset, member.compress_size, member.file_size) >= MAX_U32:
            raise ArchiveFormatError(self.path, "ZIP64 output is not supported")
        if len(self._central) >= MAX_U16:
            raise ArchiveFormatError(self.path, "too many entries without ZIP64")

        encoded, flags = _encode_name(name, member.flag_bits & ~FLAG_DATA_DESCRIPTOR)
        dos_time, dos_date = _dos_time(member.date_time)
        extract_version = max(member.extract_version, 20)

        self._fp.write(
            LOCAL_HEADER.pack(
                LOCAL_MAGIC,
                extract_version,
                flags,
                member.compress_type,
                dos_time,
                dos_date,
                member.crc32,
                member.compress_size,
                member.file_size,
                len(encoded),
                0,
            )
        )
        self._fp.write(encoded)
        self._fp.write(payload)

        self._central.append(
            CENTRAL_HEADER.pack(
                CENTRAL_MAGIC,
                (member.create_system << 8) | member.create_version,
                extract_version,
                flags,
                member.compress_type,
                dos_time,
                dos_date,
                member.crc32,
                member.compress_size,
                member.file_size,
                len(encoded),
                0,  # extra length
                0,  # comment length
                0,  # disk number start
                0,  # internal attributes
                member.external_attr,
                offset,
            )
            + encoded
        )
        self._names.add(name)

    def commit(self) -> Path:
        """Write the central directory and move the archive into place."""
        cd_offset = self._fp.tell()
        for record in self._central:
            self._fp.write(record)
        cd_size = self._fp.tell() - cd_offset

        if cd_offset + cd_size >= MAX_U32:
            self.abort()
            raise ArchiveFormatError(self.path, "ZIP64 output is not supported")

        count = len(self._central)
        self._fp.write(
            END_OF_CENTRAL_DIR.pack(END_MAGIC, 0, 0, count, count, cd_size, cd_offset, 0)
        )
        self._fp.close()
        self._tmp_path.replace(self.path)
        logger.debug(f"Wrote {count} entries to {self.path}")
        return self.path

    def abort(self) -> None:
        """Discard everything written so far."""
        if not self._fp.closed:
            self._fp.close()
        self._tmp_path.unlink(missing_ok=True)

    def __enter__(self) -> "RawZipWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.abort()
