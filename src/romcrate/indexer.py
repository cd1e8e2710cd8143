"""Scan a directory of zip archives into the ROM index.

Every direct child of the source directory is tried as a zip archive.
Files that are not archives are skipped with a warning. When a member
of an archive cannot be read, the rest of that archive is abandoned
(members already recorded stay in the index) and scanning moves on to
the next file.

CRCs are taken from the archive's central directory; member data is
never decompressed here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from romcrate.archive.zipraw import ArchiveFormatError, MemberReadError, RawZipReader
from romcrate.db.rom_index import RomIndex

logger = logging.getLogger(__name__)


class DirectoryError(Exception):
    """Raised when the source directory cannot be scanned."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        super().__init__(f"Cannot scan {path}: {reason}")


def resolve_source_dir(source_dir: Path | str) -> Path:
    """Canonicalize a source directory path.

    Raises:
        DirectoryError: If the path does not exist or is not a directory
    """
    try:
        path = Path(source_dir).resolve(strict=True)
    except (OSError, RuntimeError) as e:
        raise DirectoryError(Path(source_dir), str(e)) from e

    if not path.is_dir():
        raise DirectoryError(path, "not a directory")
    return path


@dataclass
class IndexReport:
    """Summary of a scan."""

    source_dir: Path
    archives_indexed: int = 0
    roms_indexed: int = 0
    skipped: list[tuple[Path, str]] = field(default_factory=list)
    abandoned: list[tuple[Path, str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "source_dir": str(self.source_dir),
            "archives_indexed": self.archives_indexed,
            "roms_indexed": self.roms_indexed,
            "skipped": [{"path": str(p), "reason": r} for p, r in self.skipped],
            "abandoned": [{"path": str(p), "reason": r} for p, r in self.abandoned],
        }


class RomIndexer:
    """Populates a RomIndex from a directory of archives.

    Usage:
        with RomIndex.create(db_path) as index:
            report = RomIndexer(index).scan(source_dir)
    """

    def __init__(
        self,
        index: RomIndex,
        on_archive: Callable[[Path], None] | None = None,
    ):
        """Initialize indexer.

        Args:
            index: Writable index to insert into
            on_archive: Called with each directory entry before it is scanned
        """
        self._index = index
        self._on_archive = on_archive

    def scan(self, source_dir: Path | str) -> IndexReport:
        """Index every archive directly inside source_dir.

        Raises:
            DirectoryError: If source_dir is missing, not a directory or
                cannot be listed
        """
        path = resolve_source_dir(source_dir)
        try:
            entries = sorted(path.iterdir())
        except OSError as e:
            raise DirectoryError(path, f"cannot list directory: {e}") from e

        report = IndexReport(source_dir=path)
        for entry in entries:
            if self._on_archive is not None:
                self._on_archive(entry)
            self._scan_archive(entry, report)

        logger.info(
            f"Indexed {report.roms_indexed} ROMs from {report.archives_indexed} archives "
            f"({len(report.skipped)} skipped, {len(report.abandoned)} abandoned)"
        )
        return report

    def _scan_archive(self, path: Path, report: IndexReport) -> None:
        try:
            reader = RawZipReader(path)
        except ArchiveFormatError as e:
            logger.warning(f"Skipping {path}: {e.reason}")
            report.skipped.append((path, e.reason))
            return

        count = 0
        complete = True
        with reader:
            try:
                for member in reader.members():
                    self._index.add_rom(member.name, member.crc32, path)
                    count += 1
            except MemberReadError as e:
                logger.warning(
                    f"Abandoning rest of {path} after {count} members: {e.reason} ({e.member})"
                )
                report.abandoned.append((path, f"{e.member}: {e.reason}"))
                complete = False

        self._index.commit()
        # Abandoned archives keep their rows but are not counted as indexed
        if complete:
            report.archives_indexed += 1
        report.roms_indexed += count
        logger.debug(f"Indexed {count} members from {path}")


def build_index(
    source_dir: Path | str,
    db_path: Path | str,
    on_archive: Callable[[Path], None] | None = None,
) -> IndexReport:
    """Recreate the index at db_path and scan source_dir into it.

    Args:
        source_dir: Directory of zip archives
        db_path: Index database (any existing one is deleted)
        on_archive: Optional per-entry callback

    Returns:
        IndexReport

    Raises:
        DirectoryError: If source_dir is not a directory (the existing
            index is left untouched)
    """
    path = resolve_source_dir(source_dir)
    with RomIndex.create(db_path) as index:
        return RomIndexer(index, on_archive=on_archive).scan(path)
