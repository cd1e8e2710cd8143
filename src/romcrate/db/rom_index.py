"""Persistent ROM index.

Maps (short name, CRC-32) to the archive a ROM was seen in. The index is
a hint, not an authority: the archive may have changed since it was
scanned, so the assembler re-checks the CRC when extracting.

Rows are never deduplicated. Several archives often hold the same ROM;
lookups return the first row in insertion order.
"""

from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass
from pathlib import Path

from romcrate.db.connection import get_connection


ROM_INDEX_SCHEMA_SQL = """
-- roms: one row per archive member seen during a scan
CREATE TABLE roms (
    name TEXT NOT NULL,           -- member name without directory prefix
    full_name TEXT NOT NULL,      -- member name as stored in the archive
    crc32 INTEGER NOT NULL,
    path BLOB NOT NULL            -- os.fsencode() of the archive path
);

CREATE INDEX idx_roms_name_crc ON roms(name, crc32);
CREATE INDEX idx_roms_crc ON roms(crc32);
"""


class IndexMissingError(Exception):
    """Raised when opening an index that has not been created."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(
            f"ROM index not found: {path}\n\n"
            f"Build it first with:\n\n"
            f"  romcrate index <source-dir>\n"
        )


class RomNotFoundError(KeyError):
    """Raised when no indexed ROM matches a name and CRC."""

    def __init__(self, name: str, crc: int):
        self.name = name
        self.crc = crc
        super().__init__(name, crc)

    def __str__(self) -> str:
        return f"No ROM found matching {self.name} with CRC {self.crc:#010x}"


def short_name(full_name: str) -> str:
    """Strip any directory prefix from an archive member name."""
    return full_name.replace("\\", "/").rsplit("/", 1)[-1]


@dataclass
class IndexEntry:
    """Where a ROM was found during scanning."""

    name: str
    full_name: str
    crc32: int
    path: Path

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "full_name": self.full_name,
            "crc32": f"{self.crc32:08x}",
            "path": str(self.path),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "IndexEntry":
        return cls(
            name=row["name"],
            full_name=row["full_name"],
            crc32=row["crc32"],
            path=Path(os.fsdecode(bytes(row["path"]))),
        )


class RomIndex:
    """SQLite-backed ROM index.

    Usage:
        # Rebuild from scratch (destroys any previous index)
        with RomIndex.create(db_path) as index:
            index.add_rom("roms/pacman.6e", 0xC1E6AB10, Path("/roms/pacman.zip"))
            index.commit()

        # Look up during a rebuild
        with RomIndex.open(db_path) as index:
            entry = index.find_rom("pacman.6e", 0xC1E6AB10)
    """

    def __init__(self, conn: sqlite3.Connection, path: Path | None = None):
        """Wrap an existing connection.

        Args:
            conn: SQLite connection with the roms schema
            path: Database file, for messages
        """
        self._conn = conn
        self.path = path

    @classmethod
    def create(cls, path: Path | str) -> "RomIndex":
        """Create an empty index, deleting any existing one at path."""
        path = Path(path)
        for stale in (path, path.with_name(path.name + "-journal")):
            if stale.exists():
                stale.unlink()
        path.parent.mkdir(parents=True, exist_ok=True)

        conn = get_connection(path)
        conn.executescript(ROM_INDEX_SCHEMA_SQL)
        conn.commit()
        return cls(conn, path)

    @classmethod
    def open(cls, path: Path | str) -> "RomIndex":
        """Open an existing index read-only.

        Raises:
            IndexMissingError: If no index exists at path
        """
        path = Path(path)
        if not path.is_file():
            raise IndexMissingError(path)
        return cls(get_connection(path, read_only=True), path)

    def add_rom(self, full_name: str, crc32: int, path: Path | str) -> None:
        """Record an archive member. Call commit() to persist."""
        self._conn.execute(
            "INSERT INTO roms (name, full_name, crc32, path) VALUES (?, ?, ?, ?)",
            (short_name(full_name), full_name, crc32, os.fsencode(path)),
        )

    def find_rom(self, name: str, crc32: int) -> IndexEntry:
        """Find the first indexed ROM with this short name and CRC.

        Raises:
            RomNotFoundError: If no row matches
        """
        row = self._conn.execute(
            """
            SELECT name, full_name, crc32, path FROM roms
            WHERE name = ? AND crc32 = ?
            ORDER BY rowid
            LIMIT 1
            """,
            (name, crc32),
        ).fetchone()

        if row is None:
            raise RomNotFoundError(name, crc32)
        return IndexEntry.from_row(row)

    def find_by_crc(self, crc32: int) -> list[IndexEntry]:
        """Find every indexed ROM with this CRC, in insertion order."""
        rows = self._conn.execute(
            "SELECT name, full_name, crc32, path FROM roms WHERE crc32 = ? ORDER BY rowid",
            (crc32,),
        ).fetchall()
        return [IndexEntry.from_row(row) for row in rows]

    def count(self) -> int:
        """Number of indexed rows."""
        return self._conn.execute("SELECT COUNT(*) FROM roms").fetchone()[0]

    def commit(self) -> None:
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "RomIndex":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None and self._conn.in_transaction:
            self._conn.commit()
        self.close()
