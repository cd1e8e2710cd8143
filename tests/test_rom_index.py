"""Tests for the SQLite ROM index."""

import os
import sqlite3
from pathlib import Path

import pytest

from romcrate.db.rom_index import (
    IndexEntry,
    IndexMissingError,
    RomIndex,
    RomNotFoundError,
    short_name,
)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "index" / "romcrate.db"


class TestShortName:
    """Tests for member name prefix stripping."""

    def test_plain_name(self):
        assert short_name("pacman.6e") == "pacman.6e"

    def test_strips_directories(self):
        assert short_name("roms/pacman/pacman.6e") == "pacman.6e"

    def test_backslash_separator(self):
        assert short_name("roms\\pacman.6e") == "pacman.6e"

    def test_directory_entry(self):
        assert short_name("roms/") == ""


class TestCreate:
    """Tests for destructive index creation."""

    def test_creates_parent_directories(self, db_path):
        with RomIndex.create(db_path) as index:
            assert index.count() == 0
        assert db_path.exists()

    def test_recreate_empties_index(self, db_path):
        with RomIndex.create(db_path) as index:
            index.add_rom("pacman.6e", 0x3B2E5179, Path("/roms/pacman.zip"))
            index.commit()
            assert index.count() == 1

        with RomIndex.create(db_path) as index:
            assert index.count() == 0
            with pytest.raises(RomNotFoundError):
                index.find_rom("pacman.6e", 0x3B2E5179)

    def test_create_twice_is_empty(self, db_path):
        RomIndex.create(db_path).close()
        with RomIndex.create(db_path) as index:
            assert index.count() == 0


class TestOpen:
    """Tests for opening an existing index."""

    def test_missing_index(self, db_path):
        with pytest.raises(IndexMissingError) as exc_info:
            RomIndex.open(db_path)
        assert exc_info.value.path == db_path
        assert not db_path.exists()

    def test_open_sees_committed_rows(self, db_path):
        with RomIndex.create(db_path) as index:
            index.add_rom("pacman.6e", 0x3B2E5179, Path("/roms/pacman.zip"))

        with RomIndex.open(db_path) as index:
            entry = index.find_rom("pacman.6e", 0x3B2E5179)
        assert entry.path == Path("/roms/pacman.zip")

    def test_open_is_read_only(self, db_path):
        RomIndex.create(db_path).close()
        with RomIndex.open(db_path) as index:
            with pytest.raises(sqlite3.OperationalError):
                index.add_rom("x.bin", 1, Path("/roms/x.zip"))


class TestFindRom:
    """Tests for (name, crc) lookup."""

    def test_find_by_short_name(self, db_path):
        with RomIndex.create(db_path) as index:
            index.add_rom("set1/pacman.6e", 0x3B2E5179, Path("/roms/pacman.zip"))
            entry = index.find_rom("pacman.6e", 0x3B2E5179)

        assert entry == IndexEntry(
            name="pacman.6e",
            full_name="set1/pacman.6e",
            crc32=0x3B2E5179,
            path=Path("/roms/pacman.zip"),
        )

    def test_full_name_does_not_match(self, db_path):
        with RomIndex.create(db_path) as index:
            index.add_rom("set1/pacman.6e", 0x3B2E5179, Path("/roms/pacman.zip"))
            with pytest.raises(RomNotFoundError):
                index.find_rom("set1/pacman.6e", 0x3B2E5179)

    def test_both_fields_must_match(self, db_path):
        with RomIndex.create(db_path) as index:
            index.add_rom("pacman.6e", 0x3B2E5179, Path("/roms/pacman.zip"))
            with pytest.raises(RomNotFoundError):
                index.find_rom("pacman.6e", 0xDEADBEEF)
            with pytest.raises(RomNotFoundError):
                index.find_rom("pacman.6f", 0x3B2E5179)

    def test_duplicates_return_first_inserted(self, db_path):
        with RomIndex.create(db_path) as index:
            index.add_rom("pacman.6e", 0x3B2E5179, Path("/roms/b.zip"))
            index.add_rom("pacman.6e", 0x3B2E5179, Path("/roms/a.zip"))
            index.add_rom("pacman.6e", 0x3B2E5179, Path("/roms/c.zip"))

            assert index.count() == 3
            assert index.find_rom("pacman.6e", 0x3B2E5179).path == Path("/roms/b.zip")

    def test_max_crc(self, db_path):
        with RomIndex.create(db_path) as index:
            index.add_rom("ff.bin", 0xFFFFFFFF, Path("/roms/ff.zip"))
            assert index.find_rom("ff.bin", 0xFFFFFFFF).crc32 == 0xFFFFFFFF

    def test_non_utf8_path_round_trips(self, db_path):
        origin = Path(os.fsdecode(b"/roms/caf\xe9.zip"))
        with RomIndex.create(db_path) as index:
            index.add_rom("a.bin", 7, origin)
            assert index.find_rom("a.bin", 7).path == origin

    def test_not_found_message(self):
        error = RomNotFoundError("pacman.6e", 0xDEADBEEF)
        assert isinstance(error, KeyError)
        assert str(error) == "No ROM found matching pacman.6e with CRC 0xdeadbeef"


class TestFindByCrc:
    def test_returns_all_in_order(self, db_path):
        with RomIndex.create(db_path) as index:
            index.add_rom("a.bin", 5, Path("/roms/1.zip"))
            index.add_rom("b.bin", 6, Path("/roms/2.zip"))
            index.add_rom("renamed.bin", 5, Path("/roms/3.zip"))

            entries = index.find_by_crc(5)

        assert [e.name for e in entries] == ["a.bin", "renamed.bin"]
        assert entries[0].to_dict()["crc32"] == "00000005"
