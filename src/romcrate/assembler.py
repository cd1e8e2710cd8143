"""Rebuild a game archive from indexed ROMs.

Resolution happens in two stages:

1. RomResolver: (rom name, CRC) -> IndexEntry. The index says which
   archive held a matching ROM when it was scanned.
2. RomExtractor: (IndexEntry, CRC) -> raw payload. The origin archive is
   re-scanned by CRC alone, because its member may be stored under a
   different name or path prefix, and the file may have changed since it
   was indexed.

Nothing is written until every ROM of the game has been resolved.
Payloads are copied without recompression; only the entry name changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from romcrate.archive.zipraw import (
    ArchiveFormatError,
    MemberReadError,
    RawZipReader,
    RawZipWriter,
    ZipMember,
)
from romcrate.dat.models import Datafile, Rom, format_crc
from romcrate.db.rom_index import IndexEntry, RomNotFoundError

logger = logging.getLogger(__name__)


class AssemblyError(Exception):
    """Base class for errors that abort a rebuild."""

    pass


class GameNotFoundError(AssemblyError):
    """Raised when the DAT has no game with the requested name."""

    def __init__(self, game: str):
        self.game = game
        super().__init__(f"Game not found in DAT: {game}")


class BadDumpError(AssemblyError):
    """Raised when a game contains ROMs that are not good dumps."""

    def __init__(self, game: str, roms: list[str]):
        self.game = game
        self.roms = roms
        super().__init__(
            f"Game {game} has ROMs without a good dump: {', '.join(roms)}"
        )


class RomLookupError(AssemblyError, LookupError):
    """Raised when one or more ROMs are not in the index."""

    def __init__(self, game: str, roms: list[str], causes: list[Exception]):
        self.game = game
        self.roms = roms
        self.causes = causes
        lines = "\n".join(f"  - {cause}" for cause in causes)
        super().__init__(
            f"{len(roms)} ROM(s) of {game} not found in index: "
            f"{', '.join(roms)}\n{lines}"
        )


class ChecksumMismatchError(AssemblyError):
    """Raised when an origin archive no longer holds the indexed CRC."""

    def __init__(self, rom_name: str, crc: int, origin: Path):
        self.rom_name = rom_name
        self.crc = crc
        self.origin = origin
        super().__init__(
            f"No member of {origin} matches CRC {crc:08x} for {rom_name} "
            f"(archive changed since indexing?)"
        )


@runtime_checkable
class RomResolver(Protocol):
    """Maps a ROM name and CRC to where it was indexed."""

    def find_rom(self, name: str, crc32: int) -> IndexEntry:
        """Raises RomNotFoundError if nothing matches."""
        ...


@runtime_checkable
class RomExtractor(Protocol):
    """Reads a ROM's raw compressed payload from its origin."""

    def extract(self, entry: IndexEntry, crc32: int) -> tuple[ZipMember, bytes]:
        """Raises ChecksumMismatchError if no member has the CRC."""
        ...


class ArchiveExtractor:
    """Extracts raw payloads from zip archives by CRC."""

    def extract(self, entry: IndexEntry, crc32: int) -> tuple[ZipMember, bytes]:
        with RawZipReader(entry.path) as reader:
            member = reader.find_by_crc(crc32)
            if member is None:
                raise ChecksumMismatchError(entry.name, crc32, entry.path)
            return member, reader.read_raw(member)


@dataclass
class AssemblyResult:
    """Receipt for a rebuilt game."""

    game: str
    output_path: Path
    roms: list[tuple[str, Path]] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "game": self.game,
            "output_path": str(self.output_path),
            "roms": [{"name": name, "origin": str(origin)} for name, origin in self.roms],
        }


class ArchiveAssembler:
    """Rebuilds game archives from a DAT and a ROM index.

    Usage:
        with RomIndex.open(db_path) as index:
            assembler = ArchiveAssembler(index)
            result = assembler.assemble(datafile, "pacman", output_dir)
    """

    def __init__(self, resolver: RomResolver, extractor: RomExtractor | None = None):
        """Initialize assembler.

        Args:
            resolver: Index lookup (usually a RomIndex)
            extractor: Payload reader (defaults to ArchiveExtractor)
        """
        self._resolver = resolver
        self._extractor = extractor or ArchiveExtractor()

    def resolve(self, datafile: Datafile, game_name: str) -> list[tuple[Rom, IndexEntry]]:
        """Resolve every ROM of a game through the index.

        Raises:
            GameNotFoundError: If the game is not in the DAT
            BadDumpError: If any ROM is a bad dump or has no dump
            RomLookupError: If any ROM is missing from the index
        """
        game = datafile.find_game(game_name)
        if game is None:
            raise GameNotFoundError(game_name)

        bad = game.bad_roms
        if bad:
            raise BadDumpError(game.name, [rom.name for rom in bad])

        resolved: list[tuple[Rom, IndexEntry]] = []
        missing: list[str] = []
        causes: list[Exception] = []
        for rom in game.roms:
            if rom.crc is None:
                raise AssemblyError(f"Good dump {rom.name} of {game.name} has no CRC in the DAT")
            try:
                resolved.append((rom, self._resolver.find_rom(rom.name, rom.crc)))
            except RomNotFoundError as e:
                missing.append(rom.name)
                causes.append(e)

        if missing:
            raise RomLookupError(game.name, missing, causes)
        return resolved

    def assemble(
        self, datafile: Datafile, game_name: str, output_dir: Path | str
    ) -> AssemblyResult:
        """Rebuild <output_dir>/<game_name>.zip.

        Raises:
            GameNotFoundError, BadDumpError, RomLookupError: Before any output
            ChecksumMismatchError: If an origin archive changed since indexing
            AssemblyError: If an origin archive cannot be read or the output
                cannot be written
        """
        resolved = self.resolve(datafile, game_name)
        output_path = Path(output_dir) / f"{game_name}.zip"
        result = AssemblyResult(game=game_name, output_path=output_path)
        written: dict[str, int] = {}

        try:
            with RawZipWriter(output_path) as writer:
                for rom, entry in resolved:
                    if rom.name in written:
                        if written[rom.name] != rom.crc:
                            raise AssemblyError(
                                f"{game_name} lists {rom.name} twice with different CRCs"
                            )
                        logger.debug(f"Skipping duplicate entry {rom.name} in {game_name}")
                        continue

                    logger.debug(
                        f"Extracting {rom.name} ({format_crc(rom.crc)}) from {entry.path}"
                    )
                    try:
                        member, payload = self._extractor.extract(entry, rom.crc)
                    except ChecksumMismatchError as e:
                        if e.rom_name == rom.name:
                            raise
                        raise ChecksumMismatchError(rom.name, e.crc, e.origin) from e
                    writer.write_raw(rom.name, member, payload)
                    written[rom.name] = rom.crc
                    result.roms.append((rom.name, entry.path))
        except (ArchiveFormatError, MemberReadError, OSError, ValueError) as e:
            raise AssemblyError(f"Failed to rebuild {game_name}: {e}") from e

        logger.info(f"Rebuilt {game_name} with {len(result.roms)} ROMs at {output_path}")
        return result
