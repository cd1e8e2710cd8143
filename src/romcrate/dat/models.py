"""Data model for parsed DAT catalogs.

A DAT file describes games and the ROMs each game needs. ROMs are
identified by CRC-32, never by file name: the name is only the name the
ROM gets inside the rebuilt archive.

Status and dispose values use lenient decoding. An unrecognized token is
not an error; it decodes to the documented default (good / not
disposable). DAT files in the wild carry vendor-specific values for both
fields and rejecting them would make whole catalogs unusable.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

CRC_PATTERN = re.compile(r"^[0-9a-fA-F]{1,8}$")


class RomStatus(Enum):
    """Dump quality of a ROM."""

    GOOD = "good"
    BAD_DUMP = "baddump"
    NO_DUMP = "nodump"


DEFAULT_STATUS = RomStatus.GOOD
DEFAULT_DISPOSE = False


def parse_status(value: str | None) -> RomStatus:
    """Decode a status token, falling back to GOOD for unknown values."""
    if value is None:
        return DEFAULT_STATUS
    try:
        return RomStatus(value.strip().lower())
    except ValueError:
        logger.debug(f"Unknown rom status {value!r}, using {DEFAULT_STATUS.value}")
        return DEFAULT_STATUS


def parse_dispose(value: str | None) -> bool:
    """Decode a dispose token ("yes"/"no"), falling back to False."""
    if value == "yes":
        return True
    if value is not None and value != "no":
        logger.debug(f"Unknown dispose value {value!r}, using {DEFAULT_DISPOSE}")
    return DEFAULT_DISPOSE


def parse_crc(value: str | None) -> int | None:
    """Decode a hexadecimal CRC-32.

    Raises:
        ValueError: If the value is present but not 1-8 hex digits
    """
    if value is None:
        return None
    if not CRC_PATTERN.match(value):
        raise ValueError(f"Invalid CRC {value!r}: expected up to 8 hex digits")
    return int(value, 16)


def format_crc(crc: int | None) -> str:
    """Format a CRC-32 the way DAT files write it."""
    return "" if crc is None else f"{crc:08x}"


@dataclass
class Rom:
    """A ROM a game requires."""

    name: str
    crc: int | None = None
    sha1: str | None = None
    dispose: bool = DEFAULT_DISPOSE
    status: RomStatus = DEFAULT_STATUS

    @property
    def is_good(self) -> bool:
        """True if this ROM can be resolved and copied."""
        return self.status == RomStatus.GOOD

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "crc": format_crc(self.crc),
            "sha1": self.sha1 or "",
            "dispose": self.dispose,
            "status": self.status.value,
        }


@dataclass
class Disk:
    """A CHD disk image. Informational only; never rebuilt."""

    name: str
    sha1: str = ""
    md5: str = ""
    region: str = ""
    index: int = 0

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "sha1": self.sha1,
            "md5": self.md5,
            "region": self.region,
            "index": self.index,
        }


@dataclass
class Game:
    """A game entry with the ROMs and disks it needs."""

    name: str
    description: str
    roms: list[Rom] = field(default_factory=list)
    disks: list[Disk] = field(default_factory=list)

    @property
    def bad_roms(self) -> list[Rom]:
        """ROMs whose status prevents the game from being rebuilt."""
        return [rom for rom in self.roms if not rom.is_good]

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "description": self.description,
            "roms": [rom.to_dict() for rom in self.roms],
            "disks": [disk.to_dict() for disk in self.disks],
        }


@dataclass
class Datafile:
    """A parsed DAT catalog: games in document order."""

    games: list[Game] = field(default_factory=list)

    def find_game(self, name: str) -> Game | None:
        """Get the first game whose name matches exactly."""
        for game in self.games:
            if game.name == name:
                return game
        return None

    def __len__(self) -> int:
        return len(self.games)

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {"games": [game.to_dict() for game in self.games]}
