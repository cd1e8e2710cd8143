"""Parse DAT catalogs (MAME / Logiqx XML) into a Datafile.

Expected format:
<mame>
  <game name="pacman">
    <description>Pac-Man (Midway)</description>
    <rom name="pacman.6e" size="4096" crc="c1e6ab10" sha1="..."/>
    <rom name="pacman.6f" crc="1a6fb2d4" status="baddump"/>
    <disk name="pacman" sha1="..." md5="..." region="ide" index="0"/>
  </game>
  ...
</mame>

Fields may be written as attributes or as child elements; attributes
win when both are present. Modern listings use <machine> instead of
<game>; both are read.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import BinaryIO

from romcrate.dat.models import (
    Datafile,
    Disk,
    Game,
    Rom,
    parse_crc,
    parse_dispose,
    parse_status,
)

GAME_TAGS = ("game", "machine")


class MetadataError(Exception):
    """Raised when a DAT document is malformed or missing required fields."""

    def __init__(self, message: str, game: str | None = None):
        self.game = game
        full_message = f"[{game}] {message}" if game else message
        super().__init__(full_message)


def _field(elem: ET.Element, name: str) -> str | None:
    """Read a field from an attribute or a child element's text."""
    value = elem.get(name)
    if value is not None:
        return value
    child = elem.find(name)
    if child is None:
        return None
    return (child.text or "").strip()


def _required(elem: ET.Element, name: str, game: str | None = None) -> str:
    value = _field(elem, name)
    if value is None:
        raise MetadataError(
            f"<{elem.tag}> missing required field: {name}", game
        )
    return value


def _parse_rom(elem: ET.Element, game: str) -> Rom:
    name = _required(elem, "name", game)
    try:
        crc = parse_crc(_field(elem, "crc"))
    except ValueError as e:
        raise MetadataError(f"rom {name}: {e}", game) from e

    return Rom(
        name=name,
        crc=crc,
        sha1=_field(elem, "sha1"),
        dispose=parse_dispose(_field(elem, "dispose")),
        status=parse_status(_field(elem, "status")),
    )


def _parse_disk(elem: ET.Element, game: str) -> Disk:
    name = _required(elem, "name", game)

    raw_index = _field(elem, "index")
    index = 0
    if raw_index is not None:
        try:
            index = int(raw_index)
        except ValueError as e:
            raise MetadataError(f"disk {name}: invalid index {raw_index!r}", game) from e
        if not 0 <= index <= 255:
            raise MetadataError(f"disk {name}: index {index} out of range 0-255", game)

    return Disk(
        name=name,
        sha1=_field(elem, "sha1") or "",
        md5=_field(elem, "md5") or "",
        region=_field(elem, "region") or "",
        index=index,
    )


def _parse_game(elem: ET.Element) -> Game:
    name = _required(elem, "name")
    description = _required(elem, "description", name)

    return Game(
        name=name,
        description=description,
        roms=[_parse_rom(rom, name) for rom in elem.findall("rom")],
        disks=[_parse_disk(disk, name) for disk in elem.findall("disk")],
    )


def parse(stream: BinaryIO) -> Datafile:
    """Parse a DAT document from a binary stream.

    Args:
        stream: Readable binary file object

    Returns:
        Datafile with games in document order

    Raises:
        MetadataError: If the XML is malformed, a required field is
            missing, or a CRC is not valid hexadecimal
    """
    try:
        root = ET.parse(stream).getroot()
    except ET.ParseError as e:
        raise MetadataError(f"Malformed DAT document: {e}") from e

    games = [_parse_game(elem) for elem in root if elem.tag in GAME_TAGS]
    return Datafile(games=games)


def parse_file(path: Path | str) -> Datafile:
    """Parse a DAT file from disk.

    Raises:
        FileNotFoundError: If the file does not exist
        MetadataError: If the document is invalid
    """
    with open(path, "rb") as f:
        return parse(f)
