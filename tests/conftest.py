"""Shared fixtures: build zip archives and DAT documents on the fly."""

import zipfile
import zlib
from pathlib import Path

import pytest

PACMAN_6E = b"\x3e\x00\x32\x00\x50" * 200
PACMAN_6F = bytes(range(256)) * 8
PACMAN_5E = b"pacman tiles " * 64


def crc_of(data: bytes) -> str:
    """CRC-32 of data as an 8-digit hex string."""
    return f"{zlib.crc32(data) & 0xFFFFFFFF:08x}"


def write_zip(
    path: Path,
    members: dict[str, bytes],
    compression: int = zipfile.ZIP_DEFLATED,
) -> Path:
    """Write a zip archive with the given members."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w", compression) as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return path


def corrupt_local_header(path: Path, member: str) -> None:
    """Overwrite the local header signature of one member."""
    with zipfile.ZipFile(path) as zf:
        offset = zf.getinfo(member).header_offset
    with open(path, "r+b") as f:
        f.seek(offset)
        f.write(b"XXXX")


def garble_utf8_name(path: Path) -> None:
    """Flag the first central directory name as UTF-8 and fill it with invalid bytes."""
    data = bytearray(path.read_bytes())
    offset = data.find(b"PK\x01\x02")
    flags = int.from_bytes(data[offset + 8 : offset + 10], "little") | 0x800
    data[offset + 8 : offset + 10] = flags.to_bytes(2, "little")
    name_len = int.from_bytes(data[offset + 28 : offset + 30], "little")
    data[offset + 46 : offset + 46 + name_len] = b"\xff" * name_len
    path.write_bytes(bytes(data))


def dat_xml(games: list[dict]) -> str:
    """Render a minimal MAME-style DAT document.

    Each game dict has name, description and roms (list of attribute dicts).
    """
    lines = ['<?xml version="1.0"?>', "<mame>"]
    for game in games:
        lines.append(f'  <game name="{game["name"]}">')
        lines.append(f'    <description>{game["description"]}</description>')
        for rom in game.get("roms", []):
            attrs = " ".join(f'{key}="{value}"' for key, value in rom.items())
            lines.append(f"    <rom {attrs}/>")
        lines.append("  </game>")
    lines.append("</mame>")
    return "\n".join(lines)


@pytest.fixture
def pacman_dat(tmp_path):
    """DAT file describing pacman with three good ROMs."""
    path = tmp_path / "mame.xml"
    path.write_text(
        dat_xml(
            [
                {
                    "name": "pacman",
                    "description": "Pac-Man (Midway)",
                    "roms": [
                        {"name": "pacman.6e", "size": "1000", "crc": crc_of(PACMAN_6E)},
                        {"name": "pacman.6f", "size": "2048", "crc": crc_of(PACMAN_6F)},
                        {"name": "pacman.5e", "size": "832", "crc": crc_of(PACMAN_5E)},
                    ],
                },
                {
                    "name": "puckman",
                    "description": "Puck Man (Japan set 1)",
                    "roms": [
                        {"name": "pacman.6e", "crc": crc_of(PACMAN_6E)},
                        {"name": "prom.7f", "crc": "deadbeef", "status": "nodump"},
                    ],
                },
            ]
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def rom_dir(tmp_path):
    """Source directory with pacman ROMs split over two archives."""
    source = tmp_path / "roms"
    source.mkdir()
    write_zip(
        source / "pacman.zip",
        {"pacman.6e": PACMAN_6E, "pacman.6f": PACMAN_6F},
    )
    write_zip(
        source / "misc.zip",
        {"set1/pacman.5e": PACMAN_5E},
        compression=zipfile.ZIP_STORED,
    )
    (source / "readme.txt").write_text("not an archive")
    return source
