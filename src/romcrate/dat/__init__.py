"""DAT catalog parsing.

- models.py: Datafile / Game / Rom / Disk and lenient token decoders
- parser.py: XML parser producing a Datafile
"""

from romcrate.dat.models import (
    Datafile,
    Disk,
    Game,
    Rom,
    RomStatus,
    format_crc,
    parse_crc,
    parse_dispose,
    parse_status,
)
from romcrate.dat.parser import MetadataError, parse, parse_file

__all__ = [
    "Datafile",
    "Disk",
    "Game",
    "Rom",
    "RomStatus",
    "format_crc",
    "parse_crc",
    "parse_dispose",
    "parse_status",
    "MetadataError",
    "parse",
    "parse_file",
]
