"""ROM index storage."""

from romcrate.db.connection import get_connection
from romcrate.db.rom_index import (
    IndexEntry,
    IndexMissingError,
    RomIndex,
    RomNotFoundError,
    short_name,
)

__all__ = [
    "get_connection",
    "IndexEntry",
    "IndexMissingError",
    "RomIndex",
    "RomNotFoundError",
    "short_name",
]
