"""SQLite connection management."""

import sqlite3
from pathlib import Path


def get_connection(db_path: Path, read_only: bool = False) -> sqlite3.Connection:
    """
    Get a SQLite connection with row factory.

    Read-only connections are opened through a ``mode=ro`` URI so that
    rebuilding never modifies the index, and fail if the file is missing.
    The index has a single writer, so the default rollback journal is used.
    """
    if read_only:
        uri = Path(db_path).resolve().as_uri() + "?mode=ro"
        conn = sqlite3.connect(uri, uri=True)
    else:
        conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn
