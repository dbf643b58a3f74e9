"""SQLite connection layer with sqlite-vec extension."""

from __future__ import annotations

import platform
import sqlite3
from pathlib import Path

import sqlite_vec

from docindex.errors import ExtensionLoadError


class Database:
    """Single-file SQLite database with sqlite-vec vector search support."""

    def __init__(self, db_path: Path | str) -> None:
        """Store the database path. Call connect() to open the connection.

        Args:
            db_path: Path to the SQLite database file (created if missing).
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection, load sqlite-vec, and return the connection.

        Raises:
            ExtensionLoadError: If the sqlite-vec extension cannot be loaded.
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            conn.enable_load_extension(True)
            sqlite_vec.load(conn)
            conn.enable_load_extension(False)
        except (AttributeError, sqlite3.Error) as exc:
            conn.close()
            raise ExtensionLoadError(
                "Failed to load the sqlite-vec extension",
                f"{exc} (platform: {platform.system()} {platform.machine()}, "
                f"SQLite {sqlite3.sqlite_version})",
                "Use a Python build whose sqlite3 module allows loadable extensions "
                "and a platform supported by the sqlite-vec wheels, then retry.",
            ) from exc
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        """Open the database and return the connection (context manager support)."""
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        """Close the connection when leaving the context manager."""
        if self._conn:
            self._conn.close()
            self._conn = None
