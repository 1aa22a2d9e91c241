"""Connection handling for the per-project ``.repodoc.db`` file."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec

# Seconds a writer waits on a locked database before giving up.
BUSY_TIMEOUT = 5.0


class Database:
    """Opens ``.repodoc.db`` with sqlite-vec loaded.

    Used as a context manager by the CLI; the connection is closed on exit and
    any uncommitted work is rolled back if the block raised.

    Args:
        db_path: Database file. Missing parent directories are created.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT)
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        try:
            sqlite_vec.load(conn)
        finally:
            conn.enable_load_extension(False)
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, exc_type: type[BaseException] | None, *rest: object) -> None:
        if self._conn is None:
            return
        if exc_type is not None and self._conn.in_transaction:
            self._conn.rollback()
        self._conn.close()
        self._conn = None
