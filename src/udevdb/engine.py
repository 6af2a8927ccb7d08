"""
Key-value engine backing the device database.

Uses SQLite for lightweight persistence of raw byte keys and values,
either in a file or purely in memory.
"""

import logging
import os
import sqlite3
from pathlib import Path
from typing import Iterator, Optional, Tuple, Union

from .errors import EngineFailure, EngineUnavailable
from .models import EngineMode

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


class KVEngine:
    """
    Byte-keyed store with insert-or-replace semantics.

    One engine instance owns one connection; it has to be opened
    explicitly and is never reopened behind the caller's back.
    """

    def __init__(self, db_path: str, file_mode: int = 0o644, create_dirs: bool = True):
        """
        Initialize the engine.

        Args:
            db_path: Path to the SQLite database file used in persistent mode
            file_mode: Permission bits applied when the file is created
            create_dirs: Create missing parent directories on open
        """
        self.db_path = db_path
        self.file_mode = file_mode
        self.create_dirs = create_dirs
        self._conn: Optional[sqlite3.Connection] = None
        self._mode: Optional[EngineMode] = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def mode(self) -> Optional[EngineMode]:
        return self._mode

    @property
    def path(self) -> Optional[str]:
        """Backing file path, or None when closed or in memory."""
        if self._mode is EngineMode.PERSISTENT:
            return self.db_path
        return None

    def open(self, mode: Union[EngineMode, str]) -> None:
        """
        Open the engine.

        Args:
            mode: EngineMode.PERSISTENT for a file, EngineMode.IN_MEMORY otherwise

        Raises:
            EngineUnavailable: if the backing store cannot be created or the
                engine is already open
        """
        if self._conn is not None:
            raise EngineUnavailable(f"Engine already open ({self._mode.value})")

        mode = EngineMode(mode)
        if mode is EngineMode.IN_MEMORY:
            target = MEMORY_PATH
            created = False
        else:
            path = Path(self.db_path)
            try:
                if self.create_dirs:
                    path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.debug(f"Unable to create {path.parent}: {e}")
                raise EngineUnavailable(f"Unable to initialize database at {path}: {e}") from e
            target = str(path)
            created = not path.exists()

        conn = None
        try:
            conn = sqlite3.connect(target, check_same_thread=False)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key BLOB PRIMARY KEY,
                    value BLOB NOT NULL
                )
            """)
            conn.commit()
        except sqlite3.Error as e:
            if conn is not None:
                conn.close()
            if mode is EngineMode.IN_MEMORY:
                message = "Unable to initialize in-memory database"
            else:
                message = f"Unable to initialize database at {target}"
            logger.debug(f"{message}: {e}")
            raise EngineUnavailable(f"{message}: {e}") from e

        if created:
            try:
                os.chmod(target, self.file_mode)
            except OSError as e:
                conn.close()
                raise EngineUnavailable(f"Unable to set mode on {target}: {e}") from e

        self._conn = conn
        self._mode = mode
        where = "in memory" if mode is EngineMode.IN_MEMORY else f"at {target}"
        logger.info(f"Opened database {where}")

    def close(self) -> None:
        """Close the engine. Safe to call when already closed."""
        if self._conn is None:
            return
        try:
            self._conn.close()
        finally:
            logger.info(f"Closed {self._mode.value} database")
            self._conn = None
            self._mode = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise EngineUnavailable("Engine is not open")
        return self._conn

    def fetch(self, key: bytes) -> Optional[bytes]:
        """
        Fetch the value stored under a key.

        Returns:
            A copy of the value, or None if the key is absent
        """
        conn = self._connection()
        try:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise EngineFailure(f"fetch failed: {e}") from e
        if row is None:
            return None
        return bytes(row[0])

    def upsert(self, key: bytes, value: bytes) -> None:
        """Insert or replace a value."""
        conn = self._connection()
        try:
            with conn:
                conn.execute(
                    "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                    (key, value),
                )
        except sqlite3.Error as e:
            raise EngineFailure(f"upsert failed: {e}") from e

    def delete(self, key: bytes) -> bool:
        """
        Delete a key.

        Returns:
            True if the key existed, False if there was nothing to delete
        """
        conn = self._connection()
        try:
            with conn:
                cursor = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise EngineFailure(f"delete failed: {e}") from e
        return cursor.rowcount > 0

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """
        Iterate over all pairs whose key starts with prefix, in key order.

        The matching rows are read up front, so the store may be modified
        while iterating.
        """
        conn = self._connection()
        try:
            rows = conn.execute(
                "SELECT key, value FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        except sqlite3.Error as e:
            raise EngineFailure(f"scan failed: {e}") from e
        for key, value in rows:
            yield bytes(key), bytes(value)
