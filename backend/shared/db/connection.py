"""SQLite file holding every document collection."""

import contextlib
import os
import sqlite3
from collections.abc import Iterator
from pathlib import Path

import structlog

logger = structlog.get_logger()

MEMORY_PATH = ":memory:"
SCHEMA_VERSION = 1

_PRIVATE_MODE = 0o600

# One row per document. ``version`` is bumped on every committed write and is
# the compare-and-swap token for transactional updates.
_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    id TEXT NOT NULL,
    version INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    data TEXT NOT NULL,
    PRIMARY KEY (collection, id)
);

CREATE INDEX IF NOT EXISTS idx_documents_created_at
    ON documents (collection, created_at);
"""


class Database:
    """Owns the single sqlite3 connection shared by the document store."""

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._path

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database is not connected")
        return self._conn

    def connect(self) -> None:
        on_disk = self._path != MEMORY_PATH
        if on_disk:
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self._path, check_same_thread=False)
        found = conn.execute("PRAGMA user_version").fetchone()[0]
        if found > SCHEMA_VERSION:
            conn.close()
            msg = f"{self._path} has schema version {found}, this build supports up to {SCHEMA_VERSION}"
            raise RuntimeError(msg)

        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        conn.executescript(_SCHEMA_SQL)
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION}")
        self._conn = conn

        if on_disk:
            self._restrict_file_modes()
        logger.info("database connected", path=self._path, schema_version=SCHEMA_VERSION)

    def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit what the block wrote, or roll all of it back if the block raises."""
        conn = self.connection
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        conn.commit()

    def _restrict_file_modes(self) -> None:
        # WAL keeps recent writes in the -wal and -shm siblings.
        if os.name != "posix":  # pragma: no cover
            return
        for suffix in ("", "-wal", "-shm"):
            target = Path(self._path + suffix)
            if not target.exists():
                continue
            try:
                target.chmod(_PRIVATE_MODE)
            except OSError:
                logger.warning("could not restrict file mode", path=str(target), mode=oct(_PRIVATE_MODE))
