"""Read-only SQLite access used by the inspector, health checker and watches.

Every call opens its own short-lived connection with a small busy timeout so
a locked database fails fast instead of stalling the refresh cycle.
"""
import contextlib
import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterator
from urllib.parse import quote

import config

log = logging.getLogger(__name__)


class LitebarError(Exception):
    """Base class for errors surfaced as health or watch messages."""

    prefix = "Litebar error"

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__(f"{self.prefix}: {detail}" if detail else self.prefix)


class CannotOpenError(LitebarError):
    prefix = "Cannot open database"


class NotConnectedError(LitebarError):
    prefix = "Not connected to database"


class QueryFailedError(LitebarError):
    prefix = "Query failed"


class BackupError(LitebarError):
    prefix = "Backup failed"


def _readonly_uri(path: str | Path) -> str:
    return f"file:{quote(str(Path(path).expanduser()))}?mode=ro"


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class ReadOnlyConnection:
    """Thin wrapper returning every column as text, like the sqlite3 CLI."""

    def __init__(self, path: str | Path, *, busy_timeout_ms: int | None = None):
        self.path = str(path)
        self.busy_timeout_ms = (
            config.SQLITE_BUSY_TIMEOUT_MS if busy_timeout_ms is None else busy_timeout_ms
        )
        self._conn: sqlite3.Connection | None = None

    def open(self) -> None:
        if not Path(self.path).exists():
            raise CannotOpenError(f"unable to open database file {self.path}")
        try:
            conn = sqlite3.connect(
                _readonly_uri(self.path),
                uri=True,
                timeout=self.busy_timeout_ms / 1000.0,
            )
            conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
        except sqlite3.Error as exc:
            raise CannotOpenError(str(exc)) from exc
        self._conn = conn

    def close(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            except sqlite3.Error:
                log.debug("Failed closing sqlite connection: %s", self.path, exc_info=True)
        self._conn = None

    def _execute(self, sql: str) -> sqlite3.Cursor:
        if self._conn is None:
            raise NotConnectedError()
        try:
            return self._conn.execute(sql)
        except sqlite3.Error as exc:
            raise QueryFailedError(str(exc)) from exc

    def query(self, sql: str) -> list[dict[str, str | None]]:
        cursor = self._execute(sql)
        names = [col[0] for col in cursor.description or ()]
        try:
            rows = cursor.fetchall()
        except sqlite3.Error as exc:
            raise QueryFailedError(str(exc)) from exc
        return [
            {name: _to_text(value) for name, value in zip(names, row)}
            for row in rows
        ]

    def scalar(self, sql: str) -> str | None:
        """First column of the first row, or None when there are no rows."""
        cursor = self._execute(sql)
        try:
            row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise QueryFailedError(str(exc)) from exc
        if row is None or not row:
            return None
        return _to_text(row[0])

    def single_value(self, sql: str) -> str | None:
        """Strict scalar: at most one row and exactly one column.

        Zero rows yields None. More rows or columns raise QueryFailedError.
        """
        cursor = self._execute(sql)
        width = len(cursor.description or ())
        if width != 1:
            raise QueryFailedError(f"expected exactly one column, got {width}")
        try:
            rows = cursor.fetchmany(2)
        except sqlite3.Error as exc:
            raise QueryFailedError(str(exc)) from exc
        if not rows:
            return None
        if len(rows) > 1:
            raise QueryFailedError("expected a single row, got more than one")
        return _to_text(rows[0][0])

    def integrity_check(self) -> str:
        return self.scalar("PRAGMA integrity_check") or "unknown"

    def backup_to(self, target: sqlite3.Connection) -> None:
        """Copy every page of this database into ``target`` in one step."""
        if self._conn is None:
            raise NotConnectedError()
        self._conn.backup(target, pages=-1)


@contextlib.contextmanager
def readonly_connection(path: str | Path) -> Iterator[ReadOnlyConnection]:
    conn = ReadOnlyConnection(path)
    conn.open()
    try:
        yield conn
    finally:
        conn.close()


def quoted_identifier(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'
