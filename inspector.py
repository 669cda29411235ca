"""Inspection gateway: structural metadata for a single SQLite file."""
from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from db_pool import LitebarError, quoted_identifier, readonly_connection
from models import ColumnInfo, StructuralSnapshot, TableInfo

log = logging.getLogger(__name__)

_TABLES_SQL = (
    "SELECT name FROM sqlite_master "
    "WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
)


def file_size(path: str | Path) -> int:
    try:
        return os.stat(path).st_size
    except OSError:
        return 0


def modification_date(path: str | Path) -> datetime | None:
    try:
        return datetime.fromtimestamp(os.stat(path).st_mtime, tz=timezone.utc)
    except OSError:
        return None


def _optional_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class DatabaseInspector:
    def inspect(self, path: str | Path) -> StructuralSnapshot | None:
        """Return a fresh snapshot, or None when the file cannot be inspected."""
        path = str(path)
        try:
            with readonly_connection(path) as conn:
                journal_mode = conn.scalar("PRAGMA journal_mode")
                page_size = _optional_int(conn.scalar("PRAGMA page_size"))
                page_count = _optional_int(conn.scalar("PRAGMA page_count"))
                encoding = conn.scalar("PRAGMA encoding")
                sqlite_version = conn.scalar("SELECT sqlite_version()")

                tables: list[TableInfo] = []
                for row in conn.query(_TABLES_SQL):
                    name = row.get("name")
                    if not name:
                        continue
                    tables.append(self._inspect_table(conn, name))
        except LitebarError as exc:
            log.warning("Inspect failed for %s: %s", path, exc)
            return None

        return StructuralSnapshot(
            path=path,
            file_size=file_size(path),
            tables=tuple(tables),
            last_modified=modification_date(path),
            wal_size=file_size(f"{path}-wal"),
            shm_size=file_size(f"{path}-shm"),
            journal_mode=journal_mode,
            page_size=page_size,
            page_count=page_count,
            encoding=encoding,
            sqlite_version=sqlite_version,
        )

    def _inspect_table(self, conn, name: str) -> TableInfo:
        quoted = quoted_identifier(name)

        row_count = 0
        try:
            row_count = _optional_int(conn.scalar(f"SELECT COUNT(*) FROM {quoted}")) or 0
        except LitebarError:
            # Virtual tables backed by missing modules cannot be counted.
            log.debug("Row count failed for table %s", name, exc_info=True)

        columns = tuple(
            ColumnInfo(
                name=col.get("name") or "",
                type=col.get("type") or "",
                is_primary_key=(col.get("pk") or "0") != "0",
                is_not_null=col.get("notnull") == "1",
                default_value=col.get("dflt_value"),
            )
            for col in conn.query(f"PRAGMA table_info({quoted})")
        )
        indices = conn.query(f"PRAGMA index_list({quoted})")

        return TableInfo(
            name=name,
            row_count=row_count,
            column_count=len(columns),
            columns=columns,
            index_count=len(indices),
        )
