"""Online backups of monitored databases into ``<config dir>/backups``."""
from __future__ import annotations

import logging
import os
import sqlite3
from pathlib import Path

import app_config
from db_pool import BackupError, CannotOpenError, ReadOnlyConnection
from models import BackupRecord, DatabaseEntry
from utils import utc_now

log = logging.getLogger(__name__)


def safe_name(name: str) -> str:
    return name.replace("/", "_")


class BackupManager:
    def __init__(self, backup_root: str | Path | None = None):
        self._backup_root = Path(backup_root) if backup_root is not None else None
        self._history: dict[str, list[BackupRecord]] = {}

    @property
    def backup_root(self) -> Path:
        return self._backup_root or app_config.backups_dir()

    def backup(self, entry: DatabaseEntry) -> BackupRecord:
        """Copy ``entry`` with the SQLite online backup API. Raises BackupError."""
        timestamp = utc_now()
        name = safe_name(entry.display_name)
        dest_dir = self.backup_root / name
        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BackupError(f"Cannot create backup destination: {exc}") from exc
        dest_path = dest_dir / f"{name}_{timestamp.strftime('%Y-%m-%dT%H:%M:%SZ')}.sqlite3"

        self._copy(entry.path, dest_path)

        try:
            size = os.stat(dest_path).st_size
        except OSError:
            size = 0
        record = BackupRecord(
            source_path=entry.path,
            backup_path=str(dest_path),
            timestamp=timestamp,
            size_bytes=size,
            verified=True,
        )
        self._history.setdefault(entry.id, []).insert(0, record)
        log.info("Backed up %s to %s (%s)", entry.path, dest_path, record.formatted_size)
        return record

    def history(self, path: str) -> list[BackupRecord]:
        return list(self._history.get(path, ()))

    @staticmethod
    def _copy(source_path: str, dest_path: Path) -> None:
        source = ReadOnlyConnection(source_path)
        try:
            source.open()
        except CannotOpenError as exc:
            raise BackupError("Cannot open source") from exc

        try:
            dest = sqlite3.connect(str(dest_path))
        except sqlite3.Error as exc:
            source.close()
            raise BackupError("Cannot create backup destination") from exc

        try:
            source.backup_to(dest)
        except sqlite3.Error as exc:
            raise BackupError(str(exc)) from exc
        finally:
            dest.close()
            source.close()
