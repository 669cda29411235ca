"""Discovery of SQLite database files under a directory tree."""
from __future__ import annotations

import logging
import os
from pathlib import Path

import config
from inspector import DatabaseInspector
from models import StructuralSnapshot

log = logging.getLogger(__name__)

SQLITE_EXTENSIONS = frozenset({"db", "sqlite", "sqlite3", "sqlitedb"})
SQLITE_MAGIC = b"SQLite format 3\x00"
SKIP_DIRECTORIES = frozenset({
    "node_modules", ".build", ".git", "DerivedData",
    "Pods", ".venv", "venv", "__pycache__", ".tox",
})


def is_sqlite_file(path: str | Path) -> bool:
    path = Path(path)
    if path.suffix.lstrip(".").lower() in SQLITE_EXTENSIONS:
        return True
    try:
        with path.open("rb") as handle:
            return handle.read(len(SQLITE_MAGIC)) == SQLITE_MAGIC
    except OSError:
        return False


class DatabaseScanner:
    def __init__(self, inspector: DatabaseInspector | None = None):
        self.inspector = inspector or DatabaseInspector()

    def scan(self, directory: str | Path, max_depth: int | None = None) -> list[StructuralSnapshot]:
        """Inspect every SQLite file found under ``directory``.

        Hidden entries and well-known dependency/build folders are skipped.
        Files that look like SQLite but cannot be opened are left out.
        """
        depth_limit = config.SCAN_MAX_DEPTH if max_depth is None else max_depth
        results: list[StructuralSnapshot] = []
        self._scan(Path(directory).expanduser(), 0, depth_limit, results)
        log.info("Scan of %s found %d database(s)", directory, len(results))
        return results

    def _scan(self, directory: Path, depth: int, max_depth: int, results: list) -> None:
        if depth >= max_depth:
            return
        try:
            with os.scandir(directory) as it:
                items = sorted(it, key=lambda item: item.name)
        except OSError:
            log.debug("Cannot read %s", directory, exc_info=True)
            return

        for item in items:
            if item.name.startswith("."):
                continue
            try:
                is_dir = item.is_dir()
            except OSError:
                continue
            if is_dir:
                if item.name in SKIP_DIRECTORIES:
                    continue
                self._scan(Path(item.path), depth + 1, max_depth, results)
            elif is_sqlite_file(item.path):
                snapshot = self.inspector.inspect(item.path)
                if snapshot is not None:
                    results.append(snapshot)
