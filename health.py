"""Health evaluator: integrity, fragmentation, WAL pressure and empty-file checks."""
from __future__ import annotations

import logging

import config
from db_pool import LitebarError, readonly_connection
from models import HealthStatus, StructuralSnapshot
from utils import format_bytes

log = logging.getLogger(__name__)


class HealthChecker:
    def check(self, snapshot: StructuralSnapshot) -> HealthStatus:
        try:
            with readonly_connection(snapshot.path) as conn:
                integrity = conn.integrity_check()
                if integrity != "ok":
                    return HealthStatus.error(f"Integrity check failed: {integrity}")

                freelist = conn.scalar("PRAGMA freelist_count") or "0"
                pages = conn.scalar("PRAGMA page_count") or "1"
        except LitebarError as exc:
            log.warning("Health check failed for %s: %s", snapshot.path, exc)
            return HealthStatus.error(str(exc))

        try:
            free, total = int(freelist), int(pages)
        except ValueError:
            free, total = 0, 0
        if total > 0:
            ratio = free / total
            if ratio > config.HEALTH_FRAGMENTATION_RATIO:
                return HealthStatus.warning(
                    f"High fragmentation ({int(ratio * 100)}% free pages). Consider VACUUM."
                )

        if (snapshot.journal_mode or "").lower() == "wal":
            wal_bytes = snapshot.wal_size or 0
            if wal_bytes > config.HEALTH_WAL_WARN_BYTES:
                return HealthStatus.warning(
                    f"Large WAL file ({format_bytes(wal_bytes)}). "
                    "Consider checkpointing from a read-write process."
                )

        if snapshot.file_size == 0:
            return HealthStatus.warning("Empty database file")

        return HealthStatus.healthy()
