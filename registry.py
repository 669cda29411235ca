"""In-memory table of monitored databases.

Only the cycle runner publishes; everyone else reads. A publish swaps the
whole tuple of entries at once, so a reader never sees a half-applied cycle.
"""
from __future__ import annotations

from datetime import datetime

from models import AlertState, DatabaseEntry

UNGROUPED = "Ungrouped"


class Registry:
    def __init__(self) -> None:
        self._entries: tuple[DatabaseEntry, ...] = ()
        self.last_refresh: datetime | None = None
        self.is_refreshing = False

    @property
    def databases(self) -> tuple[DatabaseEntry, ...]:
        return self._entries

    def get(self, path: str) -> DatabaseEntry | None:
        for entry in self._entries:
            if entry.path == path:
                return entry
        return None

    def publish(self, entries: list[DatabaseEntry], refreshed_at: datetime) -> None:
        self._entries = tuple(entries)
        self.last_refresh = refreshed_at

    def grouped(self) -> list[tuple[str, list[DatabaseEntry]]]:
        groups: dict[str, list[DatabaseEntry]] = {}
        for entry in self._entries:
            groups.setdefault(entry.group or UNGROUPED, []).append(entry)
        return sorted(groups.items(), key=lambda item: item[0])

    @property
    def total_warnings(self) -> int:
        count = 0
        for entry in self._entries:
            count += sum(1 for r in entry.watch_results if r.alert_state != AlertState.NORMAL)
            if entry.is_quiet:
                count += 1
        return count
