"""Change-source watchers: debounced directory observation.

A watcher compares stat snapshots of one directory on a short poll interval.
Any difference (entry created, deleted or renamed, or an entry's size, mtime
or mode changed) restarts the debounce timer; when the timer runs out without
another change the ``on_settled`` callback fires once.
"""
from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, Iterable

import config

log = logging.getLogger(__name__)

Snapshot = tuple[tuple[str, int, int, int, int], ...]

# Readers update the shared-memory index in place; track its presence only.
_PRESENCE_ONLY_SUFFIXES = ("-shm",)


def snapshot_directory(directory: Path) -> Snapshot | None:
    """Snapshot entries as (name, inode, size, mtime_ns, mode); None if missing."""
    entries: list[tuple[str, int, int, int, int]] = []
    try:
        with os.scandir(directory) as it:
            for item in it:
                if item.name.endswith(_PRESENCE_ONLY_SUFFIXES):
                    entries.append((item.name, 0, 0, 0, 0))
                    continue
                try:
                    st = item.stat(follow_symlinks=False)
                except OSError:
                    continue
                entries.append((item.name, st.st_ino, st.st_size, st.st_mtime_ns, st.st_mode))
    except (FileNotFoundError, NotADirectoryError, PermissionError):
        return None
    return tuple(sorted(entries))


class DirectoryWatcher:
    def __init__(
        self,
        directory: str | Path,
        debounce: float,
        on_settled: Callable[[], None],
        *,
        poll_interval: float | None = None,
        name: str = "watch",
    ):
        self.directory = Path(directory)
        self.debounce = debounce
        self.on_settled = on_settled
        self.poll_interval = config.WATCH_POLL_INTERVAL if poll_interval is None else poll_interval
        self.name = name
        self._poll_task: asyncio.Task | None = None
        self._debounce_task: asyncio.Task | None = None
        self._snapshot: Snapshot | None = None

    @property
    def is_running(self) -> bool:
        return self._poll_task is not None

    @property
    def has_pending_debounce(self) -> bool:
        return self._debounce_task is not None and not self._debounce_task.done()

    def start(self) -> None:
        if self._poll_task is not None:
            return
        self._snapshot = snapshot_directory(self.directory)
        if self._snapshot is None:
            log.debug("Watching %s before it exists", self.directory)
        self._poll_task = asyncio.get_running_loop().create_task(
            self._poll(), name=f"litebar:{self.name}:{self.directory}"
        )

    def stop(self) -> None:
        self.cancel_pending()
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    def cancel_pending(self) -> None:
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None

    def notify_change(self) -> None:
        """Restart the debounce timer, as if a filesystem event arrived."""
        self.cancel_pending()
        self._debounce_task = asyncio.get_running_loop().create_task(
            self._settle(), name=f"litebar:{self.name}:debounce"
        )

    async def _settle(self) -> None:
        try:
            await asyncio.sleep(self.debounce)
        except asyncio.CancelledError:
            return
        self._debounce_task = None
        try:
            self.on_settled()
        except Exception:
            log.error("Watcher callback failed for %s", self.directory, exc_info=True)

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            current = snapshot_directory(self.directory)
            if current != self._snapshot:
                self._snapshot = current
                log.debug("Change detected in %s", self.directory)
                self.notify_change()


class DirectoryWatcherSet:
    """Watchers for a changing set of directories sharing one callback."""

    def __init__(
        self,
        debounce: float,
        on_settled: Callable[[], None],
        *,
        poll_interval: float | None = None,
        name: str = "db-watch",
    ):
        self.debounce = debounce
        self.on_settled = on_settled
        self.poll_interval = poll_interval
        self.name = name
        self._watchers: dict[str, DirectoryWatcher] = {}

    @property
    def directories(self) -> set[str]:
        return set(self._watchers)

    def update(self, directories: Iterable[str]) -> None:
        needed = set(directories)
        for directory in set(self._watchers) - needed:
            self._watchers.pop(directory).stop()
            log.info("Stopped watching %s", directory)
        for directory in sorted(needed - set(self._watchers)):
            watcher = DirectoryWatcher(
                directory,
                self.debounce,
                self.on_settled,
                poll_interval=self.poll_interval,
                name=self.name,
            )
            watcher.start()
            self._watchers[directory] = watcher
            log.info("Watching %s", directory)

    def stop_all(self) -> None:
        for watcher in self._watchers.values():
            watcher.stop()
        self._watchers.clear()


def watch_directories(paths: Iterable[str]) -> set[str]:
    return {os.path.dirname(path) for path in paths}
