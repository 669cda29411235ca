"""Application object: wires triggers, the coalescer and the cycle runner.

Every trigger source (periodic timer, config directory watcher, database
directory watchers, user actions) ends in ``request_refresh()``. User actions
edit the configuration document and let the next cycle reconcile the
registry; nothing here writes to the registry directly.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

import app_config
import config
from app_config import AppConfig, normalized_absolute_path
from backup import BackupManager
from coalescer import RefreshCoalescer
from cycle import CycleRunner
from health import HealthChecker
from inspector import DatabaseInspector
from models import BackupRecord, DatabaseEntry, HealthStatus, StructuralSnapshot
from notifier import Notifier, default_notifier
from registry import Registry
from scanner import DatabaseScanner
from watch_executor import WatchExecutor
from watchers import DirectoryWatcher, DirectoryWatcherSet

log = logging.getLogger(__name__)


class Monitor:
    def __init__(
        self,
        *,
        notifier: Notifier | None = None,
        load_config: Callable[[], AppConfig] = app_config.load,
        inspector: DatabaseInspector | None = None,
        health_checker: HealthChecker | None = None,
        watch_executor: WatchExecutor | None = None,
        on_cycle: Callable[[Registry], None] | None = None,
    ):
        self.registry = Registry()
        self.inspector = inspector or DatabaseInspector()
        self.health_checker = health_checker or HealthChecker()
        self.backups = BackupManager()
        self.scanner = DatabaseScanner(self.inspector)
        self.on_cycle = on_cycle
        self.runner = CycleRunner(
            self.registry,
            load_config=load_config,
            inspector=self.inspector,
            health_checker=self.health_checker,
            watch_executor=watch_executor,
            notifier=notifier or default_notifier(),
            backups=self.backups,
            on_watch_targets=self._update_database_watchers,
        )
        self.coalescer = RefreshCoalescer(self._run_cycle)
        self.config_watcher = DirectoryWatcher(
            app_config.config_dir(),
            config.CONFIG_WATCH_DEBOUNCE,
            self.request_refresh,
            name="config-watch",
        )
        self.database_watchers = DirectoryWatcherSet(
            config.DATABASE_WATCH_DEBOUNCE,
            self.request_refresh,
            name="db-watch",
        )
        self.refresh_interval = config.DEFAULT_REFRESH_INTERVAL
        self._timer_task: asyncio.Task | None = None
        self._watching = False

    # ------------------------------------------------------------------
    # Read view
    # ------------------------------------------------------------------

    @property
    def databases(self) -> tuple[DatabaseEntry, ...]:
        return self.registry.databases

    @property
    def is_refreshing(self) -> bool:
        return self.registry.is_refreshing

    @property
    def last_refresh(self) -> datetime | None:
        return self.registry.last_refresh

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the timer and the watchers. Requires a running event loop."""
        self.refresh_interval = self.runner.load_config().refresh_interval
        self._watching = True
        self.config_watcher.start()
        self._restart_timer()
        log.info(
            "Monitoring started (interval=%ss, config=%s)",
            self.refresh_interval, app_config.config_path(),
        )

    async def stop(self) -> None:
        self._watching = False
        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None
        self.config_watcher.stop()
        self.database_watchers.stop_all()
        await self.coalescer.shutdown()
        log.info("Monitoring stopped")

    def request_refresh(self) -> None:
        self.coalescer.request_refresh()

    def request_refresh_threadsafe(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self.coalescer.request_refresh_threadsafe(loop)

    async def refresh(self) -> None:
        await self.coalescer.refresh()

    async def _run_cycle(self) -> None:
        await self.runner.run_one_cycle()
        self.refresh_interval = self.runner.config.refresh_interval
        if self.on_cycle is not None:
            self.on_cycle(self.registry)

    def _restart_timer(self) -> None:
        if self._timer_task is not None:
            self._timer_task.cancel()
        self._timer_task = asyncio.get_running_loop().create_task(
            self._timer(), name="litebar:timer"
        )

    async def _timer(self) -> None:
        while True:
            self.request_refresh()
            await asyncio.sleep(self.refresh_interval)

    def _update_database_watchers(self, directories: set[str]) -> None:
        if not self._watching:
            return
        self.database_watchers.update(directories)

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def add_database(
        self, path: str, name: str | None = None, group: str | None = None
    ) -> bool:
        cfg = await asyncio.to_thread(self.runner.load_config)
        if not cfg.add_database(path, name=name, group=group):
            log.info("Not adding %s: relative path or already configured", path)
            return False
        await asyncio.to_thread(cfg.save)
        log.info("Added %s", normalized_absolute_path(path))
        self.request_refresh()
        return True

    async def remove_database(self, path: str) -> bool:
        cfg = await asyncio.to_thread(self.runner.load_config)
        if not cfg.remove_database(path):
            log.info("Not removing %s: not configured", path)
            return False
        await asyncio.to_thread(cfg.save)
        log.info("Removed %s from config", normalized_absolute_path(path))
        self.request_refresh()
        return True

    async def update_refresh_interval(self, seconds: int) -> int:
        cfg = await asyncio.to_thread(self.runner.load_config)
        cfg = cfg.with_refresh_interval(seconds)
        await asyncio.to_thread(cfg.save)
        self.refresh_interval = cfg.refresh_interval
        log.info("Refresh interval set to %ss", self.refresh_interval)
        if self._timer_task is not None:
            self._restart_timer()
        else:
            self.request_refresh()
        return self.refresh_interval

    async def backup(self, path: str) -> BackupRecord:
        """Back up a configured or ad-hoc database. Raises BackupError."""
        normalized = normalized_absolute_path(path) or str(Path(path).expanduser().resolve())
        entry = self.registry.get(normalized)
        if entry is None:
            cfg = await asyncio.to_thread(self.runner.load_config)
            declaration = cfg.declaration(normalized)
            entry = DatabaseEntry(
                path=normalized,
                custom_name=declaration.name if declaration else None,
            )
        record = await asyncio.to_thread(self.backups.backup, entry)
        self.request_refresh()
        return record

    async def check_health(self, path: str) -> HealthStatus:
        normalized = normalized_absolute_path(path) or str(Path(path).expanduser().resolve())
        snapshot = await asyncio.to_thread(self.inspector.inspect, normalized)
        if snapshot is None:
            return HealthStatus.error("Inspection failed")
        return await asyncio.to_thread(self.health_checker.check, snapshot)

    async def scan(self, directory: str, max_depth: int | None = None) -> list[StructuralSnapshot]:
        return await asyncio.to_thread(self.scanner.scan, directory, max_depth)
