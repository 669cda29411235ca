"""Cycle runner: one full pass over every configured database.

Not re-entrant. The coalescer guarantees a single caller at a time, which is
also what makes the registry and the alert-key set safe to write here without
a lock. Blocking SQLite and stat work runs in worker threads so producers on
the event loop can keep queueing refresh requests mid-cycle.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import replace
from typing import Callable, Iterable

import app_config
from app_config import AppConfig, DatabaseDeclaration
from backup import BackupManager
from health import HealthChecker
from inspector import DatabaseInspector
from models import AlertState, DatabaseEntry, HealthStatus, WatchResult
from notifier import LogNotifier, Notifier
from registry import Registry
from utils import LatencyTracker, utc_now
from watch_executor import WatchExecutor
from watchers import watch_directories

log = logging.getLogger(__name__)


def alert_key(database_id: str, watch_name: str, query: str) -> str:
    return f"{database_id}:{watch_name}:{query}"


class CycleRunner:
    def __init__(
        self,
        registry: Registry,
        *,
        load_config: Callable[[], AppConfig] = app_config.load,
        inspector: DatabaseInspector | None = None,
        health_checker: HealthChecker | None = None,
        watch_executor: WatchExecutor | None = None,
        notifier: Notifier | None = None,
        backups: BackupManager | None = None,
        on_watch_targets: Callable[[set[str]], None] | None = None,
    ):
        self.registry = registry
        self.load_config = load_config
        self.inspector = inspector or DatabaseInspector()
        self.health_checker = health_checker or HealthChecker()
        self.watch_executor = watch_executor or WatchExecutor()
        self.notifier = notifier or LogNotifier()
        self.backups = backups
        self.on_watch_targets = on_watch_targets
        self.config: AppConfig = AppConfig().normalized()
        self.previous_alerts: frozenset[str] = frozenset()
        self.cycle_count = 0

    async def run_one_cycle(self) -> None:
        self.registry.is_refreshing = True
        try:
            async with LatencyTracker("cycle", "run_one_cycle", logger=log) as lt:
                await self._run()
            log.debug("Refresh cycle %d finished in %.1fms", self.cycle_count, lt.elapsed_ms)
        finally:
            self.registry.is_refreshing = False

    async def _run(self) -> None:
        cfg = await asyncio.to_thread(self.load_config)
        self.config = cfg

        current = {entry.path: entry for entry in self.registry.databases}
        updated: dict[str, DatabaseEntry] = {}
        next_alerts: set[str] = set()

        for declaration in cfg.databases:
            existing = current.get(declaration.path)
            entry = replace(existing) if existing is not None else DatabaseEntry(path=declaration.path)
            try:
                await self._refresh_entry(entry, declaration, cfg)
            except Exception:
                log.error("Unexpected failure refreshing %s", declaration.path, exc_info=True)
                entry.health_status = HealthStatus.error("Refresh failed")
                entry.watch_results = ()
                entry.last_checked = utc_now()
            updated[entry.path] = entry
            self._collect_alerts(entry, next_alerts)

        # Entries for paths no longer configured are dropped here.
        evicted = set(current) - set(updated)
        for path in evicted:
            log.info("Removed %s from monitoring", path)

        self.registry.publish(list(updated.values()), utc_now())
        self.previous_alerts = frozenset(next_alerts)
        self.cycle_count += 1

        if self.on_watch_targets is not None:
            self.on_watch_targets(watch_directories(updated))

    async def _refresh_entry(
        self,
        entry: DatabaseEntry,
        declaration: DatabaseDeclaration,
        cfg: AppConfig,
    ) -> None:
        entry.custom_name = declaration.name
        entry.group = declaration.group
        entry.is_registered = True
        if self.backups is not None:
            entry.backup_records = tuple(self.backups.history(entry.path))

        if not await asyncio.to_thread(os.path.exists, entry.path):
            entry.health_status = HealthStatus.error("File not found")
            entry.last_checked = utc_now()
            entry.is_quiet = False
            entry.watch_results = ()
            return

        previous_counts = entry.row_counts
        snapshot = await asyncio.to_thread(self.inspector.inspect, entry.path)
        if snapshot is None:
            entry.health_status = HealthStatus.error("Inspection failed")
            entry.last_checked = utc_now()
            entry.watch_results = ()
            return

        entry.apply_snapshot(snapshot)
        entry.previous_row_counts = previous_counts
        entry.is_quiet = self._is_quiet(entry, cfg)
        entry.health_status = await asyncio.to_thread(self.health_checker.check, snapshot)
        entry.last_checked = utc_now()

        if declaration.watches:
            results = await asyncio.to_thread(
                self.watch_executor.evaluate, declaration.watches, entry.path
            )
            entry.watch_results = tuple(results)
        else:
            entry.watch_results = ()

        for table, delta in entry.table_deltas:
            log.debug("%s: %s %+d rows", entry.display_name, table, delta)

    def _collect_alerts(self, entry: DatabaseEntry, next_alerts: set[str]) -> None:
        for result in _alerting(entry.watch_results):
            key = alert_key(entry.id, result.name, result.query)
            next_alerts.add(key)
            if key in self.previous_alerts:
                continue
            log.info("Alert transition: %s / %s", entry.display_name, result.name)
            try:
                self.notifier.notify(entry.display_name, result.name, result.display_value)
            except Exception:
                log.error("Notifier failed for %s", entry.display_name, exc_info=True)

    @staticmethod
    def _is_quiet(entry: DatabaseEntry, cfg: AppConfig) -> bool:
        if entry.last_modified is None:
            return False
        minutes = (utc_now() - entry.last_modified).total_seconds() / 60
        return minutes > cfg.activity_timeout_minutes


def _alerting(results: Iterable[WatchResult]) -> list[WatchResult]:
    return [result for result in results if result.alert_state != AlertState.NORMAL]
