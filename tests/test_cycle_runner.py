import sys
import tempfile
import unittest
from datetime import timedelta
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app_config import AppConfig, DatabaseDeclaration
from cycle import CycleRunner, alert_key
from models import (
    AlertState,
    HealthStatus,
    StructuralSnapshot,
    TableInfo,
    WatchResult,
    WatchSpec,
)
from notifier import Notifier
from registry import Registry
from utils import utc_now


class _FakeInspector:
    def __init__(self):
        self.row_counts: dict[str, dict[str, int]] = {}
        self.fail: set[str] = set()
        self.modified_minutes_ago = 0

    def inspect(self, path):
        if path in self.fail:
            return None
        tables = tuple(
            TableInfo(name=name, row_count=count)
            for name, count in sorted(self.row_counts.get(path, {}).items())
        )
        return StructuralSnapshot(
            path=path,
            file_size=4096,
            tables=tables,
            last_modified=utc_now() - timedelta(minutes=self.modified_minutes_ago),
            journal_mode="wal",
        )


class _FakeHealth:
    def check(self, snapshot):
        return HealthStatus.healthy()


class _FakeWatches:
    def __init__(self):
        self.states: dict[str, AlertState] = {}
        self.calls = 0

    def evaluate(self, watches, path):
        self.calls += 1
        results = []
        for watch in watches:
            state = self.states.get(watch.name, AlertState.NORMAL)
            results.append(WatchResult(
                id=f"{path}:{watch.name}",
                name=watch.name,
                query=watch.query,
                value="150",
                numeric_value=150.0,
                alert_state=state,
            ))
        return results


class _RecordingNotifier(Notifier):
    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []

    def notify(self, database_name, watch_name, value):
        self.sent.append((database_name, watch_name, value))


class TestCycleRunner(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory(prefix="litebar-cycle-")
        self.dir = Path(self._tmp.name)
        self.app_db = str(self.dir / "app.db")
        self.other_db = str(self.dir / "sub" / "other.db")
        Path(self.app_db).write_bytes(b"")
        (self.dir / "sub").mkdir()
        Path(self.other_db).write_bytes(b"")

        self.cfg = AppConfig(databases=[DatabaseDeclaration(
            path=self.app_db,
            name="App",
            group="Work",
            watches=[WatchSpec("Pending", "SELECT COUNT(*) FROM jobs", warn_above=100)],
        )])
        self.registry = Registry()
        self.inspector = _FakeInspector()
        self.watches = _FakeWatches()
        self.notifier = _RecordingNotifier()
        self.targets: list[set[str]] = []
        self.runner = CycleRunner(
            self.registry,
            load_config=lambda: self.cfg,
            inspector=self.inspector,
            health_checker=_FakeHealth(),
            watch_executor=self.watches,
            notifier=self.notifier,
            on_watch_targets=self.targets.append,
        )

    async def asyncTearDown(self):
        self._tmp.cleanup()

    async def test_publishes_entry_with_metadata(self):
        self.inspector.row_counts[self.app_db] = {"jobs": 37}
        await self.runner.run_one_cycle()

        entry = self.registry.get(self.app_db)
        self.assertIsNotNone(entry)
        self.assertEqual(entry.display_name, "App")
        self.assertEqual(entry.group, "Work")
        self.assertTrue(entry.is_registered)
        self.assertEqual(entry.health_status, HealthStatus.healthy())
        self.assertEqual(entry.row_counts, {"jobs": 37})
        self.assertIsNotNone(entry.last_checked)
        self.assertIsNotNone(self.registry.last_refresh)
        self.assertFalse(self.registry.is_refreshing)
        self.assertEqual(self.targets[-1], {str(self.dir)})

    async def test_row_count_deltas_across_cycles(self):
        self.inspector.row_counts[self.app_db] = {"jobs": 37, "users": 5}
        await self.runner.run_one_cycle()
        self.assertEqual(self.registry.get(self.app_db).table_deltas, [])

        self.inspector.row_counts[self.app_db] = {"jobs": 38, "users": 5, "audit": 2}
        await self.runner.run_one_cycle()
        self.assertEqual(self.registry.get(self.app_db).table_deltas, [("jobs", 1)])

    async def test_published_entries_are_not_mutated_by_later_cycles(self):
        self.inspector.row_counts[self.app_db] = {"jobs": 1}
        await self.runner.run_one_cycle()
        first = self.registry.get(self.app_db)

        self.inspector.row_counts[self.app_db] = {"jobs": 2}
        await self.runner.run_one_cycle()

        self.assertEqual(first.row_counts, {"jobs": 1})
        self.assertIsNot(first, self.registry.get(self.app_db))

    async def test_alert_notifies_only_on_transition(self):
        self.watches.states["Pending"] = AlertState.WARNING
        await self.runner.run_one_cycle()
        await self.runner.run_one_cycle()
        self.assertEqual(self.notifier.sent, [("App", "Pending", "150")])

        self.watches.states["Pending"] = AlertState.NORMAL
        await self.runner.run_one_cycle()
        self.assertEqual(self.runner.previous_alerts, frozenset())

        self.watches.states["Pending"] = AlertState.WARNING
        await self.runner.run_one_cycle()
        self.assertEqual(len(self.notifier.sent), 2)

    async def test_alert_keys_include_watch_query(self):
        self.watches.states["Pending"] = AlertState.CRITICAL
        await self.runner.run_one_cycle()
        self.assertEqual(
            self.runner.previous_alerts,
            {alert_key(self.app_db, "Pending", "SELECT COUNT(*) FROM jobs")},
        )

        self.cfg.databases[0].watches = [
            WatchSpec("Pending", "SELECT COUNT(*) FROM jobs WHERE 1", warn_above=100)
        ]
        await self.runner.run_one_cycle()
        self.assertEqual(len(self.notifier.sent), 2)

    async def test_missing_file_is_error_and_skips_watches(self):
        Path(self.app_db).unlink()
        await self.runner.run_one_cycle()

        entry = self.registry.get(self.app_db)
        self.assertEqual(entry.health_status, HealthStatus.error("File not found"))
        self.assertEqual(entry.watch_results, ())
        self.assertEqual(self.watches.calls, 0)

    async def test_inspection_failure_is_error(self):
        self.inspector.fail.add(self.app_db)
        await self.runner.run_one_cycle()

        entry = self.registry.get(self.app_db)
        self.assertEqual(entry.health_status, HealthStatus.error("Inspection failed"))
        self.assertEqual(self.watches.calls, 0)

    async def test_removed_declaration_is_evicted(self):
        self.cfg.databases.append(DatabaseDeclaration(path=self.other_db))
        await self.runner.run_one_cycle()
        self.assertEqual(len(self.registry.databases), 2)
        self.assertEqual(self.targets[-1], {str(self.dir), str(self.dir / "sub")})

        self.cfg.databases.pop()
        await self.runner.run_one_cycle()
        self.assertEqual([e.path for e in self.registry.databases], [self.app_db])
        self.assertEqual(self.targets[-1], {str(self.dir)})

    async def test_quiet_flag_follows_activity_timeout(self):
        self.cfg.activity_timeout_minutes = 30
        self.inspector.modified_minutes_ago = 45
        await self.runner.run_one_cycle()
        self.assertTrue(self.registry.get(self.app_db).is_quiet)
        self.assertEqual(self.registry.total_warnings, 1)

        self.inspector.modified_minutes_ago = 5
        await self.runner.run_one_cycle()
        self.assertFalse(self.registry.get(self.app_db).is_quiet)

    async def test_declaration_without_watches_has_no_results(self):
        self.cfg.databases[0].watches = None
        await self.runner.run_one_cycle()
        self.assertEqual(self.registry.get(self.app_db).watch_results, ())
        self.assertEqual(self.watches.calls, 0)

    async def test_notifier_failure_does_not_abort_cycle(self):
        def explode(*_args):
            raise RuntimeError("boom")

        self.notifier.notify = explode
        self.watches.states["Pending"] = AlertState.WARNING
        with self.assertLogs("cycle", level="ERROR"):
            await self.runner.run_one_cycle()
        self.assertIsNotNone(self.registry.get(self.app_db))


if __name__ == "__main__":
    unittest.main()
