import sqlite3
import sys
import tempfile
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from models import AlertState, WatchFormat, WatchSpec
from watch_executor import WatchExecutor, evaluate_thresholds


def _make_jobs_db(path: Path, pending: int, done: int = 0) -> None:
    conn = sqlite3.connect(path)
    try:
        conn.execute("CREATE TABLE jobs (id INTEGER PRIMARY KEY, status TEXT NOT NULL)")
        conn.executemany(
            "INSERT INTO jobs (status) VALUES (?)",
            [("pending",)] * pending + [("done",)] * done,
        )
        conn.commit()
    finally:
        conn.close()


class TestWatchExecutor(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory(prefix="litebar-watch-")
        self.addCleanup(self._tmp.cleanup)
        self.db_path = Path(self._tmp.name) / "app.db"
        _make_jobs_db(self.db_path, pending=37, done=5)
        self.executor = WatchExecutor()

    def evaluate_one(self, watch: WatchSpec):
        results = self.executor.evaluate([watch], self.db_path)
        self.assertEqual(len(results), 1)
        return results[0]

    def test_count_query_reads_current_value(self):
        watch = WatchSpec("Pending", "SELECT COUNT(*) FROM jobs WHERE status = 'pending'")
        result = self.evaluate_one(watch)
        self.assertEqual(result.value, "37")
        self.assertEqual(result.numeric_value, 37.0)
        self.assertEqual(result.display_value, "37")
        self.assertEqual(result.alert_state, AlertState.NORMAL)
        self.assertIsNone(result.error)
        self.assertEqual(result.id, f"{self.db_path}:Pending")

        conn = sqlite3.connect(self.db_path)
        conn.execute("INSERT INTO jobs (status) VALUES ('pending')")
        conn.commit()
        conn.close()

        self.assertEqual(self.evaluate_one(watch).display_value, "38")

    def test_warn_above_and_below(self):
        above = WatchSpec("High", "SELECT COUNT(*) FROM jobs", warn_above=40)
        below = WatchSpec("Low", "SELECT COUNT(*) FROM jobs", warn_below=50)
        inside = WatchSpec("Ok", "SELECT COUNT(*) FROM jobs", warn_above=100, warn_below=1)

        results = self.executor.evaluate([above, below, inside], self.db_path)

        self.assertEqual(
            [r.alert_state for r in results],
            [AlertState.WARNING, AlertState.WARNING, AlertState.NORMAL],
        )

    def test_threshold_is_strict(self):
        watch = WatchSpec("Exact", "SELECT 42", warn_above=42, warn_below=42)
        self.assertEqual(self.evaluate_one(watch).alert_state, AlertState.NORMAL)

    def test_non_numeric_value_never_alerts(self):
        watch = WatchSpec("Status", "SELECT 'green'", warn_above=0, warn_below=0)
        result = self.evaluate_one(watch)
        self.assertEqual(result.value, "green")
        self.assertIsNone(result.numeric_value)
        self.assertEqual(result.alert_state, AlertState.NORMAL)
        self.assertEqual(result.display_value, "green")

    def test_multiple_rows_is_a_watch_error(self):
        watch = WatchSpec("Rows", "SELECT status FROM jobs")
        result = self.evaluate_one(watch)
        self.assertEqual(result.alert_state, AlertState.CRITICAL)
        self.assertIn("Query failed", result.error)
        self.assertIsNone(result.value)

    def test_multiple_columns_is_a_watch_error(self):
        result = self.evaluate_one(WatchSpec("Cols", "SELECT 1, 2"))
        self.assertEqual(result.alert_state, AlertState.CRITICAL)
        self.assertIn("column", result.error)

    def test_zero_rows_yields_no_value_and_no_error(self):
        result = self.evaluate_one(WatchSpec("Empty", "SELECT id FROM jobs WHERE 0"))
        self.assertIsNone(result.value)
        self.assertIsNone(result.error)
        self.assertEqual(result.alert_state, AlertState.NORMAL)
        self.assertEqual(result.display_value, "--")

    def test_failing_watch_does_not_stop_others(self):
        results = self.executor.evaluate(
            [WatchSpec("Broken", "SELECT * FROM missing_table"), WatchSpec("Fine", "SELECT 7")],
            self.db_path,
        )
        self.assertEqual(results[0].alert_state, AlertState.CRITICAL)
        self.assertEqual(results[1].value, "7")

    def test_writes_are_rejected_on_read_only_connection(self):
        result = self.evaluate_one(WatchSpec("Write", "DELETE FROM jobs"))
        self.assertEqual(result.alert_state, AlertState.CRITICAL)

        conn = sqlite3.connect(self.db_path)
        count = conn.execute("SELECT COUNT(*) FROM jobs").fetchone()[0]
        conn.close()
        self.assertEqual(count, 42)

    def test_connection_failure_marks_every_watch_critical(self):
        missing = Path(self._tmp.name) / "missing.db"
        results = self.executor.evaluate(
            [WatchSpec("A", "SELECT 1"), WatchSpec("B", "SELECT 2")], missing
        )
        self.assertEqual([r.alert_state for r in results], [AlertState.CRITICAL] * 2)
        self.assertEqual(results[0].error, results[1].error)
        self.assertTrue(results[0].error.startswith("Cannot open database"))

    def test_format_is_carried_to_result(self):
        result = self.evaluate_one(WatchSpec("Money", "SELECT 12.5", format=WatchFormat.DOLLAR))
        self.assertEqual(result.display_value, "$12.50")


class TestEvaluateThresholds(unittest.TestCase):
    def test_no_value_is_normal(self):
        self.assertEqual(
            evaluate_thresholds(WatchSpec("x", "q", warn_above=1), None), AlertState.NORMAL
        )

    def test_above_wins_before_below(self):
        watch = WatchSpec("x", "q", warn_above=5, warn_below=10)
        self.assertEqual(evaluate_thresholds(watch, 7), AlertState.WARNING)


if __name__ == "__main__":
    unittest.main()
