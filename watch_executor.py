"""Watch evaluator: runs single-value queries and applies thresholds."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from db_pool import LitebarError, ReadOnlyConnection
from models import AlertState, WatchFormat, WatchResult, WatchSpec, parse_number
from utils import utc_now

log = logging.getLogger(__name__)


def _new_result(database_id: str, watch: WatchSpec) -> WatchResult:
    return WatchResult(
        id=f"{database_id}:{watch.name}",
        name=watch.name,
        query=watch.query,
        format=watch.format or WatchFormat.NUMBER,
    )


def evaluate_thresholds(watch: WatchSpec, numeric_value: float | None) -> AlertState:
    if numeric_value is None:
        return AlertState.NORMAL
    if watch.warn_above is not None and numeric_value > watch.warn_above:
        return AlertState.WARNING
    if watch.warn_below is not None and numeric_value < watch.warn_below:
        return AlertState.WARNING
    return AlertState.NORMAL


class WatchExecutor:
    def evaluate(self, watches: Sequence[WatchSpec], path: str | Path) -> list[WatchResult]:
        """Evaluate every watch against the database, one result per watch, in order."""
        database_id = str(path)
        conn = ReadOnlyConnection(database_id)
        try:
            conn.open()
        except LitebarError as exc:
            log.warning("Watch connection failed for %s: %s", database_id, exc)
            results = []
            for watch in watches:
                result = _new_result(database_id, watch)
                result.error = str(exc)
                result.alert_state = AlertState.CRITICAL
                results.append(result)
            return results

        try:
            return [self._evaluate_one(conn, database_id, watch) for watch in watches]
        finally:
            conn.close()

    def _evaluate_one(self, conn: ReadOnlyConnection, database_id: str, watch: WatchSpec) -> WatchResult:
        result = _new_result(database_id, watch)
        try:
            raw = conn.single_value(watch.query)
        except LitebarError as exc:
            log.info("Watch %r on %s failed: %s", watch.name, database_id, exc)
            result.error = str(exc)
            result.alert_state = AlertState.CRITICAL
            return result

        result.value = raw
        result.numeric_value = parse_number(raw)
        result.last_updated = utc_now()
        result.alert_state = evaluate_thresholds(watch, result.numeric_value)
        return result
