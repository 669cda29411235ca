import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)

_BYTE_UNITS = ("KB", "MB", "GB", "TB", "PB")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_bytes(count: int | float) -> str:
    """Human-readable file size using decimal units (1 KB = 1000 bytes)."""
    value = float(count)
    if abs(value) < 1000:
        amount = int(value)
        return f"{amount} byte" if amount == 1 else f"{amount} bytes"
    unit = _BYTE_UNITS[0]
    for unit in _BYTE_UNITS:
        value /= 1000.0
        if abs(value) < 1000:
            break
    if abs(value) >= 100:
        return f"{value:.0f} {unit}"
    return f"{value:.1f} {unit}"


def format_age(moment: datetime, now: datetime | None = None) -> str:
    """Abbreviated relative age, e.g. '5 min. ago'."""
    reference = now or utc_now()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    seconds = int((reference - moment).total_seconds())
    if seconds < 0:
        return "in the future"
    if seconds < 60:
        return f"{seconds} sec. ago"
    if seconds < 3600:
        return f"{seconds // 60} min. ago"
    if seconds < 86400:
        return f"{seconds // 3600} hr. ago"
    return f"{seconds // 86400} day ago" if seconds < 172800 else f"{seconds // 86400} days ago"


def atomic_write(path: str | Path, payload: str | bytes) -> None:
    """Atomically write text/bytes by writing a sibling temp file then rename."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    tmp_name = f".{target.name}.{os.getpid()}.tmp"
    tmp_path = target.with_name(tmp_name)

    if isinstance(payload, bytes):
        tmp_path.write_bytes(payload)
    else:
        tmp_path.write_text(payload, encoding="utf-8")

    os.replace(tmp_path, target)


class LatencyTracker:
    """Context manager that measures wall-clock latency for a block of code.

    Usage (async)::

        async with LatencyTracker("cycle", "run_one_cycle") as lt:
            await runner.run_one_cycle()
        # lt.elapsed_ms is now set, log entry emitted at DEBUG level
    """

    __slots__ = ("service", "operation", "elapsed_ms", "_start", "_logger")

    def __init__(self, service: str, operation: str, *, logger: logging.Logger | None = None):
        self.service = service
        self.operation = operation
        self.elapsed_ms: float = 0.0
        self._start: float = 0.0
        self._logger = logger or logging.getLogger(f"latency.{service}")

    def _finish(self) -> None:
        self.elapsed_ms = (time.monotonic() - self._start) * 1000
        self._logger.debug(
            "%s.%s latency=%.1fms",
            self.service, self.operation, self.elapsed_ms,
        )

    def __enter__(self) -> "LatencyTracker":
        self._start = time.monotonic()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._finish()

    async def __aenter__(self) -> "LatencyTracker":
        self._start = time.monotonic()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self._finish()
