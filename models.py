"""Data model shared by the refresh engine, its collaborators and the CLI."""
from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from utils import format_age, format_bytes


class WatchFormat(str, Enum):
    NUMBER = "number"
    DOLLAR = "dollar"
    BYTES = "bytes"
    PERCENT = "percent"
    TEXT = "text"

    @classmethod
    def parse(cls, value) -> "WatchFormat | None":
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class AlertState(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class HealthStatus:
    kind: str  # healthy | warning | error | unknown
    message: str = ""

    @classmethod
    def healthy(cls) -> "HealthStatus":
        return cls("healthy")

    @classmethod
    def warning(cls, message: str) -> "HealthStatus":
        return cls("warning", message)

    @classmethod
    def error(cls, message: str) -> "HealthStatus":
        return cls("error", message)

    @classmethod
    def unknown(cls) -> "HealthStatus":
        return cls("unknown")

    @property
    def label(self) -> str:
        if self.kind == "healthy":
            return "Healthy"
        if self.kind == "warning":
            return f"Warning: {self.message}"
        if self.kind == "error":
            return f"Error: {self.message}"
        return "Unknown"

    @property
    def is_error(self) -> bool:
        return self.kind == "error"


@dataclass(frozen=True)
class WatchSpec:
    name: str
    query: str
    warn_above: float | None = None
    warn_below: float | None = None
    format: WatchFormat | None = None

    def normalized(self) -> "WatchSpec":
        return WatchSpec(
            name=self.name.strip(),
            query=self.query.strip(),
            warn_above=self.warn_above,
            warn_below=self.warn_below,
            format=self.format,
        )

    def to_dict(self) -> dict:
        data: dict = {"name": self.name, "query": self.query}
        if self.warn_above is not None:
            data["warn_above"] = self.warn_above
        if self.warn_below is not None:
            data["warn_below"] = self.warn_below
        if self.format is not None:
            data["format"] = self.format.value
        return data


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type: str
    is_primary_key: bool
    is_not_null: bool
    default_value: str | None


@dataclass(frozen=True)
class TableInfo:
    name: str
    row_count: int = 0
    column_count: int = 0
    columns: tuple[ColumnInfo, ...] = ()
    index_count: int = 0


@dataclass(frozen=True)
class StructuralSnapshot:
    """What one inspection pass learned about a database file."""

    path: str
    file_size: int = 0
    tables: tuple[TableInfo, ...] = ()
    last_modified: datetime | None = None
    wal_size: int | None = None
    shm_size: int | None = None
    journal_mode: str | None = None
    page_size: int | None = None
    page_count: int | None = None
    encoding: str | None = None
    sqlite_version: str | None = None

    @property
    def table_count(self) -> int:
        return len(self.tables)


def parse_number(raw: str | None) -> float | None:
    """Parse a watch value as a finite float, or None when it is not numeric."""
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return value


@dataclass
class WatchResult:
    id: str
    name: str
    query: str
    format: WatchFormat = WatchFormat.NUMBER
    value: str | None = None
    numeric_value: float | None = None
    alert_state: AlertState = AlertState.NORMAL
    last_updated: datetime | None = None
    error: str | None = None

    @property
    def display_value(self) -> str:
        if self.value is None:
            return "--"
        num = self.numeric_value
        if num is None:
            return self.value

        if self.format == WatchFormat.DOLLAR:
            return f"${num:.2f}"
        if self.format == WatchFormat.BYTES:
            return format_bytes(int(num))
        if self.format == WatchFormat.PERCENT:
            return f"{num:.1f}%"
        if self.format == WatchFormat.TEXT:
            return self.value
        if num == round(num) and num < 1_000_000:
            return str(int(num))
        return f"{num:.1f}"


@dataclass(frozen=True)
class BackupRecord:
    source_path: str
    backup_path: str
    timestamp: datetime
    size_bytes: int
    verified: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def formatted_size(self) -> str:
        return format_bytes(self.size_bytes)

    @property
    def age(self) -> str:
        return format_age(self.timestamp)


@dataclass
class DatabaseEntry:
    """Registry item. Identity is the canonical absolute path."""

    path: str
    custom_name: str | None = None
    group: str | None = None
    is_pinned: bool = False
    is_registered: bool = False

    # Discovered metadata
    file_size: int = 0
    tables: tuple[TableInfo, ...] = ()
    last_modified: datetime | None = None
    wal_size: int | None = None
    shm_size: int | None = None
    journal_mode: str | None = None
    page_size: int | None = None
    page_count: int | None = None
    encoding: str | None = None
    sqlite_version: str | None = None

    # Status
    health_status: HealthStatus = field(default_factory=HealthStatus.unknown)
    last_checked: datetime | None = None
    backup_records: tuple[BackupRecord, ...] = ()

    watch_results: tuple[WatchResult, ...] = ()

    # Activity pulse
    is_quiet: bool = False
    previous_row_counts: dict[str, int] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.path

    @property
    def table_count(self) -> int:
        return len(self.tables)

    @property
    def display_name(self) -> str:
        return self.custom_name or Path(self.path).stem

    @property
    def row_counts(self) -> dict[str, int]:
        return {table.name: table.row_count for table in self.tables}

    @property
    def table_deltas(self) -> list[tuple[str, int]]:
        deltas: list[tuple[str, int]] = []
        for table in self.tables:
            previous = self.previous_row_counts.get(table.name)
            if previous is None:
                continue
            delta = table.row_count - previous
            if delta != 0:
                deltas.append((table.name, delta))
        return deltas

    @property
    def has_warnings(self) -> bool:
        return self.is_quiet or any(r.alert_state != AlertState.NORMAL for r in self.watch_results)

    @property
    def total_size(self) -> int:
        return self.file_size + (self.wal_size or 0) + (self.shm_size or 0)

    @property
    def formatted_size(self) -> str:
        return format_bytes(self.total_size)

    @property
    def parent_app(self) -> str | None:
        parts = Path(self.path).parts
        for marker in ("Containers", "Application Support"):
            if marker in parts:
                idx = parts.index(marker)
                if idx + 1 < len(parts):
                    return parts[idx + 1]
        return None

    def apply_snapshot(self, snapshot: StructuralSnapshot) -> None:
        self.file_size = snapshot.file_size
        self.tables = snapshot.tables
        self.last_modified = snapshot.last_modified
        self.wal_size = snapshot.wal_size
        self.shm_size = snapshot.shm_size
        self.journal_mode = snapshot.journal_mode
        self.page_size = snapshot.page_size
        self.page_count = snapshot.page_count
        self.encoding = snapshot.encoding
        self.sqlite_version = snapshot.sqlite_version

    def snapshot(self) -> StructuralSnapshot:
        return StructuralSnapshot(
            path=self.path,
            file_size=self.file_size,
            tables=self.tables,
            last_modified=self.last_modified,
            wal_size=self.wal_size,
            shm_size=self.shm_size,
            journal_mode=self.journal_mode,
            page_size=self.page_size,
            page_count=self.page_count,
            encoding=self.encoding,
            sqlite_version=self.sqlite_version,
        )
