"""Plain-text status board rendering for the CLI."""

from __future__ import annotations

from datetime import datetime

from models import AlertState, BackupRecord, DatabaseEntry, StructuralSnapshot
from registry import Registry
from utils import format_age, format_bytes

_STATE_MARKERS = {
    AlertState.NORMAL: " ",
    AlertState.WARNING: "!",
    AlertState.CRITICAL: "x",
}


def render_entry(entry: DatabaseEntry, now: datetime | None = None) -> list[str]:
    header = f"{entry.display_name}  [{entry.health_status.label}]"
    details = [entry.formatted_size, f"{entry.table_count} tables"]
    if entry.journal_mode:
        details.append(entry.journal_mode.upper())
    if entry.last_modified is not None:
        details.append(f"modified {format_age(entry.last_modified, now)}")
    if entry.is_quiet:
        details.append("quiet")

    lines = [header, f"  {entry.path}", "  " + " | ".join(details)]

    deltas = entry.table_deltas
    if deltas:
        lines.append("  " + ", ".join(f"{name} {delta:+d}" for name, delta in deltas))

    for result in entry.watch_results:
        marker = _STATE_MARKERS.get(result.alert_state, "?")
        line = f"  {marker} {result.name}: {result.display_value}"
        if result.error:
            line += f" ({result.error})"
        lines.append(line)
    return lines


def render_board(registry: Registry, now: datetime | None = None) -> str:
    if not registry.databases:
        return "No databases configured. Add one with `litebar add PATH`."

    lines: list[str] = []
    for group, entries in registry.grouped():
        lines.append(f"== {group} ==")
        for entry in entries:
            lines.extend(render_entry(entry, now))
        lines.append("")

    footer = f"{len(registry.databases)} database(s)"
    warnings = registry.total_warnings
    if warnings:
        footer += f", {warnings} warning(s)"
    if registry.last_refresh is not None:
        footer += f", refreshed {format_age(registry.last_refresh, now)}"
    lines.append(footer)
    return "\n".join(lines)


def render_scan(snapshots: list[StructuralSnapshot]) -> str:
    if not snapshots:
        return "No SQLite databases found."
    lines = []
    for snapshot in snapshots:
        total_rows = sum(table.row_count for table in snapshot.tables)
        lines.append(
            f"{snapshot.path}  {format_bytes(snapshot.file_size)}, "
            f"{snapshot.table_count} tables, {total_rows} rows"
        )
    return "\n".join(lines)


def render_backup(record: BackupRecord) -> str:
    return f"Backup written to {record.backup_path} ({record.formatted_size})"
