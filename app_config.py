"""The human-editable YAML configuration document (``config.yaml``).

Agents and people edit this file directly, so loading is forgiving: a
malformed document logs an error and yields defaults, relative paths are
dropped, and repeated declarations of the same path are merged so that an
appended entry can update metadata or watches of an earlier one.
"""
from __future__ import annotations

import json
import logging
import os
import shutil
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

import config
from models import WatchFormat, WatchSpec
from utils import atomic_write

log = logging.getLogger(__name__)

DEFAULT_CONFIG_TEMPLATE = """\
# Litebar monitoring configuration.
# Paths must be absolute (or start with ~). Watch queries must return one value.
refresh_interval: 60
activity_timeout_minutes: 30
databases: []
"""

AGENT_GUIDE_TEMPLATE = """\
# Litebar Runtime Agent Guide

Use this folder to manage Litebar monitoring configuration.

- `config.yaml` controls databases and watches.
- Use absolute paths.
- Watch queries must return one value (one row, one column).
- Appending a second entry with the same `path` updates its `name`/`group`;
  its `watches` replace the earlier list only when the field is present.

```yaml
databases:
  - path: ~/projects/app/data.db
    name: App
    group: Work
    watches:
      - name: Pending jobs
        query: "SELECT COUNT(*) FROM jobs WHERE status = 'pending'"
        warn_above: 100
        format: number
```

Formats: number, dollar, bytes, percent, text.
"""


def config_dir() -> Path:
    return config.CONFIG_DIR


def config_path() -> Path:
    return config.CONFIG_DIR / config.CONFIG_FILE_NAME


def agent_guide_path() -> Path:
    return config.CONFIG_DIR / config.AGENT_GUIDE_FILE_NAME


def backups_dir() -> Path:
    return config.CONFIG_DIR / config.BACKUPS_DIR_NAME


def _trimmed_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def normalized_absolute_path(path: Any) -> str | None:
    """Expand ``~`` and collapse ``.``/``..``; None for relative or empty paths."""
    trimmed = str(path or "").strip()
    if not trimmed:
        return None
    if not (trimmed.startswith("/") or trimmed.startswith("~")):
        return None
    expanded = os.path.expanduser(trimmed)
    if not os.path.isabs(expanded):
        return None
    return os.path.normpath(expanded)


@dataclass
class DatabaseDeclaration:
    path: str
    name: str | None = None
    group: str | None = None
    watches: list[WatchSpec] | None = None

    def to_dict(self) -> dict:
        data: dict = {"path": self.path}
        if self.name is not None:
            data["name"] = self.name
        if self.group is not None:
            data["group"] = self.group
        if self.watches is not None:
            data["watches"] = [watch.to_dict() for watch in self.watches]
        return data


@dataclass
class AppConfig:
    refresh_interval: int = config.DEFAULT_REFRESH_INTERVAL
    activity_timeout_minutes: int = config.DEFAULT_ACTIVITY_TIMEOUT_MINUTES
    databases: list[DatabaseDeclaration] = field(default_factory=list)

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, raw: Any) -> "AppConfig":
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise ValueError("configuration document must be a mapping")

        refresh_interval = raw.get("refresh_interval", config.DEFAULT_REFRESH_INTERVAL)
        activity_timeout = raw.get(
            "activity_timeout_minutes", config.DEFAULT_ACTIVITY_TIMEOUT_MINUTES
        )
        databases_raw = raw.get("databases") or []
        if not isinstance(databases_raw, list):
            raise ValueError("'databases' must be a list")

        return cls(
            refresh_interval=int(refresh_interval),
            activity_timeout_minutes=int(activity_timeout),
            databases=[_parse_declaration(item) for item in databases_raw],
        )

    def to_dict(self) -> dict:
        return {
            "refresh_interval": self.refresh_interval,
            "activity_timeout_minutes": self.activity_timeout_minutes,
            "databases": [entry.to_dict() for entry in self.databases],
        }

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def normalized(self) -> "AppConfig":
        merged: dict[str, DatabaseDeclaration] = {}
        order: list[str] = []

        for entry in self.databases:
            path = normalized_absolute_path(entry.path)
            if path is None:
                continue

            watches = None
            if entry.watches is not None:
                watches = [
                    watch
                    for watch in (w.normalized() for w in entry.watches)
                    if watch.name and watch.query
                ]
                if not watches:
                    watches = None

            normalized_entry = DatabaseDeclaration(
                path=path,
                name=_trimmed_or_none(entry.name),
                group=_trimmed_or_none(entry.group),
                watches=watches,
            )

            existing = merged.get(path)
            if existing is None:
                merged[path] = normalized_entry
                order.append(path)
                continue

            if normalized_entry.name is not None:
                existing.name = normalized_entry.name
            if normalized_entry.group is not None:
                existing.group = normalized_entry.group
            # Watches are replaced only when the later entry has a watches field.
            if entry.watches is not None:
                existing.watches = watches

        return AppConfig(
            refresh_interval=max(config.MIN_REFRESH_INTERVAL, int(self.refresh_interval)),
            activity_timeout_minutes=max(
                config.MIN_ACTIVITY_TIMEOUT_MINUTES, int(self.activity_timeout_minutes)
            ),
            databases=[merged[path] for path in order],
        )

    # ------------------------------------------------------------------
    # Mutation (explicit user actions)
    # ------------------------------------------------------------------

    def add_database(self, path: str, name: str | None = None, group: str | None = None) -> bool:
        normalized = normalized_absolute_path(path)
        if normalized is None:
            return False
        if any(entry.path == normalized for entry in self.databases):
            return False
        self.databases.append(
            DatabaseDeclaration(
                path=normalized,
                name=_trimmed_or_none(name),
                group=_trimmed_or_none(group),
            )
        )
        return True

    def remove_database(self, path: str) -> bool:
        normalized = normalized_absolute_path(path)
        if normalized is None:
            return False
        before = len(self.databases)
        self.databases = [entry for entry in self.databases if entry.path != normalized]
        return len(self.databases) != before

    def declaration(self, path: str) -> DatabaseDeclaration | None:
        normalized = normalized_absolute_path(path)
        for entry in self.databases:
            if entry.path == normalized:
                return entry
        return None

    def with_refresh_interval(self, seconds: int) -> "AppConfig":
        return replace(self, refresh_interval=max(config.MIN_REFRESH_INTERVAL, int(seconds)))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        text = yaml.safe_dump(self.normalized().to_dict(), sort_keys=False, allow_unicode=True)
        atomic_write(config_path(), text)


def _parse_watch(raw: Any) -> WatchSpec:
    if not isinstance(raw, dict):
        raise ValueError("each watch must be a mapping")
    return WatchSpec(
        name=str(raw.get("name") or ""),
        query=str(raw.get("query") or ""),
        warn_above=_optional_float(raw.get("warn_above")),
        warn_below=_optional_float(raw.get("warn_below")),
        format=WatchFormat.parse(raw.get("format")),
    )


def _parse_declaration(raw: Any) -> DatabaseDeclaration:
    if not isinstance(raw, dict):
        raise ValueError("each database entry must be a mapping")
    watches = None
    if "watches" in raw and raw["watches"] is not None:
        watches_raw = raw["watches"]
        if not isinstance(watches_raw, list):
            raise ValueError("'watches' must be a list")
        watches = [_parse_watch(item) for item in watches_raw]
    return DatabaseDeclaration(
        path=str(raw.get("path") or ""),
        name=raw.get("name"),
        group=raw.get("group"),
        watches=watches,
    )


# ----------------------------------------------------------------------
# Loading and support files
# ----------------------------------------------------------------------


def load() -> AppConfig:
    """Load the normalized configuration. Never raises; defaults on any failure."""
    ensure_support_files()

    path = config_path()
    if not path.exists():
        return AppConfig().normalized()

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        return AppConfig.from_dict(raw).normalized()
    except Exception as exc:
        log.error("Failed to parse config at %s: %s", path, exc)
        return AppConfig().normalized()


def ensure_support_files() -> None:
    try:
        config_dir().mkdir(parents=True, exist_ok=True)
    except OSError:
        log.warning("Failed to create config directory at %s", config_dir(), exc_info=True)
        return
    _ensure_config_file()
    _ensure_agent_guide()


def _ensure_config_file() -> None:
    if config_path().exists():
        return
    if _migrate_legacy_config():
        return
    try:
        atomic_write(config_path(), DEFAULT_CONFIG_TEMPLATE)
    except OSError:
        log.warning("Failed to write default config at %s", config_path(), exc_info=True)


def _ensure_agent_guide() -> None:
    if agent_guide_path().exists():
        return
    try:
        atomic_write(agent_guide_path(), AGENT_GUIDE_TEMPLATE)
    except OSError:
        log.warning("Failed to write agent guide at %s", agent_guide_path(), exc_info=True)


def _migrate_legacy_config() -> bool:
    legacy_dir = config.LEGACY_CONFIG_DIR
    legacy_yaml = legacy_dir / "config.yaml"
    legacy_json = legacy_dir / "config.json"

    if legacy_yaml.exists():
        try:
            shutil.copyfile(legacy_yaml, config_path())
            log.info("Migrated legacy YAML config from %s", legacy_yaml)
            return True
        except OSError as exc:
            log.error("Failed to migrate legacy YAML config: %s", exc)

    if legacy_json.exists():
        try:
            raw = json.loads(legacy_json.read_text(encoding="utf-8"))
            migrated = AppConfig.from_dict(raw).normalized()
            text = yaml.safe_dump(migrated.to_dict(), sort_keys=False, allow_unicode=True)
            atomic_write(config_path(), text)
            log.info("Migrated legacy JSON config from %s", legacy_json)
            return True
        except (OSError, ValueError, TypeError) as exc:
            log.error("Failed to migrate legacy JSON config: %s", exc)

    return False
