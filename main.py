import argparse
import asyncio
import logging
import signal
import sys

import config
from db_pool import BackupError
from monitor import Monitor
from registry import Registry
from report import render_backup, render_board, render_scan

log = logging.getLogger("litebar")


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
def setup_logging(level: str | None = None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    try:
        config.LOG_DIR.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.LOG_DIR / "litebar.log"))
    except OSError as exc:
        print(f"Log directory unavailable ({exc}); logging to stdout only", file=sys.stderr)

    logging.basicConfig(
        level=getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
def _log_board(registry: Registry) -> None:
    for line in render_board(registry).splitlines():
        log.info("%s", line)


async def run_daemon() -> int:
    monitor = Monitor(on_cycle=_log_board)
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def shutdown(*_args):
        log.info("Shutdown signal received...")
        loop.call_soon_threadsafe(stop_event.set)

    def refresh_now(*_args):
        log.info("Manual refresh requested")
        monitor.request_refresh_threadsafe(loop)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, refresh_now)

    monitor.start()
    try:
        await stop_event.wait()
    finally:
        await monitor.stop()
    log.info("Litebar shut down.")
    return 0


async def run_once() -> int:
    monitor = Monitor()
    await monitor.refresh()
    await monitor.stop()
    print(render_board(monitor.registry))
    return 1 if any(entry.health_status.is_error for entry in monitor.databases) else 0


async def run_add(path: str, name: str | None, group: str | None) -> int:
    monitor = Monitor()
    added = await monitor.add_database(path, name=name, group=group)
    if added:
        await monitor.refresh()
    await monitor.stop()
    if not added:
        print(f"Not added: {path} is relative or already configured", file=sys.stderr)
        return 1
    print(render_board(monitor.registry))
    return 0


async def run_remove(path: str) -> int:
    monitor = Monitor()
    removed = await monitor.remove_database(path)
    await monitor.stop()
    if not removed:
        print(f"Not configured: {path}", file=sys.stderr)
        return 1
    print(f"Removed {path}")
    return 0


async def run_scan(directory: str, depth: int | None) -> int:
    monitor = Monitor()
    snapshots = await monitor.scan(directory, depth)
    print(render_scan(snapshots))
    return 0


async def run_backup(path: str) -> int:
    monitor = Monitor()
    try:
        record = await monitor.backup(path)
    except BackupError as exc:
        log.error("%s", exc)
        return 1
    finally:
        await monitor.stop()
    print(render_backup(record))
    return 0


async def run_interval(seconds: int) -> int:
    monitor = Monitor()
    applied = await monitor.update_refresh_interval(seconds)
    await monitor.stop()
    print(f"Refresh interval set to {applied} seconds")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="litebar",
        description="Monitor SQLite databases declared in ~/.litebar/config.yaml.",
    )
    parser.add_argument("--log-level", default=None, help="Override LITEBAR_LOG_LEVEL.")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Run the monitor until interrupted (default).")
    sub.add_parser("once", help="Run one refresh cycle and print the status board.")

    add = sub.add_parser("add", help="Add a database to the config.")
    add.add_argument("path")
    add.add_argument("--name", default=None)
    add.add_argument("--group", default=None)

    remove = sub.add_parser("remove", help="Remove a database from the config.")
    remove.add_argument("path")

    scan = sub.add_parser("scan", help="Find SQLite files under a directory.")
    scan.add_argument("directory")
    scan.add_argument("--depth", type=int, default=None)

    backup = sub.add_parser("backup", help="Write an online backup copy of a database.")
    backup.add_argument("path")

    interval = sub.add_parser("interval", help="Set the periodic refresh interval.")
    interval.add_argument("seconds", type=int)

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    setup_logging(args.log_level)

    command = args.command or "run"
    if command == "run":
        coro = run_daemon()
    elif command == "once":
        coro = run_once()
    elif command == "add":
        coro = run_add(args.path, args.name, args.group)
    elif command == "remove":
        coro = run_remove(args.path)
    elif command == "scan":
        coro = run_scan(args.directory, args.depth)
    elif command == "backup":
        coro = run_backup(args.path)
    else:
        coro = run_interval(args.seconds)

    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        log.info("Interrupted.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
