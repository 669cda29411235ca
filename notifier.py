"""Notification sinks for watch alert transitions.

Notifications are fire-and-forget: a sink never raises into the refresh
cycle and nothing waits for delivery.
"""
from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod

import config

log = logging.getLogger(__name__)


def alert_message(database_name: str, watch_name: str, value: str) -> str:
    return f"{database_name}: {watch_name} = {value}"


class Notifier(ABC):
    @abstractmethod
    def notify(self, database_name: str, watch_name: str, value: str) -> None:
        ...


class LogNotifier(Notifier):
    def notify(self, database_name: str, watch_name: str, value: str) -> None:
        log.warning("Watch alert: %s", alert_message(database_name, watch_name, value))


class CommandNotifier(Notifier):
    """Desktop notification through an external command.

    Uses ``LITEBAR_NOTIFY_COMMAND`` when set (the message is appended as the
    last argument), otherwise ``osascript`` on macOS or ``notify-send``
    elsewhere. Falls back to logging when no command is available.
    """

    def __init__(self, command: list[str] | None = None):
        self._fallback = LogNotifier()
        if command is not None:
            self.command = list(command)
        elif config.NOTIFY_COMMAND:
            self.command = shlex.split(config.NOTIFY_COMMAND)
        else:
            self.command = self._default_command()

    @staticmethod
    def _default_command() -> list[str]:
        if sys.platform == "darwin" and shutil.which("osascript"):
            return ["osascript", "-e"]
        if shutil.which("notify-send"):
            return ["notify-send", config.APP_NAME]
        return []

    def _argv(self, message: str) -> list[str]:
        if self.command[:1] == ["osascript"]:
            escaped = message.replace("\\", "\\\\").replace('"', '\\"')
            script = f'display notification "{escaped}" with title "{config.APP_NAME}"'
            return [*self.command, script]
        return [*self.command, message]

    def notify(self, database_name: str, watch_name: str, value: str) -> None:
        self._fallback.notify(database_name, watch_name, value)
        if not self.command:
            return
        argv = self._argv(alert_message(database_name, watch_name, value))
        try:
            subprocess.Popen(
                argv,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError:
            log.warning("Notification command failed: %s", argv[0], exc_info=True)


def default_notifier() -> Notifier:
    if config.NOTIFICATIONS_ENABLED:
        return CommandNotifier()
    return LogNotifier()
