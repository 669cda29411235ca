"""Refresh coalescer: many trigger sources, one serialized cycle stream.

State machine::

    Idle --request--> Running --(pending?)--> Running
                              \\--(no)------> Idle

``request_refresh()`` only sets a flag and, when idle, starts the drain task.
Requests that arrive while a cycle runs collapse into exactly one follow-up
cycle. Everything runs on one event loop, so the flag check and the task
hand-off cannot interleave.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

log = logging.getLogger(__name__)


class RefreshCoalescer:
    def __init__(self, run_cycle: Callable[[], Awaitable[None]], *, name: str = "refresh"):
        self._run_cycle = run_cycle
        self._name = name
        self._pending = False
        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed = False
        self.cycles_completed = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None

    @property
    def is_pending(self) -> bool:
        return self._pending

    def request_refresh(self) -> None:
        """Non-blocking. Must be called on the event loop thread."""
        if self._closed:
            log.debug("Refresh requested after shutdown; ignoring")
            return
        self._pending = True
        if self._task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._task = self._loop.create_task(self._drain(), name=f"litebar:{self._name}")

    def request_refresh_threadsafe(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Bridge for callers on other threads (signal handlers, UI threads)."""
        target = loop or self._loop
        if target is None:
            raise RuntimeError("No event loop known; pass the loop explicitly")
        target.call_soon_threadsafe(self.request_refresh)

    async def refresh(self) -> None:
        """Request a refresh and wait until the coalescer is idle again."""
        self.request_refresh()
        await self.wait_idle()

    async def wait_idle(self) -> None:
        while self._task is not None:
            await asyncio.shield(self._task)

    async def shutdown(self) -> None:
        """Stop accepting requests and let the in-flight cycle finish."""
        self._closed = True
        self._pending = False
        await self.wait_idle()

    async def _drain(self) -> None:
        try:
            while self._pending and not self._closed:
                self._pending = False
                try:
                    await self._run_cycle()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    log.error("Refresh cycle failed", exc_info=True)
                self.cycles_completed += 1
        finally:
            self._task = None
