import asyncio
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from coalescer import RefreshCoalescer


class _GatedCycle:
    """Cycle that blocks until released, recording overlap."""

    def __init__(self):
        self.started = 0
        self.finished = 0
        self.active = 0
        self.max_active = 0
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self):
        self.started += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.entered.set()
        try:
            await self.release.wait()
        finally:
            self.active -= 1
            self.finished += 1


class TestRefreshCoalescer(unittest.IsolatedAsyncioTestCase):
    async def test_requests_during_a_cycle_collapse_into_one_more(self):
        cycle = _GatedCycle()
        coalescer = RefreshCoalescer(cycle)

        coalescer.request_refresh()
        await cycle.entered.wait()
        self.assertTrue(coalescer.is_running)

        for _ in range(10):
            coalescer.request_refresh()
        self.assertTrue(coalescer.is_pending)

        cycle.release.set()
        await coalescer.wait_idle()

        self.assertEqual(cycle.started, 2)
        self.assertEqual(cycle.max_active, 1)
        self.assertEqual(coalescer.cycles_completed, 2)
        self.assertFalse(coalescer.is_running)
        self.assertFalse(coalescer.is_pending)

    async def test_single_request_runs_one_cycle(self):
        calls = []

        async def cycle():
            calls.append(1)

        coalescer = RefreshCoalescer(cycle)
        await coalescer.refresh()
        self.assertEqual(calls, [1])

    async def test_requests_before_first_cycle_starts_coalesce(self):
        calls = []

        async def cycle():
            calls.append(1)

        coalescer = RefreshCoalescer(cycle)
        for _ in range(5):
            coalescer.request_refresh()
        await coalescer.wait_idle()
        self.assertEqual(calls, [1])

    async def test_request_from_inside_cycle_runs_exactly_once_more(self):
        calls = []
        coalescer = None

        async def cycle():
            calls.append(1)
            if len(calls) == 1:
                coalescer.request_refresh()
                coalescer.request_refresh()

        coalescer = RefreshCoalescer(cycle)
        await coalescer.refresh()
        self.assertEqual(len(calls), 2)

    async def test_failing_cycle_does_not_stop_the_loop(self):
        calls = []

        async def cycle():
            calls.append(1)
            if len(calls) == 1:
                coalescer.request_refresh()
                raise RuntimeError("boom")

        coalescer = RefreshCoalescer(cycle)
        with self.assertLogs("coalescer", level="ERROR"):
            await coalescer.refresh()
        self.assertEqual(len(calls), 2)

        await coalescer.refresh()
        self.assertEqual(len(calls), 3)

    async def test_shutdown_waits_for_in_flight_cycle_and_drops_pending(self):
        cycle = _GatedCycle()
        coalescer = RefreshCoalescer(cycle)

        coalescer.request_refresh()
        await cycle.entered.wait()
        coalescer.request_refresh()

        shutdown = asyncio.create_task(coalescer.shutdown())
        await asyncio.sleep(0)
        self.assertFalse(shutdown.done())

        cycle.release.set()
        await shutdown

        self.assertEqual(cycle.started, 1)
        self.assertEqual(cycle.finished, 1)

        coalescer.request_refresh()
        self.assertFalse(coalescer.is_running)

    async def test_threadsafe_request_reaches_the_loop(self):
        calls = []

        async def cycle():
            calls.append(1)

        coalescer = RefreshCoalescer(cycle)
        loop = asyncio.get_running_loop()
        await asyncio.to_thread(coalescer.request_refresh_threadsafe, loop)
        await asyncio.sleep(0)
        await coalescer.wait_idle()
        self.assertEqual(calls, [1])

    async def test_many_concurrent_waiters_see_one_stream(self):
        cycle = _GatedCycle()
        coalescer = RefreshCoalescer(cycle)

        waiters = [asyncio.create_task(coalescer.refresh()) for _ in range(8)]
        await cycle.entered.wait()
        cycle.release.set()
        await asyncio.gather(*waiters)

        self.assertLessEqual(cycle.started, 2)
        self.assertEqual(cycle.max_active, 1)


if __name__ == "__main__":
    unittest.main()
