import asyncio
import unittest

from client.api import TransientSyncError
from client.scheduler import PollScheduler


class TestPollScheduler(unittest.TestCase):
    def run_async(self, coro):
        return asyncio.run(coro)

    def test_callback_receives_fresh_snapshot(self):
        state = {"n": 0}
        seen = []

        async def scenario():
            scheduler = PollScheduler(lambda: dict(state), request_timeout=1.0)
            scheduler.enter_scope("playing")

            async def tick(snapshot, token):
                seen.append(snapshot["n"])
                state["n"] += 1
                return len(seen) >= 3

            await scheduler.every("count", 0.01, tick)

        self.run_async(scenario())
        self.assertEqual(seen, [0, 1, 2])

    def test_entering_scope_cancels_previous_polls(self):
        ticks = []

        async def scenario():
            scheduler = PollScheduler(lambda: None, request_timeout=1.0)
            scheduler.enter_scope("room-setup")

            async def old_poll(snapshot, token):
                ticks.append("old")

            task = scheduler.every("old", 0.01, old_poll)
            await asyncio.sleep(0.05)
            token = scheduler.enter_scope("role-select")
            self.assertFalse(token.cancelled)
            count = len(ticks)
            await asyncio.sleep(0.05)
            self.assertTrue(task.done())
            self.assertEqual(len(ticks), count)
            self.assertEqual(scheduler.active, [])
            self.assertEqual(scheduler.scope, "role-select")

        self.run_async(scenario())
        self.assertGreater(len(ticks), 0)

    def test_token_cancelled_while_request_in_flight(self):
        applied = []

        async def scenario():
            scheduler = PollScheduler(lambda: None, request_timeout=1.0)
            scheduler.enter_scope("playing")
            started = asyncio.Event()

            async def slow_poll(snapshot, token):
                started.set()
                try:
                    await asyncio.sleep(0.2)
                finally:
                    if not token.cancelled:
                        applied.append("stale")

            scheduler.every("slow", 0.01, slow_poll)
            await started.wait()
            scheduler.enter_scope("level-complete")
            await asyncio.sleep(0.05)

        self.run_async(scenario())
        self.assertEqual(applied, [])

    def test_transient_failures_are_retried(self):
        attempts = []

        async def scenario():
            scheduler = PollScheduler(lambda: None, request_timeout=1.0)
            scheduler.enter_scope("room-setup")

            async def flaky(snapshot, token):
                attempts.append(1)
                if len(attempts) < 3:
                    raise TransientSyncError("connection refused")
                return True

            await scheduler.every("flaky", 0.01, flaky)

        self.run_async(scenario())
        self.assertEqual(len(attempts), 3)

    def test_slow_tick_times_out_and_retries(self):
        attempts = []

        async def scenario():
            scheduler = PollScheduler(lambda: None, request_timeout=0.05)
            scheduler.enter_scope("playing")

            async def hangs_once(snapshot, token):
                attempts.append(1)
                if len(attempts) == 1:
                    await asyncio.sleep(1)
                return True

            await asyncio.wait_for(scheduler.every("hangs", 0.01, hangs_once), timeout=1.0)

        self.run_async(scenario())
        self.assertEqual(len(attempts), 2)

    def test_drain_waits_for_tasks(self):
        async def scenario():
            scheduler = PollScheduler(lambda: None, request_timeout=1.0)
            scheduler.enter_scope("playing")

            async def forever(snapshot, token):
                return False

            task = scheduler.every("forever", 0.01, forever)
            await scheduler.drain()
            self.assertTrue(task.done())
            self.assertEqual(scheduler.active, [])

        self.run_async(scenario())


if __name__ == "__main__":
    unittest.main()
