"""
Background triage dispatcher tests
"""
import asyncio

import pytest

from helpdesk.core import DispatcherFullException
from helpdesk.triage.infrastructure import TriageDispatcher


class TestDispatcher:

    @pytest.mark.asyncio
    async def test_processes_all_jobs(self):
        handled = []

        async def handler(ticket_id):
            handled.append(ticket_id)

        dispatcher = TriageDispatcher(handler, workers=2, queue_size=10)
        await dispatcher.start()
        for i in range(5):
            await dispatcher.submit(f"t-{i}")

        await dispatcher.join()

        assert sorted(handled) == [f"t-{i}" for i in range(5)]
        assert dispatcher.processed == 5
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_worker(self):
        handled = []

        async def handler(ticket_id):
            if ticket_id == "bad":
                raise RuntimeError("boom")
            handled.append(ticket_id)

        dispatcher = TriageDispatcher(handler, workers=1)
        await dispatcher.start()
        await dispatcher.submit("bad")
        await dispatcher.submit("good")

        await dispatcher.join()

        assert handled == ["good"]
        assert (dispatcher.processed, dispatcher.failed) == (1, 1)
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_full_queue_rejects_nowait_submit(self):
        release = asyncio.Event()

        async def handler(ticket_id):
            await release.wait()

        dispatcher = TriageDispatcher(handler, workers=1, queue_size=1)
        await dispatcher.start()

        # Workers have not run yet, so the single slot stays taken
        dispatcher.submit_nowait("t-1")
        with pytest.raises(DispatcherFullException) as exc_info:
            dispatcher.submit_nowait("t-2")

        assert exc_info.value.capacity == 1
        release.set()
        await dispatcher.stop(drain=True)
        assert dispatcher.processed == 1

    @pytest.mark.asyncio
    async def test_submit_before_start(self):
        async def handler(ticket_id):
            pass

        dispatcher = TriageDispatcher(handler)

        with pytest.raises(RuntimeError):
            await dispatcher.submit("t-1")

    @pytest.mark.asyncio
    async def test_stop_drains_queue(self):
        handled = []

        async def handler(ticket_id):
            await asyncio.sleep(0)
            handled.append(ticket_id)

        dispatcher = TriageDispatcher(handler, workers=1)
        await dispatcher.start()
        for i in range(3):
            dispatcher.submit_nowait(f"t-{i}")

        await dispatcher.stop(drain=True)

        assert handled == ["t-0", "t-1", "t-2"]
        assert dispatcher.is_running is False
        assert dispatcher.pending == 0

    def test_needs_a_worker(self):
        async def handler(ticket_id):
            pass

        with pytest.raises(ValueError):
            TriageDispatcher(handler, workers=0)
