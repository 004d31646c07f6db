import asyncio

import pytest

from app.services.send_queue import SendQueue


async def test_jobs_run_in_order_and_spaced():
    queue = SendQueue(interval=0.05)
    loop = asyncio.get_running_loop()
    started: list[tuple[int, float]] = []

    def make_job(n):
        async def job():
            started.append((n, loop.time()))
            return n

        return job

    results = await asyncio.gather(*(queue.add(make_job(n)) for n in range(3)))

    assert results == [0, 1, 2]
    assert [n for n, _ in started] == [0, 1, 2]
    gaps = [b - a for (_, a), (_, b) in zip(started, started[1:])]
    assert all(gap >= 0.045 for gap in gaps)
    assert queue.pending == 0


async def test_jobs_never_overlap():
    queue = SendQueue(interval=0)
    running = 0
    peak = 0

    async def job():
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1

    await asyncio.gather(*(queue.add(job) for _ in range(5)))
    assert peak == 1


async def test_failing_job_propagates_and_queue_continues():
    queue = SendQueue(interval=0)

    async def boom():
        raise RuntimeError("send failed")

    async def ok():
        return "sent"

    with pytest.raises(RuntimeError, match="send failed"):
        await queue.add(boom)
    assert await queue.add(ok) == "sent"


async def test_negative_interval_is_clamped():
    assert SendQueue(interval=-3).interval == 0.0
