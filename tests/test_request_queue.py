"""Tests for per-session request serialization."""

import asyncio
from uuid import uuid4

import pytest

from career_chat.api.request_queue import RequestQueue


@pytest.mark.asyncio
async def test_same_session_requests_run_one_at_a_time():
    queue = RequestQueue(max_concurrent=10, queue_timeout=5)
    session_id = uuid4()
    running = 0
    peak = 0
    order = []

    async def task(i):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        order.append(i)
        running -= 1
        return i

    results = await asyncio.gather(
        *[queue.enqueue_request(session_id, task, i) for i in range(5)]
    )

    assert results == [0, 1, 2, 3, 4]
    assert order == [0, 1, 2, 3, 4]
    assert peak == 1
    assert queue.pending(session_id) == 0


@pytest.mark.asyncio
async def test_different_sessions_run_in_parallel():
    queue = RequestQueue(max_concurrent=10, queue_timeout=5)
    started = asyncio.Event()
    both_running = asyncio.Event()
    running = 0

    async def task():
        nonlocal running
        running += 1
        if running == 2:
            both_running.set()
        await asyncio.wait_for(both_running.wait(), timeout=1)
        running -= 1
        started.set()

    await asyncio.gather(
        queue.enqueue_request(uuid4(), task),
        queue.enqueue_request(uuid4(), task),
    )
    assert started.is_set()


@pytest.mark.asyncio
async def test_global_concurrency_cap():
    queue = RequestQueue(max_concurrent=2, queue_timeout=5)
    running = 0
    peak = 0

    async def task():
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1

    await asyncio.gather(*[queue.enqueue_request(uuid4(), task) for _ in range(6)])

    assert peak == 2
    assert queue.active_requests == 0


@pytest.mark.asyncio
async def test_timeout_raises_and_releases_session():
    queue = RequestQueue(max_concurrent=1, queue_timeout=0.05)
    session_id = uuid4()

    async def slow():
        await asyncio.sleep(1)

    async def fast():
        return "done"

    with pytest.raises(TimeoutError):
        await queue.enqueue_request(session_id, slow)

    assert await queue.enqueue_request(session_id, fast) == "done"


@pytest.mark.asyncio
async def test_task_errors_propagate():
    queue = RequestQueue()

    async def boom():
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        await queue.enqueue_request(uuid4(), boom)
