"""Tests for ExchangeExecutor."""

import asyncio

import pytest

from parley.core.executor import ExchangeExecutor


def _job(events, name, gate=None):
    async def job():
        events.append(f"{name}:start")
        if gate is not None:
            await gate.wait()
        events.append(f"{name}:end")
        return name

    return job


@pytest.mark.asyncio
async def test_same_key_runs_in_arrival_order():
    executor = ExchangeExecutor(max_concurrent=4)
    events = []
    gate = asyncio.Event()

    first = executor.submit(1, _job(events, "a", gate))
    second = executor.submit(1, _job(events, "b"))
    await asyncio.sleep(0.01)
    assert events == ["a:start"]

    gate.set()
    assert await asyncio.gather(first, second) == ["a", "b"]
    assert events == ["a:start", "a:end", "b:start", "b:end"]


@pytest.mark.asyncio
async def test_different_keys_run_concurrently():
    executor = ExchangeExecutor(max_concurrent=4)
    events = []
    gate = asyncio.Event()

    tasks = [executor.submit(key, _job(events, str(key), gate)) for key in (1, 2)]
    await asyncio.sleep(0.01)
    assert sorted(events) == ["1:start", "2:start"]

    gate.set()
    await asyncio.gather(*tasks)


@pytest.mark.asyncio
async def test_global_limit_bounds_concurrency():
    executor = ExchangeExecutor(max_concurrent=1)
    events = []
    gate = asyncio.Event()

    tasks = [executor.submit(key, _job(events, str(key), gate)) for key in (1, 2)]
    await asyncio.sleep(0.01)
    assert events == ["1:start"]

    gate.set()
    await asyncio.gather(*tasks)
    assert events == ["1:start", "1:end", "2:start", "2:end"]


@pytest.mark.asyncio
async def test_cancelling_one_exchange_leaves_others_running():
    executor = ExchangeExecutor(max_concurrent=4)
    events = []
    blocked = executor.submit(1, _job(events, "stuck", asyncio.Event()))
    other = executor.submit(2, _job(events, "other"))
    await asyncio.sleep(0.01)

    blocked.cancel()
    assert await other == "other"
    with pytest.raises(asyncio.CancelledError):
        await blocked
    assert "other:end" in events


@pytest.mark.asyncio
async def test_idle_keys_are_released():
    executor = ExchangeExecutor(max_concurrent=2)
    await executor.submit(7, _job([], "x"))
    await asyncio.sleep(0)

    assert executor.active_keys() == set()
    assert executor.in_flight == 0


@pytest.mark.asyncio
async def test_failed_job_does_not_block_the_key():
    executor = ExchangeExecutor(max_concurrent=2)

    async def boom():
        raise RuntimeError("boom")

    failing = executor.submit(3, boom)
    with pytest.raises(RuntimeError):
        await failing
    assert await executor.run(3, _job([], "after")) == "after"


@pytest.mark.asyncio
async def test_shutdown_cancels_in_flight_exchanges():
    executor = ExchangeExecutor(max_concurrent=2)
    task = executor.submit(1, _job([], "stuck", asyncio.Event()))
    await asyncio.sleep(0.01)

    await executor.shutdown()

    assert task.cancelled()
