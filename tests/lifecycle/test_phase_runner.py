import asyncio

import pytest

from initsys.config.options import LifecycleOptions
from initsys.lifecycle.phase_runner import PhaseRunner
from initsys.lifecycle.task_queue import TaskQueue
from initsys.lifecycle.task_registry import TaskRegistry
from initsys.models.enums import Phase
from initsys.models.errors import TaskError


def make_runner(phase=Phase.INIT, report=None, interrupted=None, **options):
    queue = TaskQueue(phase.label)
    runner = PhaseRunner(
        phase, queue, LifecycleOptions(**options), TaskRegistry(),
        report=report, interrupted=interrupted
    )
    return runner, queue


@pytest.mark.asyncio
async def test_sequential_runs_sync_and_async_tasks_in_order():
    runner, queue = make_runner()
    order = []

    async def slow():
        await asyncio.sleep(0.01)
        order.append("slow")

    def quick():
        order.append("quick")

    queue.add(None, quick)
    queue.add(1, slow)

    count = await runner.run()

    assert count == 2
    assert order == ["slow", "quick"]
    assert queue.remaining() == 0
    assert len(runner.registry.list_all()) == 2


@pytest.mark.asyncio
async def test_sequential_waits_for_each_task_before_the_next():
    runner, queue = make_runner()
    running = []
    overlaps = []

    async def body():
        overlaps.append(len(running))
        running.append(1)
        await asyncio.sleep(0.01)
        running.pop()

    for _ in range(3):
        queue.add(None, body)

    await runner.run()
    assert overlaps == [0, 0, 0]


@pytest.mark.asyncio
async def test_stop_on_error_raises_and_leaves_rest_queued():
    runner, queue = make_runner()
    ran = []

    def broken():
        raise ValueError("boom")

    queue.add(None, broken)
    queue.add(None, lambda: ran.append("after"))

    with pytest.raises(TaskError) as exc_info:
        await runner.run()

    error = exc_info.value
    assert error.phase is Phase.INIT
    assert isinstance(error.cause, ValueError)
    assert error.description.endswith("broken")
    assert "failed in init: boom" in error.message
    assert ran == []
    assert queue.remaining() == 1


@pytest.mark.asyncio
async def test_error_after_suspension_is_captured():
    runner, queue = make_runner()

    async def late_failure():
        await asyncio.sleep(0)
        raise RuntimeError("late")

    queue.add(None, late_failure)

    with pytest.raises(TaskError) as exc_info:
        await runner.run()
    assert isinstance(exc_info.value.cause, RuntimeError)


@pytest.mark.asyncio
async def test_errors_are_reported_when_not_stopping():
    reported = []
    runner, queue = make_runner(report=reported.append, stop_on_error=False)
    ran = []

    def broken():
        raise ValueError("boom")

    queue.add(None, broken)
    queue.add(None, lambda: ran.append("after"))

    count = await runner.run()

    assert count == 2
    assert ran == ["after"]
    assert len(reported) == 1
    assert isinstance(reported[0].cause, ValueError)


@pytest.mark.asyncio
async def test_interrupted_stops_before_next_task():
    state = {"stop": False}
    runner, queue = make_runner(interrupted=lambda: state["stop"])
    ran = []

    def first():
        ran.append("first")
        state["stop"] = True

    queue.add(None, first)
    queue.add(None, lambda: ran.append("second"))

    count = await runner.run()

    assert count == 1
    assert ran == ["first"]
    assert queue.remaining() == 1


@pytest.mark.asyncio
async def test_parallel_starts_every_task_before_waiting():
    runner, queue = make_runner(init_in_parallel=True)
    released = asyncio.Event()
    finished = []

    async def waits_for_release():
        await released.wait()
        finished.append("waiter")

    def releases():
        released.set()
        finished.append("releaser")

    queue.add(None, waits_for_release)
    queue.add(None, releases)

    count = await asyncio.wait_for(runner.run(), timeout=1)

    assert count == 2
    assert finished == ["releaser", "waiter"]


@pytest.mark.asyncio
async def test_parallel_first_failure_in_launch_order_wins():
    reported = []
    runner, queue = make_runner(report=reported.append, start_in_parallel=True, phase=Phase.START)

    async def slow_failure():
        await asyncio.sleep(0.02)
        raise ValueError("slow")

    async def fast_failure():
        raise ValueError("fast")

    queue.add(None, slow_failure)
    queue.add(None, fast_failure)

    with pytest.raises(TaskError) as exc_info:
        await runner.run()

    assert exc_info.value.description.endswith("slow_failure")
    assert [e.description.split(".")[-1] for e in reported] == ["fast_failure"]


@pytest.mark.asyncio
async def test_parallel_waits_for_all_even_after_a_failure():
    runner, queue = make_runner(init_in_parallel=True)
    finished = []

    async def broken():
        raise ValueError("boom")

    async def slow():
        await asyncio.sleep(0.02)
        finished.append("slow")

    queue.add(None, broken)
    queue.add(None, slow)

    with pytest.raises(TaskError):
        await runner.run()
    assert finished == ["slow"]


@pytest.mark.asyncio
async def test_slow_task_is_flagged_not_aborted():
    runner, queue = make_runner(max_task_time_sec=0.01)
    finished = []

    async def slow():
        await asyncio.sleep(0.05)
        finished.append("slow")

    queue.add(None, slow)
    await runner.run()

    assert finished == ["slow"]
    slow_records = runner.registry.slow()
    assert len(slow_records) == 1
    assert slow_records[0].status == "completed"


@pytest.mark.asyncio
async def test_zero_max_task_time_disables_warning():
    runner, queue = make_runner(max_task_time_sec=0)

    async def slow():
        await asyncio.sleep(0.02)

    queue.add(None, slow)
    await runner.run()
    assert runner.registry.slow() == []


@pytest.mark.asyncio
async def test_cancelled_body_becomes_task_error():
    runner, queue = make_runner()

    async def cancels_itself():
        raise asyncio.CancelledError()

    queue.add(None, cancels_itself)

    with pytest.raises(TaskError) as exc_info:
        await runner.run()
    assert isinstance(exc_info.value.cause, asyncio.CancelledError)
    assert len(runner.registry.cancelled()) == 1


@pytest.mark.asyncio
async def test_empty_queue_returns_zero():
    runner, _ = make_runner(finish_in_parallel=True, phase=Phase.FINISH)
    assert await runner.run() == 0
