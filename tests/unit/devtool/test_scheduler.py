"""Tests for the dependency-aware parallel scheduler."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Hashable

import pytest

from devtool.parallel import DependencyGraph, ParallelScheduler, SchedulerRunState, TaskOutcome


def _ok(task_id: Hashable, delay: float = 0.0):
    async def run() -> TaskOutcome:
        if delay:
            await asyncio.sleep(delay)
        return TaskOutcome(id=task_id, success=True, message=f"{task_id} ok")

    return run


def _dispatch(table):
    async def run(task_id: Hashable) -> TaskOutcome:
        return await table[task_id]()

    return run


def _delayed(delays: dict[Hashable, float]):
    async def run(task_id: Hashable) -> TaskOutcome:
        await asyncio.sleep(delays[task_id])
        return TaskOutcome(id=task_id, success=True, message="ok")

    return run


@pytest.mark.asyncio
async def test_independent_tasks_all_succeed() -> None:
    scheduler = ParallelScheduler(poll_interval=0.001)

    async def run(task_id: Hashable) -> TaskOutcome:
        return TaskOutcome(id=task_id, success=True, message="ok")

    outcomes = await scheduler.execute_parallel(["X", "Y", "Z"], run)

    assert len(outcomes) == 3
    assert all(outcome.success for outcome in outcomes)
    assert {outcome.id for outcome in outcomes} == {"X", "Y", "Z"}


@pytest.mark.asyncio
async def test_dependent_waits_for_slower_dependency() -> None:
    graph = DependencyGraph.from_mapping({"Y": ["X"]})
    scheduler = ParallelScheduler(graph=graph, poll_interval=0.001)
    recorded: list[Hashable] = []
    started: list[Hashable] = []

    async def run(task_id: Hashable) -> TaskOutcome:
        started.append(task_id)
        if task_id == "Y":
            assert "X" in recorded
        await asyncio.sleep(0.1 if task_id == "X" else 0.001)
        return TaskOutcome(id=task_id, success=True, message="ok")

    outcomes = await scheduler.execute_parallel(
        ["X", "Y"], run, on_finish=lambda outcome: recorded.append(outcome.id)
    )

    assert started == ["X", "Y"]
    assert [outcome.id for outcome in outcomes] == ["X", "Y"]
    assert all(outcome.success for outcome in outcomes)


@pytest.mark.asyncio
async def test_dependent_runs_after_failed_dependency() -> None:
    graph = DependencyGraph.from_mapping({"Y": ["X"]})
    scheduler = ParallelScheduler(graph=graph, poll_interval=0.001)

    async def run(task_id: Hashable) -> TaskOutcome:
        return TaskOutcome(id=task_id, success=task_id != "X", message="done")

    outcomes = await scheduler.execute_parallel(["X", "Y"], run)

    by_id = {outcome.id: outcome for outcome in outcomes}
    assert set(by_id) == {"X", "Y"}
    assert by_id["X"].success is False
    assert by_id["Y"].success is True


@pytest.mark.asyncio
async def test_each_id_launched_exactly_once() -> None:
    graph = DependencyGraph.from_mapping({"c": ["a", "b"], "d": ["c"]})
    scheduler = ParallelScheduler(graph=graph, poll_interval=0.001)
    state = SchedulerRunState()
    table = {name: _ok(name, 0.005) for name in "abcde"}

    outcomes = await scheduler.execute_parallel(list("abcde"), _dispatch(table), state=state)

    assert sorted(state.launched) == list("abcde")
    assert sorted(outcome.id for outcome in outcomes) == list("abcde")
    assert state.launched.index("c") > max(state.launched.index("a"), state.launched.index("b"))
    assert state.launched.index("d") > state.launched.index("c")
    assert all(state.is_completed(name) for name in "abcde")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("first", "second"),
    [
        ({"a": 0.03, "b": 0.001}, {"a": 0.001, "b": 0.03}),
        ({"a": 0.02, "b": 0.01, "c": 0.001}, {"a": 0.001, "b": 0.01, "c": 0.02}),
    ],
)
async def test_swapped_latencies_give_same_outcomes(first, second) -> None:
    ids = sorted(first)

    slow_first = await ParallelScheduler(poll_interval=0.001).execute_parallel(ids, _delayed(first))
    slow_last = await ParallelScheduler(poll_interval=0.001).execute_parallel(ids, _delayed(second))

    assert {(o.id, o.success) for o in slow_first} == {(o.id, o.success) for o in slow_last}
    assert [o.id for o in slow_first] != [o.id for o in slow_last]


@pytest.mark.asyncio
async def test_independent_tasks_overlap() -> None:
    scheduler = ParallelScheduler(poll_interval=0.001)
    active = 0
    peak = 0

    async def run(task_id: Hashable) -> TaskOutcome:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.05)
        active -= 1
        return TaskOutcome(id=task_id, success=True, message="ok")

    await scheduler.execute_parallel(["a", "b", "c"], run)

    assert peak == 3


@pytest.mark.asyncio
async def test_concurrency_cap_is_enforced() -> None:
    scheduler = ParallelScheduler(2, poll_interval=0.001)
    active = 0
    peak = 0

    async def run(task_id: Hashable) -> TaskOutcome:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return TaskOutcome(id=task_id, success=True, message="ok")

    outcomes = await scheduler.execute_parallel(list("abcde"), run)

    assert peak == 2
    assert len(outcomes) == 5


@pytest.mark.asyncio
async def test_capped_dependent_is_not_lost() -> None:
    graph = DependencyGraph.from_mapping({"b": ["a"]})
    scheduler = ParallelScheduler(1, graph=graph, poll_interval=0.001)
    table = {"a": _ok("a"), "b": _ok("b"), "c": _ok("c", 0.02)}

    outcomes = await scheduler.execute_parallel(["a", "c", "b"], _dispatch(table))

    assert sorted(outcome.id for outcome in outcomes) == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_exception_becomes_failure_outcome(caplog: pytest.LogCaptureFixture) -> None:
    scheduler = ParallelScheduler(poll_interval=0.001)

    async def run(task_id: Hashable) -> TaskOutcome:
        if task_id == "bad":
            raise RuntimeError("boom")
        return TaskOutcome(id=task_id, success=True, message="ok")

    with caplog.at_level(logging.ERROR, logger="devtool.parallel.scheduler"):
        outcomes = await scheduler.execute_parallel(["bad", "good"], run)

    by_id = {outcome.id: outcome for outcome in outcomes}
    assert by_id["bad"].success is False
    assert by_id["bad"].message == "boom"
    assert by_id["good"].success is True
    assert "bad raised" in caplog.text


@pytest.mark.asyncio
async def test_mismatched_outcome_id_is_corrected() -> None:
    scheduler = ParallelScheduler(poll_interval=0.001)

    async def run(task_id: Hashable) -> TaskOutcome:
        return TaskOutcome(id="someone-else", success=True, message="ok")

    outcomes = await scheduler.execute_parallel(["a"], run)

    assert outcomes[0].id == "a"


@pytest.mark.asyncio
async def test_unsatisfiable_dependency_is_reported_blocked() -> None:
    graph = DependencyGraph.from_mapping({"b": ["missing"]})
    scheduler = ParallelScheduler(graph=graph, poll_interval=0.001)
    state = SchedulerRunState()
    started: list[Hashable] = []

    outcomes = await scheduler.execute_parallel(
        ["a", "b"], _dispatch({"a": _ok("a")}), state=state, on_start=started.append
    )

    by_id = {outcome.id: outcome for outcome in outcomes}
    assert by_id["a"].success is True
    assert by_id["b"].success is False
    assert by_id["b"].message == "blocked: waiting on missing"
    assert state.launched == ["a"]
    assert started == ["a", "b"]


@pytest.mark.asyncio
async def test_hooks_see_every_task() -> None:
    scheduler = ParallelScheduler(poll_interval=0.001)
    started: list[Hashable] = []
    finished: list[Hashable] = []

    async def run(task_id: Hashable) -> TaskOutcome:
        assert task_id in started
        return TaskOutcome(id=task_id, success=True, message="ok")

    await scheduler.execute_parallel(
        ["a", "b"],
        run,
        on_start=started.append,
        on_finish=lambda outcome: finished.append(outcome.id),
    )

    assert started == ["a", "b"]
    assert sorted(finished) == ["a", "b"]


@pytest.mark.asyncio
async def test_empty_id_set_returns_immediately() -> None:
    scheduler = ParallelScheduler()

    async def run(task_id: Hashable) -> TaskOutcome:
        raise AssertionError("should not run")

    assert await scheduler.execute_parallel([], run) == []


@pytest.mark.asyncio
async def test_cancellation_cancels_running_tasks() -> None:
    scheduler = ParallelScheduler(poll_interval=0.001)
    cancelled: list[Hashable] = []

    async def run(task_id: Hashable) -> TaskOutcome:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append(task_id)
            raise
        return TaskOutcome(id=task_id, success=True, message="ok")

    job = asyncio.create_task(scheduler.execute_parallel(["a", "b"], run))
    await asyncio.sleep(0.02)
    job.cancel()
    with pytest.raises(asyncio.CancelledError):
        await job
    await asyncio.sleep(0)

    assert sorted(cancelled) == ["a", "b"]


@pytest.mark.parametrize("kwargs", [{"max_concurrent": -1}, {"poll_interval": 0}])
def test_invalid_arguments(kwargs) -> None:
    with pytest.raises(ValueError):
        ParallelScheduler(**kwargs)
