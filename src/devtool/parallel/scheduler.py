"""Polling scheduler that launches tasks as their dependencies complete."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable

from devtool.parallel.graph import DependencyGraph
from devtool.parallel.types import TaskOutcome, display_name_of

logger = logging.getLogger(__name__)

TaskFunction = Callable[[Hashable], Awaitable[TaskOutcome]]
StartHook = Callable[[Hashable], None]
FinishHook = Callable[[TaskOutcome], None]

DEFAULT_POLL_INTERVAL = 0.01


class SchedulerRunState:
    """State shared between the polling loop and anything observing one run.

    ``completed`` is only touched under the lock, and the lock is never held
    across an await.
    """

    def __init__(self) -> None:
        self._completed: set[Hashable] = set()
        self._lock = asyncio.Lock()
        self.launched: list[Hashable] = []

    async def mark_completed(self, task_id: Hashable) -> None:
        async with self._lock:
            self._completed.add(task_id)

    async def completed_snapshot(self) -> frozenset[Hashable]:
        async with self._lock:
            return frozenset(self._completed)

    def is_completed(self, task_id: Hashable) -> bool:
        return task_id in self._completed


class ParallelScheduler:
    """Run task functions concurrently, honouring a dependency graph.

    Args:
        max_concurrent: Upper bound on simultaneously running tasks. ``None``
            or ``0`` means unbounded.
        graph: Ordering constraints. Defaults to an empty graph, in which case
            every task is launched immediately.
        poll_interval: Seconds to sleep between polling passes.
    """

    def __init__(
        self,
        max_concurrent: int | None = None,
        *,
        graph: DependencyGraph | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        if max_concurrent is not None and max_concurrent < 0:
            raise ValueError(f"max_concurrent must be >= 0, got {max_concurrent}")
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {poll_interval}")
        self.max_concurrent = max_concurrent or None
        self.graph = graph if graph is not None else DependencyGraph()
        self.poll_interval = poll_interval

    async def execute_parallel(
        self,
        ids: Iterable[Hashable],
        run: TaskFunction,
        *,
        state: SchedulerRunState | None = None,
        on_start: StartHook | None = None,
        on_finish: FinishHook | None = None,
    ) -> list[TaskOutcome]:
        """Run every id to completion and return outcomes in completion order.

        ``on_start`` and ``on_finish`` fire exactly once per id, including for
        ids that could never start and are recorded as blocked.
        """
        run_state = state if state is not None else SchedulerRunState()
        pending: dict[Hashable, None] = dict.fromkeys(ids)
        running: dict[Hashable, asyncio.Task[TaskOutcome]] = {}
        ready: list[Hashable] = []
        results: list[TaskOutcome] = []

        def enqueue(task_id: Hashable) -> None:
            if task_id in pending and task_id not in ready:
                ready.append(task_id)

        def launch_ready() -> None:
            while ready and self._has_slot(len(running)):
                task_id = ready.pop(0)
                del pending[task_id]
                run_state.launched.append(task_id)
                logger.debug("Launching %s", display_name_of(task_id))
                if on_start is not None:
                    on_start(task_id)
                running[task_id] = asyncio.create_task(
                    self._guarded(run, task_id),
                    name=f"devtool:{display_name_of(task_id)}",
                )

        async def record(outcome: TaskOutcome) -> None:
            results.append(outcome)
            await run_state.mark_completed(outcome.id)
            if on_finish is not None:
                on_finish(outcome)

        try:
            while pending or running:
                finished = [task_id for task_id, handle in running.items() if handle.done()]
                for task_id in finished:
                    await record(self._collect(task_id, running.pop(task_id)))

                    completed = await run_state.completed_snapshot()
                    for dependent in self.graph.get_dependents(task_id):
                        if dependent in pending and self.graph.can_execute(dependent, completed):
                            enqueue(dependent)
                launch_ready()

                for task_id in self.graph.get_ready(pending):
                    enqueue(task_id)
                launch_ready()

                if pending and not running:
                    for outcome in self._starved(pending, run_state):
                        if on_start is not None:
                            on_start(outcome.id)
                        await record(outcome)
                    pending.clear()
                    ready.clear()
                    continue

                await asyncio.sleep(self.poll_interval)
        except BaseException:
            for handle in running.values():
                handle.cancel()
            raise

        return results

    def _has_slot(self, running_count: int) -> bool:
        return self.max_concurrent is None or running_count < self.max_concurrent

    async def _guarded(self, run: TaskFunction, task_id: Hashable) -> TaskOutcome:
        name = display_name_of(task_id)
        try:
            outcome = await run(task_id)
        except Exception as exc:
            logger.exception("Task %s raised", name)
            return TaskOutcome.failure(task_id, str(exc) or exc.__class__.__name__)

        if not isinstance(outcome, TaskOutcome):
            logger.warning("Task %s returned %r instead of an outcome", name, outcome)
            return TaskOutcome.failure(task_id, f"{name} returned no outcome")
        if outcome.id != task_id:
            logger.warning("Task %s reported outcome for %r", name, outcome.id)
            outcome = dataclasses.replace(outcome, id=task_id)
        return outcome

    @staticmethod
    def _collect(task_id: Hashable, handle: asyncio.Task[TaskOutcome]) -> TaskOutcome:
        if handle.cancelled():
            return TaskOutcome.failure(task_id, f"{display_name_of(task_id)} cancelled")
        return handle.result()

    def _starved(
        self, pending: dict[Hashable, None], run_state: SchedulerRunState
    ) -> list[TaskOutcome]:
        outcomes: list[TaskOutcome] = []
        for task_id in pending:
            missing = [
                display_name_of(dep)
                for dep in self.graph.dependencies_of(task_id)
                if not run_state.is_completed(dep)
            ]
            message = f"blocked: waiting on {', '.join(missing) or 'nothing'}"
            logger.warning("%s never became runnable (%s)", display_name_of(task_id), message)
            outcomes.append(TaskOutcome.failure(task_id, message))
        return outcomes
