"""Declarative dependency graph for task ordering."""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Mapping


class DependencyCycleError(ValueError):
    """Raised when a dependency edge would make the graph cyclic."""


class DependencyGraph:
    """Which tasks must complete before which.

    Edges express ordering only; a task with no entry is immediately runnable.
    """

    def __init__(self) -> None:
        self._dependencies: dict[Hashable, list[Hashable]] = {}
        self._dependents: dict[Hashable, list[Hashable]] = {}

    @classmethod
    def from_mapping(cls, mapping: Mapping[Hashable, Iterable[Hashable]]) -> DependencyGraph:
        graph = cls()
        for task, deps in mapping.items():
            for dep in deps:
                graph.add_dependency(task, dep)
        return graph

    def add_dependency(self, task: Hashable, depends_on: Hashable) -> None:
        """Declare that ``task`` may only start after ``depends_on`` completed."""
        if task == depends_on or self._reaches(depends_on, task):
            raise DependencyCycleError(f"Dependency {task!r} -> {depends_on!r} would create a cycle")

        deps = self._dependencies.setdefault(task, [])
        if depends_on in deps:
            return
        deps.append(depends_on)
        self._dependents.setdefault(depends_on, []).append(task)

    def dependencies_of(self, task: Hashable) -> list[Hashable]:
        return list(self._dependencies.get(task, ()))

    def get_ready(self, pending: Iterable[Hashable]) -> list[Hashable]:
        """Pending tasks that declare no dependencies, in iteration order."""
        return [task for task in pending if not self._dependencies.get(task)]

    def can_execute(self, task: Hashable, completed: set[Hashable] | frozenset[Hashable]) -> bool:
        return all(dep in completed for dep in self._dependencies.get(task, ()))

    def get_dependents(self, task: Hashable) -> list[Hashable]:
        return list(self._dependents.get(task, ()))

    def is_empty(self) -> bool:
        return not self._dependencies

    def items(self) -> list[tuple[Hashable, list[Hashable]]]:
        return [(task, list(deps)) for task, deps in self._dependencies.items()]

    def _reaches(self, start: Hashable, target: Hashable) -> bool:
        # Depth-first walk along dependency edges.
        stack = [start]
        seen: set[Hashable] = set()
        while stack:
            node = stack.pop()
            if node == target:
                return True
            if node in seen:
                continue
            seen.add(node)
            stack.extend(self._dependencies.get(node, ()))
        return False
