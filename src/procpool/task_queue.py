"""FIFO store of pending task specs with stable indices."""

from __future__ import annotations

from collections.abc import Iterator

from procpool.models import TaskSpec


class TaskQueue:
    """Ordered task specs; each keeps the index it was enqueued under."""

    def __init__(self) -> None:
        self._tasks: list[TaskSpec] = []
        self._cursor = 0

    def add(self, spec: TaskSpec) -> int:
        """Append a task and return its index."""

        self._tasks.append(spec)
        return len(self._tasks) - 1

    def claim(self) -> tuple[int, TaskSpec] | None:
        """Take the next unclaimed task, or None when the queue is drained."""

        if self._cursor >= len(self._tasks):
            return None
        index = self._cursor
        self._cursor += 1
        return index, self._tasks[index]

    def clear(self) -> None:
        self._tasks.clear()
        self._cursor = 0

    @property
    def count(self) -> int:
        return len(self._tasks) - self._cursor

    @property
    def total(self) -> int:
        return len(self._tasks)

    def __len__(self) -> int:
        return self.count

    def __iter__(self) -> Iterator[tuple[int, TaskSpec]]:
        return ((index, self._tasks[index]) for index in range(self._cursor, len(self._tasks)))
