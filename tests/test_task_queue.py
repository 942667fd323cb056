from __future__ import annotations

import allure
import pytest

from procpool.models import ProcessResult, TaskSpec
from procpool.results import ResultCollector
from procpool.task_queue import TaskQueue

pytestmark = [
    allure.epic("Process Supervision"),
    allure.feature("Queue & Result Bookkeeping"),
]


def _result(index: int) -> ProcessResult:
    return ProcessResult.completed(
        task_index=index,
        script=f"job{index}.py",
        exit_code=0,
        stdout=b"",
        stderr=b"",
        elapsed_seconds=0.1,
    )


def test_queue_claims_in_fifo_order_with_stable_indices() -> None:
    queue = TaskQueue()
    assert queue.add(TaskSpec(script="a.py")) == 0
    assert queue.add(TaskSpec(script="b.py")) == 1
    assert queue.count == 2

    assert queue.claim() == (0, TaskSpec(script="a.py"))
    assert queue.count == 1
    assert len(queue) == 1
    assert queue.total == 2
    assert [(index, spec.script) for index, spec in queue] == [(1, "b.py")]

    assert queue.claim() == (1, TaskSpec(script="b.py"))
    assert queue.claim() is None
    assert queue.count == 0


def test_queue_clear_resets_indices() -> None:
    queue = TaskQueue()
    queue.add(TaskSpec(script="a.py"))
    queue.claim()
    queue.clear()

    assert queue.total == 0
    assert queue.add(TaskSpec(script="b.py")) == 0


def test_collector_finalizes_in_index_order() -> None:
    collector = ResultCollector()
    for index in (2, 0, 1):
        collector.record(_result(index))

    assert len(collector) == 3
    assert 1 in collector
    assert [result.task_index for result in collector.finalize(3)] == [0, 1, 2]


def test_collector_rejects_duplicate_results() -> None:
    collector = ResultCollector()
    collector.record(_result(0))

    with pytest.raises(RuntimeError, match="already recorded"):
        collector.record(_result(0))


def test_collector_requires_every_index() -> None:
    collector = ResultCollector()
    collector.record(_result(0))
    collector.record(_result(2))

    with pytest.raises(RuntimeError, match=r"Missing results for task indices: \[1\]"):
        collector.finalize(3)
