"""Index-keyed store of terminal task outcomes."""

from __future__ import annotations

from procpool.models import ProcessResult


class ResultCollector:
    """Holds exactly one result per task index until the run is finalized."""

    def __init__(self) -> None:
        self._results: dict[int, ProcessResult] = {}

    def record(self, result: ProcessResult) -> None:
        if result.task_index in self._results:
            raise RuntimeError(f"Result for task {result.task_index} already recorded.")
        self._results[result.task_index] = result

    def get(self, index: int) -> ProcessResult | None:
        return self._results.get(index)

    def finalize(self, total: int) -> list[ProcessResult]:
        """Return results ordered by task index; every index below ``total`` must exist."""

        missing = [index for index in range(total) if index not in self._results]
        if missing:
            raise RuntimeError(f"Missing results for task indices: {missing}")
        return [self._results[index] for index in range(total)]

    def clear(self) -> None:
        self._results.clear()

    def __contains__(self, index: object) -> bool:
        return index in self._results

    def __len__(self) -> int:
        return len(self._results)
