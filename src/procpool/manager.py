"""Concurrency-limited scheduler that drives queued tasks to terminal results."""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from procpool.models import DEFAULT_TIMEOUT_SECONDS, ProcessResult, TaskSpec
from procpool.observers import NullObserver, Observer
from procpool.process import (
    DEFAULT_KILL_GRACE_SECONDS,
    ProcessHandle,
    ReleaseError,
    SpawnError,
    spawn_process,
)
from procpool.results import ResultCollector
from procpool.task_queue import TaskQueue

logger = logging.getLogger(__name__)


class ProcessManager:
    """Runs queued commands with at most ``max_concurrent`` live processes.

    A single control flow admits tasks, sleeps ``poll_interval`` seconds and
    sweeps the live handles for exit or timeout. Results come back in
    submission order, one per task::

        manager = ProcessManager(executable="python", max_concurrent=2)
        manager.add_task("worker.py", timeout_seconds=60)
        results = manager.run()
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        executable: str = sys.executable,
        working_directory: Path | str | None = None,
        max_concurrent: int = 3,
        poll_interval: float = 1.0,
        observer: Observer | None = None,
        kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS,
    ) -> None:
        self.executable = executable
        self.working_directory = Path(working_directory) if working_directory else None
        self._max_concurrent = max(1, max_concurrent)
        self._poll_interval = max(0.0, poll_interval)
        self.observer: Observer = observer or NullObserver()
        self.kill_grace_seconds = kill_grace_seconds
        self._queue = TaskQueue()
        self._active: dict[int, ProcessHandle] = {}
        self._terminating: dict[int, _Termination] = {}
        self._results = ResultCollector()

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    @property
    def queue_count(self) -> int:
        return self._queue.count

    @property
    def running_count(self) -> int:
        return len(self._active)

    def set_executable(self, executable: str) -> ProcessManager:
        self.executable = executable
        return self

    def set_working_directory(self, working_directory: Path | str | None) -> ProcessManager:
        self.working_directory = Path(working_directory) if working_directory else None
        return self

    def set_max_concurrent(self, count: int) -> ProcessManager:
        self._max_concurrent = max(1, count)
        return self

    def set_poll_interval(self, seconds: float) -> ProcessManager:
        self._poll_interval = max(0.0, seconds)
        return self

    def set_observer(self, observer: Observer) -> ProcessManager:
        self.observer = observer
        return self

    def add_task(  # noqa: PLR0913
        self,
        script: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        arguments: Iterable[str] = (),
        environment: Mapping[str, str] | None = None,
        working_directory: Path | str | None = None,
    ) -> int:
        """Queue one command and return the pending count."""

        return self.add_spec(
            TaskSpec(
                script=script,
                arguments=tuple(arguments),
                timeout_seconds=timeout_seconds,
                environment=environment or {},
                working_directory=Path(working_directory) if working_directory else None,
            ),
        )

    def add_spec(self, spec: TaskSpec) -> int:
        self._queue.add(spec)
        return self._queue.count

    def add_tasks(
        self,
        entries: Iterable[str | Mapping[str, Any] | TaskSpec],
        *,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> int:
        """Queue a batch of script names, mappings or specs; return the pending count."""

        for entry in entries:
            spec = (
                entry
                if isinstance(entry, TaskSpec)
                else TaskSpec.from_entry(entry, default_timeout=default_timeout)
            )
            self._queue.add(spec)
        return self._queue.count

    def clear_queue(self) -> ProcessManager:
        self._queue.clear()
        return self

    def run(self) -> list[ProcessResult]:
        """Execute every queued task and return results in submission order."""

        self._results.clear()
        total = self._queue.total
        started_at = time.monotonic()
        logger.info(
            "Running %d task(s), max_concurrent=%d, poll_interval=%.2fs",
            total,
            self._max_concurrent,
            self._poll_interval,
        )
        self._notify("on_info", f"Running {total} task(s) with up to {self._max_concurrent} at once")

        try:
            while True:
                self._admit()
                if not self._active and not self._terminating and self._queue.count == 0:
                    break
                if self._poll_interval > 0:
                    time.sleep(self._poll_interval)
                self._sweep()
        finally:
            self._abort_active()
            total = self._queue.total
            self._queue.clear()

        results = self._results.finalize(total)
        succeeded = sum(1 for result in results if result.was_successful)
        elapsed = time.monotonic() - started_at
        logger.info("Run finished: %d/%d succeeded in %.2fs", succeeded, len(results), elapsed)
        self._notify(
            "on_info",
            f"Finished {len(results)} task(s): {succeeded} succeeded in {elapsed:.2f}s",
        )
        return results

    def _admit(self) -> None:
        while len(self._active) < self._max_concurrent:
            claimed = self._queue.claim()
            if claimed is None:
                return
            index, spec = claimed
            spawned = spawn_process(
                spec,
                index=index,
                executable=self.executable,
                working_directory=self.working_directory,
            )
            if isinstance(spawned, SpawnError):
                self._results.record(
                    ProcessResult.spawn_failed(
                        task_index=index,
                        script=spec.script,
                        message=spawned.message,
                    ),
                )
                self._notify("on_error", spawned.message)
                continue
            self._active[index] = spawned
            self._notify("on_queued", spec.script)

    def _sweep(self) -> None:
        self._sweep_terminating()
        for handle in list(self._active.values()):
            alive = handle.is_alive()
            timed_out = handle.exceeded_timeout()

            if timed_out and alive:
                self._begin_kill(handle)
                self._notify("on_killed", handle.spec.script)
            elif not alive:
                del self._active[handle.index]
                self._finish(
                    handle,
                    killed=False,
                    exit_code=handle.exit_code(),
                    elapsed=handle.elapsed_time(),
                    grace_seconds=self.kill_grace_seconds,
                )
                self._notify("on_completed", handle.spec.script)
            else:
                handle.pump()

    def _begin_kill(self, handle: ProcessHandle) -> None:
        """Signal a timed-out handle and park it until it exits or its grace runs out."""

        if not handle.terminate():
            logger.warning("Termination signal for %s was not delivered", handle.spec.script)
        del self._active[handle.index]
        self._terminating[handle.index] = _Termination(
            handle=handle,
            elapsed_seconds=handle.elapsed_time(),
            deadline=time.monotonic() + self.kill_grace_seconds,
        )

    def _sweep_terminating(self) -> None:
        now = time.monotonic()
        for termination in list(self._terminating.values()):
            handle = termination.handle
            if handle.is_alive() and now < termination.deadline:
                handle.pump()
                continue
            del self._terminating[handle.index]
            # past the deadline release escalates to SIGKILL without waiting
            self._finish(
                handle,
                killed=True,
                exit_code=None,
                elapsed=termination.elapsed_seconds,
                grace_seconds=0.0,
            )

    def _finish(
        self,
        handle: ProcessHandle,
        *,
        killed: bool,
        exit_code: int | None,
        elapsed: float,
        grace_seconds: float,
    ) -> None:
        # release drains the pipes before closing them, so read afterwards
        self._release(handle, grace_seconds)
        stdout = handle.read_output()
        stderr = handle.read_error()

        if killed:
            result = ProcessResult.killed(
                task_index=handle.index,
                script=handle.spec.script,
                stdout=stdout,
                stderr=stderr,
                elapsed_seconds=elapsed,
            )
        else:
            result = ProcessResult.completed(
                task_index=handle.index,
                script=handle.spec.script,
                exit_code=exit_code,
                stdout=stdout,
                stderr=stderr,
                elapsed_seconds=elapsed,
            )
        self._results.record(result)
        logger.debug(
            "Task %d (%s) finished: status=%s exit=%d elapsed=%.2fs",
            result.task_index,
            result.script,
            result.status.value,
            result.exit_code,
            result.elapsed_seconds,
        )

    def _release(self, handle: ProcessHandle, grace_seconds: float) -> None:
        try:
            handle.release(grace_seconds)
        except ReleaseError as error:
            logger.warning("Release of task %d failed: %s", handle.index, error)
            self._notify("on_error", str(error))

    def _abort_active(self) -> None:
        """Terminate and release anything still live after the loop stopped."""

        for index, handle in list(self._active.items()):
            if handle.is_alive():
                logger.warning("Aborting task %d (%s)", index, handle.spec.script)
                handle.terminate()
            del self._active[index]
            self._release(handle, self.kill_grace_seconds)
        for index, termination in list(self._terminating.items()):
            del self._terminating[index]
            self._release(termination.handle, 0.0)

    def _notify(self, method: str, text: str) -> None:
        try:
            getattr(self.observer, method)(text)
        except Exception:
            logger.exception("Observer %s failed", method)


@dataclass(frozen=True, slots=True)
class _Termination:
    handle: ProcessHandle
    elapsed_seconds: float
    deadline: float
