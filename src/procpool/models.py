"""Domain models for queued tasks and their terminal outcomes."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any

DEFAULT_TIMEOUT_SECONDS = 300.0
UNKNOWN_EXIT_CODE = -1


class TaskStatus(str, Enum):
    """Task lifecycle states as seen by the scheduler."""

    QUEUED = "queued"
    RUNNING = "running"
    FAILED_TO_START = "failed_to_start"
    COMPLETED = "completed"
    TIMED_OUT_KILLED = "timed_out_killed"


class HandleState(str, Enum):
    """Lifecycle of one live OS process."""

    RUNNING = "running"
    EXITED = "exited"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True, slots=True)
class TaskSpec:
    """One command invocation waiting in the queue."""

    script: str
    arguments: tuple[str, ...] = ()
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    environment: Mapping[str, str] = field(default_factory=dict)
    working_directory: Path | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "arguments", tuple(self.arguments))
        object.__setattr__(self, "environment", MappingProxyType(dict(self.environment)))

    @classmethod
    def from_entry(
        cls,
        entry: str | Mapping[str, Any],
        *,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> TaskSpec:
        """Build a spec from the batch shorthand: a script name or a mapping."""

        if isinstance(entry, str):
            return cls(script=entry, timeout_seconds=default_timeout)
        if not isinstance(entry, Mapping):
            raise ValueError(f"Unsupported task entry: {entry!r}")

        script = entry.get("script")
        if not isinstance(script, str) or not script.strip():
            raise ValueError(f"Task entry requires a non-empty 'script': {entry!r}")

        timeout = entry.get("timeout_seconds", entry.get("timeout", default_timeout))
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float, str)):
            raise ValueError(f"Task timeout must be a number: {timeout!r}")
        try:
            timeout_seconds = float(timeout)
        except ValueError as error:
            raise ValueError(f"Task timeout must be a number: {timeout!r}") from error
        arguments = entry.get("arguments") or ()
        if isinstance(arguments, str):
            raise ValueError(f"Task 'arguments' must be a list, got string: {arguments!r}")
        if not isinstance(arguments, (list, tuple)):
            raise ValueError(f"Task 'arguments' must be a list: {arguments!r}")
        environment = entry.get("environment") or {}
        if not isinstance(environment, Mapping):
            raise ValueError(f"Task 'environment' must be a mapping: {environment!r}")
        working_directory = entry.get("working_directory")
        if working_directory is not None and not isinstance(working_directory, (str, Path)):
            raise ValueError(
                f"Task 'working_directory' must be a path string: {working_directory!r}",
            )

        return cls(
            script=script,
            arguments=tuple(str(argument) for argument in arguments),
            timeout_seconds=timeout_seconds,
            environment={str(key): str(value) for key, value in environment.items()},
            working_directory=Path(working_directory) if working_directory else None,
        )


@dataclass(frozen=True, slots=True)
class ProcessResult:
    """Terminal outcome of one task."""

    task_index: int
    script: str
    exit_code: int
    stdout: bytes
    stderr: bytes
    elapsed_seconds: float
    was_killed: bool
    was_successful: bool
    failed_to_start: bool = False

    def __post_init__(self) -> None:
        if self.was_killed and self.was_successful:
            raise ValueError("A killed task cannot be reported as successful.")

    @classmethod
    def completed(
        cls,
        *,
        task_index: int,
        script: str,
        exit_code: int | None,
        stdout: bytes,
        stderr: bytes,
        elapsed_seconds: float,
    ) -> ProcessResult:
        code = UNKNOWN_EXIT_CODE if exit_code is None else exit_code
        return cls(
            task_index=task_index,
            script=script,
            exit_code=code,
            stdout=stdout,
            stderr=stderr,
            elapsed_seconds=elapsed_seconds,
            was_killed=False,
            was_successful=code == 0,
        )

    @classmethod
    def killed(
        cls,
        *,
        task_index: int,
        script: str,
        stdout: bytes,
        stderr: bytes,
        elapsed_seconds: float,
    ) -> ProcessResult:
        return cls(
            task_index=task_index,
            script=script,
            exit_code=UNKNOWN_EXIT_CODE,
            stdout=stdout,
            stderr=stderr,
            elapsed_seconds=elapsed_seconds,
            was_killed=True,
            was_successful=False,
        )

    @classmethod
    def spawn_failed(cls, *, task_index: int, script: str, message: str) -> ProcessResult:
        return cls(
            task_index=task_index,
            script=script,
            exit_code=UNKNOWN_EXIT_CODE,
            stdout=b"",
            stderr=message.encode("utf-8"),
            elapsed_seconds=0.0,
            was_killed=False,
            was_successful=False,
            failed_to_start=True,
        )

    @property
    def status(self) -> TaskStatus:
        if self.was_killed:
            return TaskStatus.TIMED_OUT_KILLED
        if self.failed_to_start:
            return TaskStatus.FAILED_TO_START
        return TaskStatus.COMPLETED

    @property
    def output(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def error_output(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")

    def completed_normally(self) -> bool:
        """Return True when the process was not killed for overrunning its timeout."""

        return not self.was_killed

    def has_errors(self) -> bool:
        return self.stderr != b""

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready projection with decoded output."""

        return {
            "task_index": self.task_index,
            "script": self.script,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "output": self.output,
            "error_output": self.error_output,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "was_killed": self.was_killed,
            "was_successful": self.was_successful,
        }
