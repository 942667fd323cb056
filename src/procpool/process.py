"""Lifecycle wrapper around one live OS subprocess."""

from __future__ import annotations

import contextlib
import logging
import os
import shlex
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from procpool.models import UNKNOWN_EXIT_CODE, HandleState, TaskSpec

logger = logging.getLogger(__name__)

_READ_CHUNK_SIZE = 65_536
DEFAULT_KILL_GRACE_SECONDS = 2.0


class ProcessError(RuntimeError):
    """Base error for process supervision failures."""


class ReleaseError(ProcessError):
    """Channels could not be closed cleanly while releasing a handle."""

    def __init__(self, message: str, *, exit_code: int) -> None:
        super().__init__(message)
        self.exit_code = exit_code


@dataclass(frozen=True, slots=True)
class SpawnError:
    """The OS refused to create the process for a task."""

    task_index: int
    script: str
    cause: str

    @property
    def message(self) -> str:
        return f"Failed to start process for script: {self.script} - {self.cause}"


def build_argv(
    *,
    executable: str,
    script: str,
    arguments: tuple[str, ...],
    working_directory: Path | None,
) -> list[str]:
    """Return `<executable> <resolved script> <arg>...` as an argument vector."""

    script_path = script
    if working_directory is not None and not Path(script).is_absolute():
        script_path = str(working_directory / script)
    argv = [executable] if executable else []
    argv.append(script_path)
    argv.extend(arguments)
    return argv


def spawn_process(
    spec: TaskSpec,
    *,
    index: int,
    executable: str,
    working_directory: Path | None = None,
) -> ProcessHandle | SpawnError:
    """Start the process for one task; OS failures come back as SpawnError."""

    cwd = spec.working_directory or working_directory
    if cwd is not None:
        # the script path is joined onto cwd, so it must not be relative to itself
        cwd = cwd.absolute()
    argv = build_argv(
        executable=executable,
        script=spec.script,
        arguments=spec.arguments,
        working_directory=cwd,
    )
    env = {**os.environ, **spec.environment} if spec.environment else None

    try:
        process = subprocess.Popen(  # noqa: S603
            argv,
            cwd=cwd,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except (OSError, ValueError) as error:
        logger.debug("Spawn failed for task %d (%s): %s", index, shlex.join(argv), error)
        return SpawnError(task_index=index, script=spec.script, cause=str(error))

    handle = ProcessHandle(index=index, spec=spec, argv=argv, process=process)
    logger.debug("Spawned task %d pid=%s: %s", index, process.pid, handle.command_line)
    return handle


class ProcessHandle:
    """Owns one running subprocess, its pipes and its start time.

    Output is pulled from the pipes without blocking and buffered until it is
    read. ``release`` must be called exactly once by the owner; later calls
    are no-ops returning ``-1``.
    """

    def __init__(
        self,
        *,
        index: int,
        spec: TaskSpec,
        argv: list[str],
        process: subprocess.Popen[bytes],
    ) -> None:
        self.index = index
        self.spec = spec
        self.argv = argv
        self._process = process
        self._started_at = time.monotonic()
        self._released_at: float | None = None
        self._signalled = False
        self._stdout = bytearray()
        self._stderr = bytearray()
        for stream in (process.stdout, process.stderr):
            if stream is not None:
                os.set_blocking(stream.fileno(), False)

    @property
    def command_line(self) -> str:
        return shlex.join(self.argv)

    @property
    def released(self) -> bool:
        return self._released_at is not None

    @property
    def pid(self) -> int | None:
        if self.released:
            return None
        return self._process.pid

    @property
    def state(self) -> HandleState:
        if self._signalled:
            return HandleState.TIMED_OUT
        if self.released or self._process.poll() is not None:
            return HandleState.EXITED
        return HandleState.RUNNING

    def is_alive(self) -> bool:
        if self.released:
            return False
        return self._process.poll() is None

    def elapsed_time(self) -> float:
        end = self._released_at if self._released_at is not None else time.monotonic()
        return end - self._started_at

    def exceeded_timeout(self) -> bool:
        return self.elapsed_time() > self.spec.timeout_seconds

    def exit_code(self) -> int | None:
        if not self.released:
            self._process.poll()
        return self._process.returncode

    def pump(self) -> None:
        """Move currently available pipe bytes into the buffers."""

        _drain(self._process.stdout, self._stdout)
        _drain(self._process.stderr, self._stderr)

    def read_output(self) -> bytes:
        self.pump()
        data = bytes(self._stdout)
        self._stdout.clear()
        return data

    def read_error(self) -> bytes:
        self.pump()
        data = bytes(self._stderr)
        self._stderr.clear()
        return data

    def terminate(self, sig: int = signal.SIGTERM) -> bool:
        """Send ``sig`` to the process; True when the OS accepted it."""

        if self.released or self._process.returncode is not None:
            return False
        self._signalled = True
        try:
            self._process.send_signal(sig)
        except OSError as error:
            logger.debug("Signal %s to pid %s rejected: %s", sig, self._process.pid, error)
            return False
        # Popen.send_signal silently skips processes it has already reaped.
        return self._process.returncode is None

    def release(self, grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS) -> int:
        """Close all channels and reap the process; return its exit status."""

        if self.released:
            return UNKNOWN_EXIT_CODE
        self._released_at = time.monotonic()

        self.pump()
        close_errors: list[str] = []
        for stream in (self._process.stdout, self._process.stderr):
            if stream is None:
                continue
            try:
                stream.close()
            except OSError as error:
                close_errors.append(str(error))

        exit_code = self._reap(grace_seconds)
        if close_errors:
            raise ReleaseError(
                f"Failed to close channels for {self.spec.script}: {'; '.join(close_errors)}",
                exit_code=exit_code,
            )
        return exit_code

    def _reap(self, grace_seconds: float) -> int:
        try:
            return self._process.wait(timeout=max(0.0, grace_seconds))
        except subprocess.TimeoutExpired:
            logger.warning(
                "Process %s (pid=%s) still running after %.1fs, killing",
                self.spec.script,
                self._process.pid,
                grace_seconds,
            )
        with contextlib.suppress(ProcessLookupError):
            self._process.kill()
        return self._process.wait()


def _drain(stream: IO[bytes] | None, buffer: bytearray) -> None:
    if stream is None or stream.closed:
        return
    fd = stream.fileno()
    while True:
        try:
            chunk = os.read(fd, _READ_CHUNK_SIZE)
        except BlockingIOError:
            return
        if not chunk:
            return
        buffer.extend(chunk)
