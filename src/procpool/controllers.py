"""Controllers for procpool CLI commands."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from procpool.config import Settings
from procpool.manager import ProcessManager
from procpool.models import ProcessResult, TaskSpec
from procpool.observers import ConsoleObserver, Observer, build_observer


@dataclass(slots=True)
class RunCommand:
    """CLI input for one pool run."""

    scripts: tuple[str, ...] = ()
    tasks_file: Path | None = None
    executable: str | None = None
    working_directory: Path | None = None
    max_concurrent: int | None = None
    poll_interval: float | None = None
    timeout_seconds: float | None = None
    arguments: tuple[str, ...] = ()
    environment: tuple[str, ...] = ()
    observer: str | None = None
    use_colors: bool | None = None
    output_json: bool = False


@dataclass(slots=True)
class RunCommandResult:
    """Run report to render in CLI."""

    lines: list[str]
    success: bool


class PoolCliController:
    """Translate CLI input into a ``ProcessManager`` run and render the outcome."""

    def run(self, command: RunCommand) -> RunCommandResult:
        try:
            settings = _apply_overrides(Settings.from_env(), command)
            settings.validate()
            specs = _collect_specs(command, default_timeout=settings.pool.default_timeout_seconds)
        except ValueError as error:
            return RunCommandResult(lines=[f"Run aborted: {error}"], success=False)

        manager = ProcessManager(
            executable=settings.pool.executable,
            working_directory=settings.pool.working_directory,
            max_concurrent=settings.pool.max_concurrent,
            poll_interval=settings.pool.poll_interval_seconds,
            observer=_observer_for(settings),
            kill_grace_seconds=settings.pool.kill_grace_seconds,
        )
        manager.add_tasks(specs)
        results = manager.run()
        success = all(result.was_successful for result in results)

        if command.output_json:
            payload = [result.to_dict() for result in results]
            return RunCommandResult(lines=[json.dumps(payload, indent=2)], success=success)
        return RunCommandResult(lines=render_result_lines(results), success=success)


def render_result_lines(results: list[ProcessResult]) -> list[str]:
    """Human-readable results table plus summary line."""

    if not results:
        return ["No tasks to run."]

    lines = ["Results:"]
    for result in results:
        if result.was_successful:
            label = "SUCCESS"
        elif result.was_killed:
            label = "KILLED"
        else:
            label = "FAILED"
        lines.append(
            f"#{result.task_index + 1} {result.script}: {label} "
            f"in {result.elapsed_seconds:.2f}s (exit: {result.exit_code})",
        )
    succeeded = sum(1 for result in results if result.was_successful)
    killed = sum(1 for result in results if result.was_killed)
    failed = len(results) - succeeded - killed
    lines.append(f"Summary: total={len(results)} succeeded={succeeded} failed={failed} killed={killed}")
    return lines


def parse_environment(pairs: tuple[str, ...]) -> dict[str, str]:
    environment: dict[str, str] = {}
    for pair in pairs:
        key, separator, value = pair.partition("=")
        key = key.strip()
        if not separator or not key:
            raise ValueError(f"Invalid environment override: {pair!r}. Expected KEY=VALUE.")
        environment[key] = value
    return environment


def load_tasks_file(path: Path) -> list[Any]:
    try:
        payload = json.loads(path.read_text("utf-8"))
    except OSError as error:
        raise ValueError(f"Cannot read tasks file {path}: {error}") from error
    except json.JSONDecodeError as error:
        raise ValueError(f"Tasks file {path} is not valid JSON: {error}") from error
    if not isinstance(payload, list):
        raise ValueError(f"Tasks file {path} must contain a JSON list of tasks.")
    return payload


def _collect_specs(command: RunCommand, *, default_timeout: float) -> list[TaskSpec]:
    environment = parse_environment(command.environment)
    specs = [
        TaskSpec(
            script=script,
            arguments=command.arguments,
            timeout_seconds=default_timeout,
            environment=environment,
        )
        for script in command.scripts
    ]
    if command.tasks_file is not None:
        specs.extend(
            TaskSpec.from_entry(entry, default_timeout=default_timeout)
            for entry in load_tasks_file(command.tasks_file)
        )
    return specs


def _apply_overrides(settings: Settings, command: RunCommand) -> Settings:
    pool = settings.pool
    if command.executable is not None:
        pool.executable = command.executable
    if command.working_directory is not None:
        pool.working_directory = command.working_directory
    if command.max_concurrent is not None:
        pool.max_concurrent = command.max_concurrent
    if command.poll_interval is not None:
        pool.poll_interval_seconds = command.poll_interval
    if command.timeout_seconds is not None:
        pool.default_timeout_seconds = command.timeout_seconds
    if command.observer is not None:
        settings.output.observer = command.observer.lower()
    if command.use_colors is not None:
        settings.output.use_colors = command.use_colors
    return settings


def _observer_for(settings: Settings) -> Observer:
    # Notifications go to stderr so stdout stays parseable.
    if settings.output.observer == "console":
        return ConsoleObserver(use_colors=settings.output.use_colors, err=True)
    return build_observer(settings.output.observer, use_colors=settings.output.use_colors)
