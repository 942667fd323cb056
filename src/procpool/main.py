"""CLI entrypoint for procpool."""

from pathlib import Path

import rich_click as click

from procpool import __version__
from procpool.controllers import PoolCliController, RunCommand
from procpool.observers import OBSERVER_NAMES

click.rich_click.USE_MARKDOWN = True
POOL_CONTROLLER = PoolCliController()


@click.group()
@click.version_option(version=__version__, prog_name="procpool")
def procpool() -> None:
    """Run external commands concurrently with per-task timeouts."""


@procpool.command("run")
@click.argument("scripts", nargs=-1)
@click.option(
    "--tasks-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON list of tasks: script names or objects with script/timeout_seconds/arguments/environment.",
)
@click.option(
    "--executable",
    default=None,
    help="Interpreter used to launch each script. Empty string runs scripts directly.",
)
@click.option(
    "--working-dir",
    "working_directory",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory scripts are resolved against and run from.",
)
@click.option(
    "--max-concurrent",
    type=int,
    default=None,
    help="Maximum number of live processes. Values below 1 are treated as 1.",
)
@click.option(
    "--poll-interval",
    type=float,
    default=None,
    help="Seconds between status sweeps. Values below 0 are treated as 0.",
)
@click.option(
    "--timeout",
    "timeout_seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Per-task timeout in seconds for tasks without their own.",
)
@click.option(
    "--arg",
    "arguments",
    multiple=True,
    help="Argument passed to every positional script. Can be repeated.",
)
@click.option(
    "--env",
    "environment",
    multiple=True,
    help="KEY=VALUE environment override for positional scripts. Can be repeated.",
)
@click.option(
    "--observer",
    type=click.Choice(OBSERVER_NAMES, case_sensitive=False),
    default=None,
    help="Progress notifications sink; defaults to PROCPOOL_OBSERVER or console.",
)
@click.option("--no-color", is_flag=True, default=False, help="Disable coloured progress tags.")
@click.option("--json", "output_json", is_flag=True, default=False, help="Print results as JSON.")
def run(  # noqa: PLR0913
    scripts: tuple[str, ...],
    tasks_file: Path | None,
    executable: str | None,
    working_directory: Path | None,
    max_concurrent: int | None,
    poll_interval: float | None,
    timeout_seconds: float | None,
    arguments: tuple[str, ...],
    environment: tuple[str, ...],
    observer: str | None,
    no_color: bool,
    output_json: bool,
) -> None:
    """Run every given script and report one result per task, in order."""

    result = POOL_CONTROLLER.run(
        RunCommand(
            scripts=scripts,
            tasks_file=tasks_file,
            executable=executable,
            working_directory=working_directory,
            max_concurrent=max_concurrent,
            poll_interval=poll_interval,
            timeout_seconds=timeout_seconds,
            arguments=arguments,
            environment=environment,
            observer=observer,
            use_colors=False if no_color else None,
            output_json=output_json,
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("procpool run did not succeed.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    procpool()
