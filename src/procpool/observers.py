"""Run notification sinks.

Observers are told when a task is admitted, completes, is killed, or when the
manager has something informational or erroneous to say. They never influence
scheduling; the manager shields itself from any exception they raise.
"""

from __future__ import annotations

import html
import logging
import sys
from typing import Protocol, TextIO

import click


class Observer(Protocol):
    """Notification capability accepted by ``ProcessManager``."""

    def on_queued(self, name: str) -> None:
        """A task's process has been spawned and occupies a slot."""

    def on_completed(self, name: str) -> None:
        """A task's process exited on its own."""

    def on_killed(self, name: str) -> None:
        """A task's process was terminated after overrunning its timeout."""

    def on_info(self, message: str) -> None:
        """General progress message."""

    def on_error(self, message: str) -> None:
        """Spawn or release failure."""


class NullObserver:
    """Discards every notification."""

    def on_queued(self, name: str) -> None:
        pass

    def on_completed(self, name: str) -> None:
        pass

    def on_killed(self, name: str) -> None:
        pass

    def on_info(self, message: str) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass


class ConsoleObserver:
    """Writes tagged, optionally coloured lines to the terminal."""

    def __init__(self, *, use_colors: bool = True, err: bool = False) -> None:
        self.use_colors = use_colors
        self.err = err

    def on_queued(self, name: str) -> None:
        self._emit("[QUEUED]", "yellow", name)

    def on_completed(self, name: str) -> None:
        self._emit("[DONE]", "green", name)

    def on_killed(self, name: str) -> None:
        self._emit("[KILLED]", "red", name)

    def on_info(self, message: str) -> None:
        self._emit("[INFO]", "cyan", message)

    def on_error(self, message: str) -> None:
        self._emit("[ERROR]", "red", message)

    def _emit(self, tag: str, color: str, text: str) -> None:
        label = click.style(tag, fg=color) if self.use_colors else tag
        click.echo(f"{label} {text}", err=self.err, color=self.use_colors)


class HtmlObserver:
    """Writes ``<span>``-tagged lines for a browser-facing stream."""

    def __init__(self, stream: TextIO | None = None, *, flush: bool = True) -> None:
        self.stream = stream
        self.flush = flush

    def on_queued(self, name: str) -> None:
        self._emit("[QUEUED]", "orange", name)

    def on_completed(self, name: str) -> None:
        self._emit("[DONE]", "green", name)

    def on_killed(self, name: str) -> None:
        self._emit("[KILLED]", "red", name)

    def on_info(self, message: str) -> None:
        self._emit("[INFO]", "cyan", message)

    def on_error(self, message: str) -> None:
        self._emit("[ERROR]", "red", message)

    def _emit(self, tag: str, color: str, text: str) -> None:
        stream = self.stream or sys.stdout
        stream.write(f"<span style='color: {color};'>{tag}</span> {html.escape(text)}<br />\n")
        if self.flush:
            stream.flush()


class LoggingObserver:
    """Forwards notifications to a stdlib logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("procpool.run")

    def on_queued(self, name: str) -> None:
        self.logger.info("Queued %s", name)

    def on_completed(self, name: str) -> None:
        self.logger.info("Completed %s", name)

    def on_killed(self, name: str) -> None:
        self.logger.warning("Killed %s", name)

    def on_info(self, message: str) -> None:
        self.logger.info(message)

    def on_error(self, message: str) -> None:
        self.logger.error(message)


OBSERVER_NAMES = ("console", "html", "logging", "none")


def build_observer(name: str, *, use_colors: bool = True) -> Observer:
    """Return the observer registered under ``name``."""

    normalized = name.strip().lower()
    if normalized == "console":
        return ConsoleObserver(use_colors=use_colors)
    if normalized == "html":
        return HtmlObserver()
    if normalized == "logging":
        return LoggingObserver()
    if normalized == "none":
        return NullObserver()
    raise ValueError(f"Unknown observer: {name!r}. Expected one of {', '.join(OBSERVER_NAMES)}.")
