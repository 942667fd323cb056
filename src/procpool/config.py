"""Runtime configuration for the process pool and its CLI."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from procpool.models import DEFAULT_TIMEOUT_SECONDS
from procpool.observers import OBSERVER_NAMES
from procpool.process import DEFAULT_KILL_GRACE_SECONDS


@dataclass(slots=True)
class PoolSettings:
    """Scheduling and process-invocation settings."""

    executable: str = sys.executable
    working_directory: Path | None = None
    max_concurrent: int = 3
    poll_interval_seconds: float = 1.0
    default_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS


@dataclass(slots=True)
class OutputSettings:
    """Run notification settings."""

    observer: str = "console"
    use_colors: bool = True


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    pool: PoolSettings = field(default_factory=PoolSettings)
    output: OutputSettings = field(default_factory=OutputSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from ``PROCPOOL_*`` environment variables."""

        working_directory = os.getenv("PROCPOOL_WORKING_DIRECTORY", "").strip()
        return cls(
            pool=PoolSettings(
                executable=os.getenv("PROCPOOL_EXECUTABLE", sys.executable),
                working_directory=Path(working_directory) if working_directory else None,
                max_concurrent=_env_int("PROCPOOL_MAX_CONCURRENT", 3),
                poll_interval_seconds=_env_float("PROCPOOL_POLL_INTERVAL_SECONDS", 1.0),
                default_timeout_seconds=_env_float(
                    "PROCPOOL_DEFAULT_TIMEOUT_SECONDS",
                    DEFAULT_TIMEOUT_SECONDS,
                ),
                kill_grace_seconds=_env_float(
                    "PROCPOOL_KILL_GRACE_SECONDS",
                    DEFAULT_KILL_GRACE_SECONDS,
                ),
            ),
            output=OutputSettings(
                observer=os.getenv("PROCPOOL_OBSERVER", "console").strip().lower(),
                use_colors=_env_bool("PROCPOOL_COLOR", default=True),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the manager cannot clamp."""

        if self.output.observer not in OBSERVER_NAMES:
            raise ValueError(
                f"PROCPOOL_OBSERVER must be one of {', '.join(OBSERVER_NAMES)}, "
                f"got {self.output.observer!r}.",
            )
        if self.pool.default_timeout_seconds < 0:
            raise ValueError("PROCPOOL_DEFAULT_TIMEOUT_SECONDS must be >= 0.")
        if self.pool.kill_grace_seconds < 0:
            raise ValueError("PROCPOOL_KILL_GRACE_SECONDS must be >= 0.")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
