"""Shared test fixtures."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from procpool.manager import ProcessManager

_SCRIPTS = {
    "success.py": """
print("Success!")
""",
    "failure.py": """
import sys

sys.stderr.write("Something went wrong\\n")
sys.exit(1)
""",
    "exit_code.py": """
import sys

sys.exit(int(sys.argv[1]))
""",
    "sleep.py": """
import sys
import time

seconds = float(sys.argv[1]) if len(sys.argv) > 1 else 2.0
time.sleep(seconds)
print(f"Slept for {sys.argv[1] if len(sys.argv) > 1 else '2'} seconds", flush=True)
""",
    "print_args.py": """
import sys

for argument in sys.argv[1:]:
    print(argument)
""",
    "print_env.py": """
import os
import sys

for name in sys.argv[1:]:
    print(os.environ.get(name, "<unset>"))
""",
    "print_cwd.py": """
import os

print(os.getcwd())
""",
    "chatty.py": """
import os
import sys

size = int(sys.argv[1])
sys.stdout.buffer.write(b"x" * size)
sys.stdout.buffer.write(b"TAIL")
sys.stdout.buffer.flush()
os._exit(0)
""",
    "ignore_term.py": """
import signal
import sys
import time

signal.signal(signal.SIGTERM, signal.SIG_IGN)
print("ready", flush=True)
time.sleep(30)
""",
}


@pytest.fixture()
def scripts_dir(tmp_path: Path) -> Path:
    """Directory holding small Python fixture scripts."""

    directory = tmp_path / "scripts"
    directory.mkdir()
    for name, body in _SCRIPTS.items():
        (directory / name).write_text(body.lstrip(), "utf-8")
    return directory


@pytest.fixture()
def make_manager(scripts_dir: Path) -> Callable[..., ProcessManager]:
    """Factory for managers running fixture scripts with a short poll interval."""

    def _make(**kwargs) -> ProcessManager:
        kwargs.setdefault("executable", sys.executable)
        kwargs.setdefault("working_directory", scripts_dir)
        kwargs.setdefault("poll_interval", 0.05)
        return ProcessManager(**kwargs)

    return _make
