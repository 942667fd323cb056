"""Concurrent supervisor for external command invocations."""

from procpool.manager import ProcessManager
from procpool.models import ProcessResult, TaskSpec, TaskStatus
from procpool.observers import ConsoleObserver, HtmlObserver, NullObserver, Observer

__version__ = "0.1.0"

__all__ = [
    "ConsoleObserver",
    "HtmlObserver",
    "NullObserver",
    "Observer",
    "ProcessManager",
    "ProcessResult",
    "TaskSpec",
    "TaskStatus",
    "__version__",
]
