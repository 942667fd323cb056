from __future__ import annotations

import dataclasses
from pathlib import Path

import allure
import pytest

from procpool.models import ProcessResult, TaskSpec, TaskStatus

pytestmark = [
    allure.epic("Process Supervision"),
    allure.feature("Task & Result Models"),
]


def test_killed_result_cannot_be_successful() -> None:
    with pytest.raises(ValueError, match="killed task cannot be reported as successful"):
        ProcessResult(
            task_index=0,
            script="job.py",
            exit_code=0,
            stdout=b"",
            stderr=b"",
            elapsed_seconds=1.0,
            was_killed=True,
            was_successful=True,
        )


def test_completed_result_success_follows_exit_code() -> None:
    ok = ProcessResult.completed(
        task_index=0, script="a.py", exit_code=0, stdout=b"hi", stderr=b"", elapsed_seconds=0.5
    )
    failed = ProcessResult.completed(
        task_index=1, script="b.py", exit_code=2, stdout=b"", stderr=b"bad", elapsed_seconds=0.5
    )
    unknown = ProcessResult.completed(
        task_index=2, script="c.py", exit_code=None, stdout=b"", stderr=b"", elapsed_seconds=0.5
    )

    assert ok.was_successful and ok.completed_normally() and not ok.has_errors()
    assert failed.exit_code == 2 and not failed.was_successful and failed.has_errors()
    assert unknown.exit_code == -1 and not unknown.was_successful
    assert {ok.status, failed.status, unknown.status} == {TaskStatus.COMPLETED}


def test_killed_and_spawn_failed_results() -> None:
    killed = ProcessResult.killed(
        task_index=3, script="slow.py", stdout=b"partial", stderr=b"", elapsed_seconds=2.1
    )
    spawn_failed = ProcessResult.spawn_failed(task_index=4, script="x.py", message="no such file")

    assert killed.exit_code == -1
    assert killed.was_killed and not killed.was_successful
    assert not killed.completed_normally()
    assert killed.status is TaskStatus.TIMED_OUT_KILLED
    assert spawn_failed.status is TaskStatus.FAILED_TO_START
    assert spawn_failed.error_output == "no such file"
    assert spawn_failed.elapsed_seconds == 0.0
    assert not spawn_failed.was_killed


def test_result_to_dict_decodes_output() -> None:
    result = ProcessResult.completed(
        task_index=0,
        script="a.py",
        exit_code=0,
        stdout="héllo\n".encode(),
        stderr=b"\xff",
        elapsed_seconds=1.23456,
    )

    assert result.to_dict() == {
        "task_index": 0,
        "script": "a.py",
        "status": "completed",
        "exit_code": 0,
        "output": "héllo\n",
        "error_output": "\ufffd",
        "elapsed_seconds": 1.235,
        "was_killed": False,
        "was_successful": True,
    }


def test_task_spec_is_immutable() -> None:
    spec = TaskSpec(script="job.py", arguments=["--a"], environment={"A": "1"})

    assert spec.arguments == ("--a",)
    with pytest.raises(dataclasses.FrozenInstanceError):
        spec.script = "other.py"  # type: ignore[misc]
    with pytest.raises(TypeError):
        spec.environment["A"] = "2"  # type: ignore[index]


def test_task_spec_from_entry_accepts_script_name() -> None:
    spec = TaskSpec.from_entry("job.py", default_timeout=42)

    assert spec == TaskSpec(script="job.py", timeout_seconds=42)


def test_task_spec_from_entry_accepts_mapping() -> None:
    spec = TaskSpec.from_entry(
        {
            "script": "job.py",
            "timeout": 5,
            "arguments": ["--count", 3],
            "environment": {"MODE": "fast", "LEVEL": 2},
            "working_directory": "/srv/jobs",
        },
    )

    assert spec.script == "job.py"
    assert spec.timeout_seconds == 5.0
    assert spec.arguments == ("--count", "3")
    assert dict(spec.environment) == {"MODE": "fast", "LEVEL": "2"}
    assert spec.working_directory == Path("/srv/jobs")


@pytest.mark.parametrize(
    ("entry", "match"),
    [
        ({"timeout": 5}, "non-empty 'script'"),
        ({"script": "job.py", "arguments": "--flag"}, "must be a list"),
        ({"script": "job.py", "environment": ["A=1"]}, "must be a mapping"),
        ({"script": "job.py", "arguments": 5}, "must be a list"),
        ({"script": "job.py", "timeout": None}, "timeout must be a number"),
        ({"script": "job.py", "timeout_seconds": "soon"}, "timeout must be a number"),
        ({"script": "job.py", "working_directory": 7}, "must be a path string"),
        (42, "Unsupported task entry"),
    ],
)
def test_task_spec_from_entry_rejects_malformed_entries(entry: object, match: str) -> None:
    with pytest.raises(ValueError, match=match):
        TaskSpec.from_entry(entry)  # type: ignore[arg-type]
