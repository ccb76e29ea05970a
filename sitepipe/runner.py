"""Task graph runner for Sitepipe.

The graph has two shapes: a parallel group of independent tasks (fan-out over a
bounded thread pool, fan-in where every task must succeed) and a strict
sequence of steps that stops at the first failure.

Key functions:
- run_task: Run one task and capture its outcome as a TaskResult.
- run_parallel: Run tasks concurrently; raise PipelineError if any failed.
- run_sequential: Run zero-argument steps in order.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

import click

from .errors import PipelineError, TransformError
from .tasks import Task, TaskResult


def describe_error(error: BaseException, project_root: Path | None = None) -> str:
    """Format an error for display, with the failing input relative to the project."""
    if isinstance(error, TransformError):
        source = error.source
        if source is not None and project_root is not None:
            try:
                source = source.relative_to(project_root)
            except ValueError:
                pass
        return f"{source}: {error.message}" if source else error.message
    return f"{type(error).__name__}: {error}"


def report_result(result: TaskResult, project_root: Path | None = None) -> None:
    if result.ok:
        click.echo(f"[{result.task}] wrote {len(result.files)} file(s)")
        return
    message = describe_error(result.error, project_root)
    click.echo(click.style(f"[{result.task}] failed: {message}", fg="red"), err=True)


def run_task(task: Task) -> TaskResult:
    """Run a task, reporting and capturing any failure instead of raising."""
    try:
        files = task.run()
    except Exception as exc:
        result = TaskResult(task=task.name, error=exc)
    else:
        result = TaskResult(task=task.name, files=files)
    report_result(result, task.config.project_root)
    return result


def run_parallel(tasks: Sequence[Task], max_workers: int = 4) -> list[TaskResult]:
    """Run tasks concurrently and wait for all of them.

    Args:
        tasks: Independent tasks with disjoint outputs.
        max_workers: Upper bound on tasks running at once.

    Returns:
        One result per task, in input order.

    Raises:
        PipelineError: If any task failed, after every task has finished.
    """
    if not tasks:
        return []
    workers = max(1, min(max_workers, len(tasks)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sitepipe-task") as pool:
        results = list(pool.map(run_task, tasks))
    failures = [result for result in results if not result.ok]
    if failures:
        raise PipelineError(failures)
    return results


def run_sequential(steps: Iterable[Callable[[], Any]]) -> list[Any]:
    """Run steps strictly in order; an exception aborts the remaining steps."""
    return [step() for step in steps]
