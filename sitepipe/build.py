"""Build pipelines for Sitepipe.

Key functions:
- clean: Delete the build directory (idempotent).
- build_all: Run every content task in parallel.
- build_site: The one-shot ``build`` pipeline, clean followed by build_all.
"""

from __future__ import annotations

import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .config import BuildConfig
from .errors import SitepipeError
from .runner import run_parallel, run_sequential
from .tasks import Task, TaskResult, create_default_tasks


@dataclass
class BuildResult:
    """Result of a pipeline run.

    Attributes:
        results: One result per content task.
        build_dir: Directory the outputs were written to.
    """

    results: list[TaskResult]
    build_dir: Path

    @property
    def files(self) -> list[Path]:
        return [path for result in self.results for path in result.files]


def clean(build_dir: Path, config: BuildConfig | None = None) -> None:
    """Recursively delete the build directory. A missing directory is fine.

    Args:
        build_dir: Directory to delete.
        config: When given, refuse to delete the project or source directory.
    """
    if config is not None:
        protected = (config.project_root.resolve(), config.source_dir.resolve())
        target = build_dir.resolve()
        if target in protected or any(target in p.parents for p in protected):
            raise SitepipeError(f"Refusing to clean {build_dir}: it contains project sources")
    try:
        shutil.rmtree(build_dir)
    except FileNotFoundError:
        pass


def build_all(config: BuildConfig, tasks: Sequence[Task] | None = None) -> BuildResult:
    """Run all content tasks in parallel without cleaning first.

    Raises:
        PipelineError: If any task failed.
    """
    if tasks is None:
        tasks = create_default_tasks(config)
    results = run_parallel(tasks, max_workers=config.max_workers)
    return BuildResult(results=results, build_dir=config.build_dir)


def build_site(config: BuildConfig, tasks: Sequence[Task] | None = None) -> BuildResult:
    """Clean the build directory, then run all content tasks in parallel.

    Raises:
        PipelineError: If any task failed.
    """
    _, result = run_sequential(
        [
            lambda: clean(config.build_dir, config),
            lambda: build_all(config, tasks),
        ]
    )
    return result
