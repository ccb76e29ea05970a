"""Exception types for Sitepipe.

All pipeline errors derive from SitepipeError so callers can catch the whole
family at the CLI boundary.

Key classes:
- TransformError: A transform step rejected its input.
- ValidationError: Production markup validation failed.
- PipelineError: One or more tasks in a parallel group failed.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .tasks import TaskResult


class SitepipeError(Exception):
    """Base class for all Sitepipe errors."""


class TransformError(SitepipeError):
    """Error raised by a transform step with file context.

    Attributes:
        message: Human-readable error message.
        source: Path to the input file that caused the error, if known.
        task: Name of the task that ran the step. Filled in by the task.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        message: str,
        source: Path | None = None,
        task: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.source = source
        self.task = task
        self.original_error = original_error
        super().__init__(f"{source}: {message}" if source else message)


class ValidationError(TransformError):
    """Markup validation failure reported in production mode."""


class PipelineError(SitepipeError):
    """A parallel task group finished with failures.

    Attributes:
        failures: Results of every task that failed.
    """

    def __init__(self, failures: list[TaskResult]):
        self.failures = failures
        names = ", ".join(result.task for result in failures)
        super().__init__(f"{len(failures)} task(s) failed: {names}")
