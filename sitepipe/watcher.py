"""Source watching for Sitepipe.

File system events from watchdog are published onto a queue. One dispatcher
thread reads the queue, maps each changed path to the tasks bound to it, and
hands those tasks to the scheduler. Task bodies run on a bounded thread pool,
so a slow task never blocks observation of later events.

The scheduler runs each task at most once at a time. A trigger that arrives
while the task is running marks a single pending rerun; any further triggers
merge into it.

Key classes:
- WatchState: Lifecycle of a SourceWatcher.
- WatchBinding: Association between a PathSpec and the task it reruns.
- TaskScheduler: Coalescing, bounded executor for watch-mode task runs.
- SourceWatcher: Binds source PathSpecs to tasks and dispatches change events.
"""

from __future__ import annotations

import os
import queue
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import click
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .config import BuildConfig
from .paths import PathSpec
from .runner import run_task
from .tasks import Task, TaskResult

# Opened/closed events are emitted when tasks read their own inputs.
CHANGE_EVENTS = frozenset({"created", "modified", "deleted", "moved"})


class WatchState(Enum):
    IDLE = "idle"
    WATCHING = "watching"
    TRIGGERED = "triggered"
    STOPPED = "stopped"


@dataclass(frozen=True)
class WatchBinding:
    spec: PathSpec
    task: Task


class TaskScheduler:
    """Runs triggered tasks on a bounded pool, coalescing reruns per task.

    Attributes:
        max_workers: Upper bound on tasks running at once.
    """

    def __init__(
        self,
        max_workers: int = 4,
        on_result: Callable[[TaskResult], None] | None = None,
    ):
        self.max_workers = max_workers
        self._on_result = on_result
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="sitepipe-watch"
        )
        self._cond = threading.Condition()
        self._running: set[str] = set()
        self._pending: set[str] = set()

    def trigger(self, task: Task) -> bool:
        """Run the task now, or queue one rerun if it is already running.

        Returns:
            True if a new run was started, False if it was coalesced.
        """
        with self._cond:
            if task.name in self._running:
                self._pending.add(task.name)
                return False
            self._running.add(task.name)
        self._executor.submit(self._run, task)
        return True

    def is_running(self, name: str) -> bool:
        with self._cond:
            return name in self._running

    def _run(self, task: Task) -> None:
        rerun = True
        while rerun:
            try:
                result = run_task(task)
                if self._on_result is not None:
                    self._on_result(result)
            finally:
                with self._cond:
                    rerun = task.name in self._pending
                    self._pending.discard(task.name)
                    if not rerun:
                        self._running.discard(task.name)
                        self._cond.notify_all()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no task is running or pending."""
        with self._cond:
            return self._cond.wait_for(lambda: not self._running, timeout)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)


class SourceWatcher:
    """Reruns tasks when their watched source files change.

    Attributes:
        config: Build configuration.
        tasks: Tasks to bind; those without a watch spec are skipped.
        scheduler: Scheduler that runs triggered tasks.
        bindings: Active watch bindings, populated by start().
    """

    def __init__(
        self,
        config: BuildConfig,
        tasks: Sequence[Task],
        scheduler: TaskScheduler | None = None,
    ):
        self.config = config
        self.tasks = list(tasks)
        self.scheduler = scheduler or TaskScheduler(max_workers=config.max_workers)
        self.bindings: list[WatchBinding] = []
        self.state = WatchState.IDLE
        self._events: queue.Queue[Path | None] = queue.Queue()
        self._observer: Observer | None = None
        self._dispatcher: threading.Thread | None = None

    def bind(self) -> list[WatchBinding]:
        self.bindings = [
            WatchBinding(task.watch, task) for task in self.tasks if task.watch is not None
        ]
        return self.bindings

    def start(self) -> None:
        if self.state is not WatchState.IDLE:
            raise RuntimeError(f"Cannot start watcher in state {self.state.value}")
        self.bind()
        self._dispatcher = threading.Thread(
            target=self._dispatch_loop, name="sitepipe-dispatch", daemon=True
        )
        self._dispatcher.start()
        observer = Observer()
        if self.config.source_dir.exists():
            observer.schedule(
                _SourceChangeHandler(self), str(self.config.source_dir), recursive=True
            )
        observer.start()
        self._observer = observer
        self.state = WatchState.WATCHING

    def stop(self) -> None:
        if self.state is WatchState.STOPPED:
            return
        if self._observer:
            self._observer.stop()
            self._observer.join()
        self._events.put(None)
        if self._dispatcher:
            self._dispatcher.join()
        self.scheduler.shutdown()
        self.state = WatchState.STOPPED

    def publish(self, path: Path) -> None:
        """Queue a changed path for the dispatcher."""
        self._events.put(path)

    def tasks_for(self, path: Path) -> list[Task]:
        return [
            binding.task
            for binding in self.bindings
            if binding.spec.matches(path, self.config.source_dir)
        ]

    def dispatch(self, path: Path) -> list[Task]:
        """Trigger every task bound to a changed path.

        Returns:
            The tasks that were triggered.
        """
        matched = self.tasks_for(path)
        if not matched:
            return matched
        self.state = WatchState.TRIGGERED
        try:
            rel = path.relative_to(self.config.project_root)
        except ValueError:
            rel = path
        for task in matched:
            click.echo(f"Change detected in {rel}; rerunning {task.name}")
            self.scheduler.trigger(task)
        self.state = WatchState.WATCHING
        return matched

    def _dispatch_loop(self) -> None:
        while True:
            path = self._events.get()
            if path is None:
                return
            self.dispatch(path)


class _SourceChangeHandler(FileSystemEventHandler):
    def __init__(self, watcher: SourceWatcher):
        super().__init__()
        self.watcher = watcher

    def on_any_event(self, event):
        if event.is_directory or event.event_type not in CHANGE_EVENTS:
            return
        for raw in (event.src_path, getattr(event, "dest_path", "")):
            if raw:
                self.watcher.publish(Path(os.fsdecode(raw)))
