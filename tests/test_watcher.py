import threading
from pathlib import Path

import pytest

from sitepipe.errors import TransformError
from sitepipe.tasks import create_default_tasks
from sitepipe.watcher import (
    SourceWatcher,
    TaskScheduler,
    WatchState,
    _SourceChangeHandler,
)


class RecordingScheduler:
    def __init__(self):
        self.triggered = []
        self.shut_down = False

    def trigger(self, task):
        self.triggered.append(task.name)
        return True

    def shutdown(self):
        self.shut_down = True


class DummyEvent:
    def __init__(self, path, event_type="modified", is_directory=False, dest_path=""):
        self.src_path = path
        self.event_type = event_type
        self.is_directory = is_directory
        self.dest_path = dest_path


class BlockingTask:
    def __init__(self, name, config, fail=False):
        self.name = name
        self.config = config
        self.fail = fail
        self.runs = 0
        self.started = threading.Event()
        self.release = threading.Event()

    def run(self):
        self.runs += 1
        self.started.set()
        self.release.wait(timeout=5)
        if self.fail:
            raise TransformError("broken")
        return []


@pytest.fixture
def watcher(dev_config):
    scheduler = RecordingScheduler()
    watcher = SourceWatcher(dev_config, create_default_tasks(dev_config), scheduler=scheduler)
    watcher.bind()
    return watcher


def test_bindings_skip_unwatched_tasks(watcher):
    assert [b.task.name for b in watcher.bindings] == ["html", "styles", "scripts", "images", "sprite"]


@pytest.mark.parametrize(
    "rel, expected",
    [
        ("styles/_variables.scss", ["styles"]),
        ("styles/style.scss", ["styles"]),
        ("pug/partials/nav.pug", ["html"]),
        ("js/lib/util.js", ["scripts"]),
        ("images/sprite/icon.svg", ["sprite"]),
        ("images/photos/cat.jpg", ["images"]),
        ("fonts/body.woff2", []),
        ("README.md", []),
    ],
)
def test_dispatch_triggers_only_bound_task(watcher, dev_config, rel, expected):
    matched = watcher.dispatch(dev_config.source_dir / rel)
    assert [task.name for task in matched] == expected
    assert watcher.scheduler.triggered == expected


def test_dispatch_ignores_paths_outside_source(watcher, dev_config):
    assert watcher.dispatch(dev_config.build_dir / "css" / "style.css") == []
    assert watcher.scheduler.triggered == []


def test_dispatch_returns_to_watching(watcher, dev_config, capsys):
    watcher.state = WatchState.WATCHING
    watcher.dispatch(dev_config.source_dir / "styles" / "style.scss")
    assert watcher.state is WatchState.WATCHING
    assert "Change detected in src/styles/style.scss; rerunning styles" in capsys.readouterr().out


def test_handler_filters_and_publishes(watcher, dev_config):
    handler = _SourceChangeHandler(watcher)
    src = dev_config.source_dir
    handler.on_any_event(DummyEvent(str(src / "styles"), is_directory=True))
    handler.on_any_event(DummyEvent(str(src / "js" / "main.js"), event_type="opened"))
    handler.on_any_event(DummyEvent(str(src / "js" / "main.js"), event_type="closed"))
    assert watcher._events.empty()

    handler.on_any_event(DummyEvent(str(src / "js" / "main.js")))
    handler.on_any_event(
        DummyEvent(
            str(src / "styles" / "a.tmp"),
            event_type="moved",
            dest_path=str(src / "styles" / "a.scss"),
        )
    )
    queued = [watcher._events.get_nowait() for _ in range(3)]
    assert queued == [
        src / "js" / "main.js",
        src / "styles" / "a.tmp",
        src / "styles" / "a.scss",
    ]


def test_start_dispatches_and_stop(monkeypatch, dev_config):
    scheduled = []

    class DummyObserver:
        def schedule(self, handler, path, recursive):
            scheduled.append((path, recursive))

        def start(self):
            scheduled.append("started")

        def stop(self):
            scheduled.append("stopped")

        def join(self):
            scheduled.append("joined")

    monkeypatch.setattr("sitepipe.watcher.Observer", DummyObserver)
    scheduler = RecordingScheduler()
    watcher = SourceWatcher(dev_config, create_default_tasks(dev_config), scheduler=scheduler)
    watcher.start()
    assert watcher.state is WatchState.WATCHING
    assert (str(dev_config.source_dir), True) in scheduled

    watcher.publish(dev_config.source_dir / "styles" / "style.scss")
    watcher.stop()
    assert scheduler.triggered == ["styles"]
    assert scheduler.shut_down
    assert watcher.state is WatchState.STOPPED
    assert scheduled[-2:] == ["stopped", "joined"]

    with pytest.raises(RuntimeError):
        watcher.start()
    watcher.stop()


def test_scheduler_coalesces_reruns(dev_config):
    scheduler = TaskScheduler(max_workers=2)
    task = BlockingTask("styles", dev_config)
    try:
        assert scheduler.trigger(task) is True
        assert task.started.wait(timeout=5)
        assert scheduler.trigger(task) is False
        assert scheduler.trigger(task) is False
        assert scheduler.trigger(task) is False
        task.release.set()
        assert scheduler.wait_idle(timeout=5)
        assert task.runs == 2
        assert not scheduler.is_running("styles")
    finally:
        task.release.set()
        scheduler.shutdown()


def test_scheduler_runs_different_tasks_concurrently(dev_config):
    scheduler = TaskScheduler(max_workers=2)
    styles = BlockingTask("styles", dev_config)
    scripts = BlockingTask("scripts", dev_config)
    try:
        scheduler.trigger(styles)
        scheduler.trigger(scripts)
        assert styles.started.wait(timeout=5)
        assert scripts.started.wait(timeout=5)
        assert scheduler.is_running("styles") and scheduler.is_running("scripts")
    finally:
        styles.release.set()
        scripts.release.set()
        scheduler.wait_idle(timeout=5)
        scheduler.shutdown()


def test_scheduler_survives_task_failure(dev_config, capsys):
    results = []
    scheduler = TaskScheduler(max_workers=1, on_result=results.append)
    broken = BlockingTask("html", dev_config, fail=True)
    broken.release.set()
    try:
        scheduler.trigger(broken)
        assert scheduler.wait_idle(timeout=5)
        assert scheduler.trigger(broken) is True
        assert scheduler.wait_idle(timeout=5)
    finally:
        scheduler.shutdown()
    assert broken.runs == 2
    assert [r.ok for r in results] == [False, False]
    assert "[html] failed: broken" in capsys.readouterr().err


def test_style_change_reruns_only_styles(dev_config):
    results = []
    scheduler = TaskScheduler(max_workers=2, on_result=results.append)
    watcher = SourceWatcher(dev_config, create_default_tasks(dev_config), scheduler=scheduler)
    watcher.bind()
    try:
        style = dev_config.source_dir / "styles" / "style.scss"
        style.write_text("body { color: red; }\n", encoding="utf-8")
        watcher.dispatch(style)
        assert scheduler.wait_idle(timeout=10)
    finally:
        scheduler.shutdown()
    assert [r.task for r in results] == ["styles"]
    build = dev_config.build_dir
    assert "color: red" in (build / "css" / "style.css").read_text(encoding="utf-8")
    assert not (build / "index.html").exists()
    assert not (build / "js").exists()
    assert not (build / "images").exists()
