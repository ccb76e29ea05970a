"""Development server for Sitepipe.

Serves the build directory with live reload and sane defaults for local work:
- Injects a reload script into HTML responses.
- Rejects directory listings and missing paths with a 404 (serving 404.html when present).
- Reruns tasks when sources change (via SourceWatcher).
- Watches the build directory and tells connected browsers to reload.

Key classes:
- DevServer: Main class for running the development server.
- _ReloadHandler: HTTP request handler that injects reload script and enforces 404s.
- _OutputChangeHandler: File system event handler that schedules browser reloads.
"""

from __future__ import annotations

import asyncio
import functools
import json
import os
import threading
import time
from collections.abc import Sequence
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import click
import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import build_all
from .config import BuildConfig
from .tasks import Task, create_default_tasks
from .watcher import CHANGE_EVENTS, SourceWatcher, WatchState


class _ReloadHandler(SimpleHTTPRequestHandler):
    """HTTP request handler that injects live reload script into HTML pages.

    Attributes:
        reload_script: JavaScript code for WebSocket connection to trigger reloads.
    """

    reload_script_template = """
    <script>
    (() => {{
      const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
      ws.onmessage = (event) => {{
        const data = JSON.parse(event.data || '{{}}');
        if (data.type === 'reload') location.reload();
      }};
    }})();
    </script>
    """
    reload_script = reload_script_template.format(ws_port=3001)

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def log_message(self, format, *args):  # pragma: no cover - quiet request log
        return

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        # Never expose directory listings; treat as missing content.
        return self._serve_404()

    def _inject(self, content: str) -> bytes:
        if "</body>" in content:
            content = content.replace("</body>", f"{self.reload_script}</body>")
        else:
            content += self.reload_script
        return content.encode("utf-8")

    def _send_html(self, code: int, encoded: bytes) -> None:
        self.send_response(code)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _serve_404(self):
        """Serve 404.html (when present) with injected reload script and a 404 status."""
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            self._send_html(404, self._inject(error_page.read_text(encoding="utf-8")))
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path_obj = Path(self.translate_path(self.path))
        if path_obj.is_dir():
            index_path = path_obj / "index.html"
            if not index_path.exists():
                return self._serve_404()
            path_obj = index_path
        elif not path_obj.exists():
            return self._serve_404()

        if path_obj.suffix == ".html":
            self._send_html(200, self._inject(path_obj.read_text(encoding="utf-8")))
            return None
        return super().send_head()


class DevServer:
    """Development server with source watching and live reload.

    Attributes:
        config: Build configuration.
        build_dir: Directory served over HTTP.
        http_port: Port for the HTTP server.
        ws_port: Port for WebSocket connections.
        tasks: Content tasks built and watched by the server.
        watcher: Source watcher that reruns tasks.
        _observer: Observer for the build directory.
        _ws_clients: Set of connected WebSocket clients.
        _loop: Event loop for WebSocket handling.
    """

    def __init__(self, config: BuildConfig, tasks: Sequence[Task] | None = None):
        self.config = config
        self.build_dir = config.build_dir
        self.http_port = config.port
        self.ws_port = config.ws_port
        self.tasks = list(tasks) if tasks is not None else create_default_tasks(config)
        self.watcher = SourceWatcher(config, self.tasks)
        self._reload_script = _ReloadHandler.reload_script_template.format(ws_port=self.ws_port)
        self._observer: Observer | None = None
        self._ws_clients: set = set()
        self._loop = asyncio.new_event_loop()
        self._debounce_seconds = config.debounce_seconds
        self._reload_timer: threading.Timer | None = None
        self._reload_lock = threading.Lock()

    def start(self) -> None:  # pragma: no cover - integration path
        """Build everything, then serve and watch until interrupted.

        Raises:
            PipelineError: If the initial build fails; nothing is served.
        """
        build_all(self.config, self.tasks)
        self.build_dir.mkdir(parents=True, exist_ok=True)
        threading.Thread(target=self._start_http, daemon=True).start()
        threading.Thread(target=self._start_ws, daemon=True).start()
        self._start_output_watcher()
        self.watcher.start()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self.watcher.state is WatchState.WATCHING:
            self.watcher.stop()
        if self._observer:
            self._observer.stop()
            self._observer.join()
        with self._reload_lock:
            if self._reload_timer is not None:
                self._reload_timer.cancel()
        self._loop.call_soon_threadsafe(self._loop.stop)

    def _start_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type(
            "_ReloadHandlerWithPort",
            (_ReloadHandler,),
            {"reload_script": self._reload_script},
        )
        handler = functools.partial(handler_cls, directory=str(self.build_dir))
        httpd = ThreadingHTTPServer(("", self.http_port), handler)
        click.echo(f"Serving {self.build_dir} at http://localhost:{self.http_port}")
        httpd.serve_forever()

    def _start_ws(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server())
        except OSError as exc:
            click.echo(
                click.style(
                    f"WebSocket server failed to start (port {self.ws_port}): {exc}",
                    fg="red",
                ),
                err=True,
            )
            return

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._ws_handler, "0.0.0.0", self.ws_port):
            await asyncio.Future()  # Run forever

    async def _ws_handler(self, websocket):
        self._ws_clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._ws_clients.discard(websocket)

    def notify_clients(self) -> None:
        """Push a reload message to every connected browser."""
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self._async_broadcast(message), self._loop)

    async def _async_broadcast(self, message: str):
        stale = set()
        for ws in list(self._ws_clients):
            try:
                await ws.send(message)
            except Exception:
                stale.add(ws)
        for ws in stale:
            self._ws_clients.discard(ws)

    def schedule_reload(self) -> None:
        """Debounce output changes into a single notify_clients() call."""
        with self._reload_lock:
            if self._reload_timer is not None:
                self._reload_timer.cancel()
            timer = threading.Timer(self._debounce_seconds, self.notify_clients)
            timer.daemon = True
            self._reload_timer = timer
            timer.start()

    def _start_output_watcher(self) -> None:
        observer = Observer()
        observer.schedule(_OutputChangeHandler(self), str(self.build_dir), recursive=True)
        observer.start()
        self._observer = observer


class _OutputChangeHandler(FileSystemEventHandler):
    def __init__(self, server: DevServer):
        super().__init__()
        self.server = server

    def on_any_event(self, event):
        if event.is_directory or event.event_type not in CHANGE_EVENTS:
            return
        path = Path(os.fsdecode(event.src_path))
        if path.name.startswith("."):
            return
        self.server.schedule_reload()
