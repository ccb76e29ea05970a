"""Configuration loading for Sitepipe.

Configuration is resolved once at startup from built-in defaults, the optional
``sitepipe.yaml`` file in the project root, and command-line overrides, in that
order. The result is an immutable BuildConfig that is passed explicitly into
every task run.

Key objects:
- BuildConfig: Frozen configuration value, including the production flag.
- load_config: Builds a BuildConfig for a project root.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "sitepipe.yaml"

DEFAULT_CONFIG = {
    "source_dir": "src",
    "build_dir": "build",
    "port": 3000,
    "max_workers": 4,
    "debounce_seconds": 0.1,
}


@dataclass(frozen=True)
class BuildConfig:
    """Immutable settings for one pipeline invocation.

    Attributes:
        project_root: Root directory of the project.
        source_dir: Directory containing pug/, styles/, js/, images/ and fonts/.
        build_dir: Directory where all outputs are written.
        production: True for production mode (validate, minify, no source maps).
        port: HTTP port for the dev server.
        ws_port: WebSocket port for live reload.
        max_workers: Upper bound on concurrently running tasks.
        debounce_seconds: Quiet period before an output change triggers a reload.
    """

    project_root: Path
    source_dir: Path
    build_dir: Path
    production: bool = False
    port: int = 3000
    ws_port: int = 3001
    max_workers: int = 4
    debounce_seconds: float = 0.1

    @property
    def mode(self) -> str:
        return "production" if self.production else "development"


def read_config_file(project_root: Path) -> dict[str, Any]:
    """Read sitepipe.yaml, returning an empty mapping when absent or malformed.

    Args:
        project_root: Root directory of the project.

    Returns:
        Dictionary of raw configuration values.
    """
    config_path = project_root / CONFIG_FILENAME
    if not config_path.exists():
        return {}
    with open(config_path, encoding="utf-8") as f:
        loaded = yaml.safe_load(f) or {}
    return loaded if isinstance(loaded, dict) else {}


def load_config(
    project_root: Path,
    production: bool = False,
    port: int | None = None,
    ws_port: int | None = None,
) -> BuildConfig:
    """Load the pipeline configuration for a project.

    Args:
        project_root: Root directory of the project.
        production: Whether to run in production mode.
        port: Optional override for the HTTP port.
        ws_port: Optional override for the WebSocket port.

    Returns:
        BuildConfig with defaults, file values and overrides applied.
    """
    values: dict[str, Any] = DEFAULT_CONFIG.copy()
    values.update(read_config_file(project_root))

    http_port = int(port if port is not None else values["port"])
    if ws_port is None:
        # An explicit --port moves the websocket port along with it.
        ws_port = http_port + 1 if port is not None else values.get("ws_port", http_port + 1)

    return BuildConfig(
        project_root=project_root,
        source_dir=project_root / values["source_dir"],
        build_dir=project_root / values["build_dir"],
        production=production,
        port=http_port,
        ws_port=int(ws_port),
        max_workers=max(1, int(values["max_workers"])),
        debounce_seconds=float(values["debounce_seconds"]),
    )
