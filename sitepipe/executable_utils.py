"""Executable discovery utilities for Sitepipe.

This module finds Node tools (babel, postcss) either on the system PATH or in
the project's local node_modules, and runs them as stdin/stdout filters.

Functions:
    find_executable: Locate an executable in PATH or node_modules.
    run_node_tool: Pipe text through a Node tool when it is installed.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

from .errors import TransformError


def find_executable(name: str, project_root: Path | None = None) -> str | None:
    """Find an executable in PATH or local node_modules.

    Args:
        name: Name of the executable to find (e.g., 'babel', 'postcss').
        project_root: Optional project root directory to search for
            local node_modules installations.

    Returns:
        Full path to the executable if found, None otherwise.

    Examples:
        >>> find_executable('babel', Path('/my/project'))
        '/my/project/node_modules/.bin/babel'
    """
    found = shutil.which(name)
    if found:
        return found

    if project_root is not None:
        local = project_root / "node_modules" / ".bin" / name
        if local.exists():
            return str(local)

    return None


def run_node_tool(
    name: str,
    args: list[str],
    text: str,
    project_root: Path,
    source: Path | None = None,
) -> str | None:
    """Pipe text through a Node command-line tool.

    Args:
        name: Executable name.
        args: Extra command-line arguments.
        text: Text written to the tool's stdin.
        project_root: Project root, used for lookup and as working directory.
        source: Input file the text came from, for error context.

    Returns:
        The tool's stdout, or None when the tool is not installed.

    Raises:
        TransformError: If the tool exits with a non-zero status.
    """
    binary = find_executable(name, project_root)
    if not binary:
        return None
    result = subprocess.run(
        [binary, *args],
        input=text,
        capture_output=True,
        text=True,
        cwd=project_root,
    )
    if result.returncode != 0:
        raise TransformError(
            f"{name} failed: {result.stderr.strip() or 'exit ' + str(result.returncode)}",
            source=source,
        )
    return result.stdout
