"""In-flight file representation for Sitepipe.

An Asset is what transform steps consume and produce: an output-relative path,
the file contents, and the source file it came from. Steps never touch the
file system; they return new Assets instead.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path


@dataclass(frozen=True)
class Asset:
    """A file moving through a task's steps.

    Attributes:
        path: Output path relative to the task's output directory.
        contents: File contents.
        source: Input file this asset came from, or None for generated files.
        source_map: Source map text produced by a compiler, if any.
    """

    path: Path
    contents: bytes
    source: Path | None = None
    source_map: str | None = None

    @property
    def text(self) -> str:
        return self.contents.decode("utf-8")

    def with_text(self, text: str, **changes) -> Asset:
        return replace(self, contents=text.encode("utf-8"), **changes)
