"""Glob pattern sets for Sitepipe.

A PathSpec is an ordered set of include and exclude glob patterns, resolved
against a source root. The same PathSpec serves as task input (``resolve``) and
as watch trigger (``matches``). Exclusion is evaluated after inclusion and
always wins.

Supported syntax:
    ``*`` matches within one path segment, ``?`` matches one character,
    ``**`` matches any number of segments and ``{a,b}`` expands to alternatives.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

_BRACE_RE = re.compile(r"\{([^{}]*)\}")


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives into separate patterns.

    Examples:
        >>> expand_braces("images/*.{png,jpg}")
        ['images/*.png', 'images/*.jpg']
    """
    match = _BRACE_RE.search(pattern)
    if not match:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(f"{head}{option}{tail}"))
    return expanded


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a brace-free glob into a regex over POSIX relative paths."""
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
            continue
        if pattern.startswith("**", i):
            parts.append(".*")
            i += 2
            continue
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(char))
        i += 1
    return re.compile("".join(parts))


def _compile(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    return [glob_to_regex(p) for pattern in patterns for p in expand_braces(pattern)]


@dataclass(frozen=True)
class PathSpec:
    """Include/exclude glob pattern set relative to a source root.

    Attributes:
        include: Patterns a path must match at least one of.
        exclude: Patterns that remove a path even when it is included.
    """

    include: tuple[str, ...]
    exclude: tuple[str, ...] = ()
    _include_re: list[re.Pattern[str]] = field(init=False, repr=False, compare=False)
    _exclude_re: list[re.Pattern[str]] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_include_re", _compile(self.include))
        object.__setattr__(self, "_exclude_re", _compile(self.exclude))

    @classmethod
    def of(cls, *include: str, exclude: Iterable[str] = ()) -> PathSpec:
        return cls(tuple(include), tuple(exclude))

    def matches_relative(self, rel: str) -> bool:
        """Check a POSIX path relative to the source root."""
        if not any(regex.fullmatch(rel) for regex in self._include_re):
            return False
        return not any(regex.fullmatch(rel) for regex in self._exclude_re)

    def matches(self, path: Path, root: Path) -> bool:
        """Check whether a path (existing or not) belongs to this spec.

        Args:
            path: Absolute or root-relative path to test.
            root: Source root the patterns are relative to.

        Returns:
            True if the path is included and not excluded.
        """
        try:
            rel = path.relative_to(root) if path.is_absolute() else path
        except ValueError:
            return False
        return self.matches_relative(rel.as_posix())

    def resolve(self, root: Path) -> list[Path]:
        """List existing files under root that belong to this spec.

        Args:
            root: Source root the patterns are relative to.

        Returns:
            Sorted list of absolute file paths.
        """
        if not root.exists():
            return []
        found: set[Path] = set()
        for pattern in self.include:
            for expanded in expand_braces(pattern):
                for path in root.glob(expanded):
                    rel = path.relative_to(root).as_posix()
                    if path.is_file() and self.matches_relative(rel):
                        found.add(path)
        return sorted(found)
