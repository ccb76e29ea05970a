"""Protocol definitions for Sitepipe.

This module defines the interfaces the task graph depends on, so that
third-party transformations stay pluggable and tests can substitute fakes.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .assets import Asset
    from .config import BuildConfig


@runtime_checkable
class TransformStep(Protocol):
    """Protocol for one transformation over a task's assets.

    Implementations wrap a single external compiler, validator or minifier.
    A step must not touch the file system; the task reads inputs and writes
    outputs around the chain of steps.
    """

    @abstractmethod
    def __call__(self, assets: list[Asset], config: BuildConfig) -> list[Asset]:
        """Transform a list of assets.

        Args:
            assets: Assets produced by the previous step.
            config: Immutable build configuration, including the mode.

        Returns:
            The transformed assets, in output order.

        Raises:
            TransformError: If the underlying tool rejects an input.
        """
        ...

