"""Content tasks for Sitepipe.

A task reads the files matched by its input PathSpec, passes them through an
ordered list of mode-gated transform steps, and writes the results under its
output directory. Tasks are built once at startup from the immutable
BuildConfig and hold no state between runs, so the watcher can rerun them at
any time.

Key objects:
- Step: A transform step with an optional mode predicate.
- Task: Reads, transforms and writes one kind of content.
- create_default_tasks: The html, styles, scripts, images, sprite and fonts tasks.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from . import transforms
from .assets import Asset
from .config import BuildConfig
from .errors import TransformError
from .paths import PathSpec
from .protocols import TransformStep


def production_only(config: BuildConfig) -> bool:
    return config.production


def development_only(config: BuildConfig) -> bool:
    return not config.production


@dataclass(frozen=True)
class Step:
    """A named transform step, skipped when its predicate is false."""

    name: str
    func: TransformStep | Callable[[list[Asset], BuildConfig], list[Asset]]
    when: Callable[[BuildConfig], bool] | None = None

    def enabled(self, config: BuildConfig) -> bool:
        return self.when is None or self.when(config)


@dataclass
class TaskResult:
    """Outcome of one task run.

    Attributes:
        task: Name of the task.
        files: Paths written by the run.
        error: The exception that failed the run, if any.
    """

    task: str
    files: list[Path] = field(default_factory=list)
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class Task:
    """One content stage of the pipeline.

    Attributes:
        name: Task name used in diagnostics and watch bindings.
        config: Immutable build configuration.
        inputs: Files to read, relative to the source directory.
        base: Directory (relative to the source directory) that output paths
            are computed from.
        output: Output directory relative to the build directory.
        steps: Ordered transform steps.
        watch: Files whose changes rerun the task. None disables watching.
    """

    name: str
    config: BuildConfig
    inputs: PathSpec
    base: str
    output: str
    steps: list[Step] = field(default_factory=list)
    watch: PathSpec | None = None

    @property
    def output_dir(self) -> Path:
        return self.config.build_dir / self.output

    def read(self) -> list[Asset]:
        """Load every input file as an Asset."""
        source_dir = self.config.source_dir
        base_dir = source_dir / self.base
        return [
            Asset(path=path.relative_to(base_dir), contents=path.read_bytes(), source=path)
            for path in self.inputs.resolve(source_dir)
        ]

    def transform(self, assets: list[Asset]) -> list[Asset]:
        """Apply the enabled steps in declared order.

        Raises:
            TransformError: If any step fails. The task name is attached.
        """
        for step in self.steps:
            if not step.enabled(self.config):
                continue
            try:
                assets = step.func(assets, self.config)
            except TransformError as exc:
                exc.task = self.name
                raise
            except OSError:
                raise
            except Exception as exc:
                raise TransformError(
                    f"{step.name}: {type(exc).__name__}: {exc}",
                    task=self.name,
                    original_error=exc,
                ) from exc
        return assets

    def write(self, assets: list[Asset]) -> list[Path]:
        written: list[Path] = []
        for asset in assets:
            dest = self.output_dir / asset.path
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(asset.contents)
            written.append(dest)
        return written

    def run(self) -> list[Path]:
        """Read, transform and write. Nothing is written if a step fails."""
        return self.write(self.transform(self.read()))


def create_default_tasks(config: BuildConfig) -> list[Task]:
    """Create the six content tasks for the default source layout.

    Args:
        config: Immutable build configuration.

    Returns:
        Tasks in declaration order: html, styles, scripts, images, sprite, fonts.
    """
    image_spec = PathSpec.of(
        "images/**/*.{jpg,jpeg,gif,png,svg}", exclude=["images/sprite/*"]
    )
    sprite_spec = PathSpec.of("images/sprite/*.svg")
    return [
        Task(
            name="html",
            config=config,
            inputs=PathSpec.of("pug/pages/*.pug"),
            base="pug/pages",
            output=".",
            steps=[
                Step("render_pug", transforms.render_pug),
                Step("validate_html", transforms.validate_html, production_only),
            ],
            watch=PathSpec.of("pug/**/*.pug"),
        ),
        Task(
            name="styles",
            config=config,
            inputs=PathSpec.of("styles/style.scss"),
            base="styles",
            output="css",
            steps=[
                Step("compile_sass", transforms.compile_sass),
                Step("autoprefix", transforms.autoprefix),
                Step("minify_css", transforms.minify_css, production_only),
                Step("write_source_maps", transforms.write_source_maps, development_only),
            ],
            watch=PathSpec.of("styles/**/*.scss"),
        ),
        Task(
            name="scripts",
            config=config,
            inputs=PathSpec.of("js/main.js"),
            base="js",
            output="js",
            steps=[
                Step("transpile_js", transforms.transpile_js),
                Step("minify_js", transforms.minify_js, production_only),
            ],
            watch=PathSpec.of("js/**/*.js"),
        ),
        Task(
            name="images",
            config=config,
            inputs=image_spec,
            base="images",
            output="images",
            steps=[Step("optimize_images", transforms.optimize_images)],
            watch=image_spec,
        ),
        Task(
            name="sprite",
            config=config,
            inputs=sprite_spec,
            base="images/sprite",
            output="images/sprite",
            steps=[
                Step("minify_svg", transforms.minify_svg),
                Step("strip_svg_paint", transforms.strip_svg_paint),
                Step("build_svg_sprite", transforms.build_svg_sprite),
            ],
            watch=sprite_spec,
        ),
        Task(
            name="fonts",
            config=config,
            inputs=PathSpec.of("fonts/**/*.*", exclude=["**/.*"]),
            base="fonts",
            output="fonts",
        ),
    ]
