"""Command-line interface for Sitepipe.

This module defines the CLI commands using Click framework.
Running ``sitepipe`` with no command is the same as ``sitepipe serve``.

Commands:
- build: Clean the build directory and run every task once.
- serve: Build, serve with live reload, and rerun tasks on change.
- clean: Delete the build directory.

The ``--prod`` flag selects production mode (markup validation, minification,
no source maps). It is accepted before or after the command name.
"""

from __future__ import annotations

from pathlib import Path

import click

from . import __version__
from .config import load_config
from .errors import PipelineError, SitepipeError

_PROD_HELP = "Production mode: validate markup, minify, skip source maps"


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="sitepipe")
@click.option("--prod", is_flag=True, help=_PROD_HELP)
@click.pass_context
def cli(ctx: click.Context, prod: bool):
    """Sitepipe front-end asset pipeline."""
    ctx.ensure_object(dict)
    ctx.obj["prod"] = prod
    if ctx.invoked_subcommand is None:
        ctx.invoke(serve)


def _production(ctx: click.Context, prod: bool) -> bool:
    return prod or bool((ctx.obj or {}).get("prod"))


def _report_failures(exc: PipelineError, project_root: Path) -> None:
    from .runner import describe_error

    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    for failure in exc.failures:
        click.echo(click.style(f"  Task: {failure.task}", fg="yellow"), err=True)
        click.echo(
            click.style(f"  Error: {describe_error(failure.error, project_root)}", fg="white"),
            err=True,
        )


@cli.command()
@click.option("--prod", is_flag=True, help=_PROD_HELP)
@click.pass_context
def build(ctx: click.Context, prod: bool):
    """Clean the build directory and run every task once."""
    project_root = Path.cwd()
    from .build import build_site

    config = load_config(project_root, production=_production(ctx, prod))
    click.echo(f"Building {config.mode} assets into {config.build_dir}")
    try:
        result = build_site(config)
    except PipelineError as exc:
        _report_failures(exc, project_root)
        raise SystemExit(1) from None
    except SitepipeError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Built {len(result.files)} files into {result.build_dir}")


@cli.command()
@click.option("--prod", is_flag=True, help=_PROD_HELP)
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides sitepipe.yaml)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (overrides sitepipe.yaml ws_port)",
)
@click.pass_context
def serve(ctx: click.Context, prod: bool, port: int | None, ws_port: int | None):
    """Build, then serve with live reload and rebuild on change."""
    project_root = Path.cwd()
    from .server import DevServer

    config = load_config(
        project_root, production=_production(ctx, prod), port=port, ws_port=ws_port
    )
    server = DevServer(config)
    try:
        server.start()
    except PipelineError as exc:
        _report_failures(exc, project_root)
        raise SystemExit(1) from None


@cli.command()
def clean():
    """Delete the build directory."""
    project_root = Path.cwd()
    from .build import clean as clean_build_dir

    config = load_config(project_root)
    try:
        clean_build_dir(config.build_dir, config)
    except SitepipeError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Removed {config.build_dir}")


def main():
    """Entry point for the CLI application."""
    cli()
