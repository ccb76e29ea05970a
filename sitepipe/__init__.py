"""Sitepipe front-end asset pipeline.

This package compiles Pug templates, SCSS stylesheets and JavaScript, optimizes
images, builds an SVG sprite, copies fonts and serves the result with live reload.

The main entry point is the CLI module, which provides commands for one-shot
production builds and for the development server with file watching.

Architecture:
- Tasks declare which files flow into which ordered list of transform steps.
- Transform steps wrap third-party compilers and minifiers behind one protocol.
- The runner fans tasks out over a bounded thread pool.
- The watcher and dev server rerun tasks and reload browsers on change.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
