"""Transform steps for Sitepipe.

Each step is a plain function ``(assets, config) -> assets`` that wraps one
third-party tool. Steps never read or write the file system themselves; the
owning task does that around the chain.

Steps by task:
- html: render_pug, validate_html (production).
- styles: compile_sass, autoprefix, minify_css (production),
  write_source_maps (development).
- scripts: transpile_js, minify_js (production).
- images: optimize_images.
- sprite: minify_svg, strip_svg_paint, build_svg_sprite.
"""

from __future__ import annotations

import io
import posixpath
import xml.etree.ElementTree as ET
from pathlib import Path

import click
import html5lib
import rcssmin
import sass
from jinja2 import Environment, FileSystemLoader, TemplateSyntaxError, select_autoescape
from PIL import Image
from pypugjs.ext.jinja import PyPugJSExtension
from rjsmin import jsmin

from .assets import Asset
from .config import BuildConfig
from .errors import TransformError, ValidationError
from .executable_utils import run_node_tool

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"
ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)

_EDITOR_NAMESPACES = {
    "http://www.inkscape.org/namespaces/inkscape",
    "http://sodipodi.sourceforge.net/DTD/sodipodi-0.dtd",
    "http://ns.adobe.com/AdobeIllustrator/10.0/",
    "http://www.bohemiancoding.com/sketch/ns",
}
_PAINT_ATTRIBUTES = ("fill", "stroke", "style")
_MAX_REPORTED_ERRORS = 5


def _warn_missing_tool(message: str) -> None:
    click.echo(click.style(message, fg="yellow"), err=True)


# Markup


class PrettyPugExtension(PyPugJSExtension):
    options = {"pretty": True}


class PugEnvironment(Environment):
    """Jinja environment that resolves Pug ``extends``/``include`` like Pug does.

    Names starting with ``.`` are relative to the including template, names
    starting with ``/`` are relative to the template root, and anything else
    is looked up from the root as Jinja normally does.
    """

    def join_path(self, template: str, parent: str) -> str:
        if template.startswith("/"):
            return template.lstrip("/")
        if template.startswith("."):
            return posixpath.normpath(posixpath.join(posixpath.dirname(parent), template))
        return template


def render_pug(assets: list[Asset], config: BuildConfig) -> list[Asset]:
    """Compile Pug pages to HTML through Jinja2.

    Templates are loaded from ``<source>/pug``; pages may extend layouts and
    include partials by paths relative to themselves (``../layouts/base.pug``)
    or to that root. Output is pretty-printed. The ``production`` flag is
    available in the template context.

    Args:
        assets: Pug page assets.
        config: Build configuration.

    Returns:
        HTML assets with the ``.html`` suffix.
    """
    template_root = config.source_dir / "pug"
    env = PugEnvironment(
        loader=FileSystemLoader(str(template_root)),
        extensions=[PrettyPugExtension],
        autoescape=select_autoescape(["html", "pug"]),
    )
    rendered: list[Asset] = []
    for asset in assets:
        name = asset.source.relative_to(template_root).as_posix()
        try:
            html = env.get_template(name).render(production=config.production)
        except TemplateSyntaxError as exc:
            raise TransformError(
                f"Template syntax error on line {exc.lineno}: {exc.message}",
                source=asset.source,
                original_error=exc,
            ) from exc
        except Exception as exc:
            raise TransformError(
                f"{type(exc).__name__}: {exc}",
                source=asset.source,
                original_error=exc,
            ) from exc
        rendered.append(asset.with_text(html, path=asset.path.with_suffix(".html")))
    return rendered


def validate_html(assets: list[Asset], config: BuildConfig) -> list[Asset]:
    """Reject any HTML document with parse errors.

    Raises:
        ValidationError: For the first asset with errors, listing up to five.
    """
    for asset in assets:
        parser = html5lib.HTMLParser()
        parser.parse(asset.text)
        if not parser.errors:
            continue
        details = [
            f"line {line}, col {col}: {code}"
            for (line, col), code, _ in parser.errors[:_MAX_REPORTED_ERRORS]
        ]
        if len(parser.errors) > _MAX_REPORTED_ERRORS:
            details.append(f"... {len(parser.errors) - _MAX_REPORTED_ERRORS} more")
        raise ValidationError(
            "HTML validation error(s) found: " + "; ".join(details),
            source=asset.source,
        )
    return assets


# Styles


def compile_sass(assets: list[Asset], config: BuildConfig) -> list[Asset]:
    """Compile SCSS entry points to expanded CSS with a source map.

    The map is kept on the asset; ``write_source_maps`` decides whether it
    gets published.
    """
    compiled: list[Asset] = []
    for asset in assets:
        css_path = asset.source.with_suffix(".css")
        try:
            css, source_map = sass.compile(
                filename=str(asset.source),
                output_style="expanded",
                source_map_filename=f"{css_path}.map",
                output_filename_hint=str(css_path),
                omit_source_map_url=True,
                source_map_contents=True,
            )
        except sass.CompileError as exc:
            raise TransformError(str(exc).strip(), source=asset.source, original_error=exc) from exc
        compiled.append(
            asset.with_text(css, path=asset.path.with_suffix(".css"), source_map=source_map)
        )
    return compiled


def autoprefix(assets: list[Asset], config: BuildConfig) -> list[Asset]:
    """Add vendor prefixes with postcss and autoprefixer when installed."""
    prefixed: list[Asset] = []
    for asset in assets:
        output = run_node_tool(
            "postcss",
            ["--use", "autoprefixer", "--no-map"],
            asset.text,
            config.project_root,
            source=asset.source,
        )
        if output is None:
            _warn_missing_tool(
                "postcss CLI not found; skipping autoprefixer. "
                "Install with `npm install -D postcss postcss-cli autoprefixer`.",
            )
            return assets
        prefixed.append(asset.with_text(output))
    return prefixed


def minify_css(assets: list[Asset], config: BuildConfig) -> list[Asset]:
    return [
        asset.with_text(rcssmin.cssmin(asset.text), source_map=None) for asset in assets
    ]


def write_source_maps(assets: list[Asset], config: BuildConfig) -> list[Asset]:
    """Publish each asset's source map as a ``.map`` sidecar file."""
    published: list[Asset] = []
    for asset in assets:
        if not asset.source_map:
            published.append(asset)
            continue
        map_path = asset.path.with_name(asset.path.name + ".map")
        text = asset.text.rstrip("\n") + f"\n/*# sourceMappingURL={map_path.name} */\n"
        published.append(asset.with_text(text, source_map=None))
        published.append(
            Asset(path=map_path, contents=asset.source_map.encode("utf-8"), source=asset.source)
        )
    return published


# Scripts


def transpile_js(assets: list[Asset], config: BuildConfig) -> list[Asset]:
    """Transpile scripts with Babel's preset-env when Babel is installed.

    Without the ``babel`` executable the sources pass through unchanged.
    """
    transpiled: list[Asset] = []
    for asset in assets:
        output = run_node_tool(
            "babel",
            ["--presets", "@babel/preset-env", "--filename", str(asset.source)],
            asset.text,
            config.project_root,
            source=asset.source,
        )
        if output is None:
            _warn_missing_tool(
                "Babel CLI not found; copying scripts untranspiled. "
                "Install with `npm install -D @babel/core @babel/cli @babel/preset-env`.",
            )
            return assets
        transpiled.append(asset.with_text(output))
    return transpiled


def minify_js(assets: list[Asset], config: BuildConfig) -> list[Asset]:
    return [asset.with_text(jsmin(asset.text)) for asset in assets]


# Images


def optimize_images(assets: list[Asset], config: BuildConfig) -> list[Asset]:
    """Recompress raster images with Pillow and minify SVGs.

    JPEGs are re-encoded progressive at quality 85, PNGs and GIFs are saved
    with the optimizer on. The original bytes are kept when re-encoding does
    not make the file smaller.
    """
    optimized: list[Asset] = []
    for asset in assets:
        if asset.path.suffix.lower() == ".svg":
            optimized.append(_minify_svg_asset(asset))
            continue
        data = _optimize_raster(asset)
        if len(data) < len(asset.contents):
            optimized.append(Asset(path=asset.path, contents=data, source=asset.source))
        else:
            optimized.append(asset)
    return optimized


def _optimize_raster(asset: Asset) -> bytes:
    suffix = asset.path.suffix.lower()
    out = io.BytesIO()
    try:
        with Image.open(io.BytesIO(asset.contents)) as img:
            if suffix in (".jpg", ".jpeg"):
                if img.mode not in ("RGB", "L", "CMYK"):
                    img = img.convert("RGB")
                img.save(out, format="JPEG", quality=85, progressive=True, optimize=True)
            elif suffix == ".gif":
                animated = getattr(img, "n_frames", 1) > 1
                img.save(out, format="GIF", optimize=True, save_all=animated, interlace=True)
            else:
                img.save(out, format="PNG", optimize=True)
    except (OSError, ValueError) as exc:
        raise TransformError(
            f"Cannot optimize image: {exc}", source=asset.source, original_error=exc
        ) from exc
    return out.getvalue()


# SVG and sprite


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _namespace(tag: str) -> str:
    return tag[1:].split("}", 1)[0] if tag.startswith("{") else ""


def _parse_svg(asset: Asset) -> ET.Element:
    try:
        return ET.fromstring(asset.contents)
    except ET.ParseError as exc:
        raise TransformError(f"Invalid SVG: {exc}", source=asset.source, original_error=exc) from exc


def _clean_svg(element: ET.Element) -> None:
    """Drop metadata, editor namespaces and whitespace-only text, recursively."""
    for child in list(element):
        if _local_name(child.tag) == "metadata" or _namespace(child.tag) in _EDITOR_NAMESPACES:
            element.remove(child)
            continue
        _clean_svg(child)
    for attr in list(element.attrib):
        if _namespace(attr) in _EDITOR_NAMESPACES:
            del element.attrib[attr]
    if element.text is not None and not element.text.strip():
        element.text = None
    if element.tail is not None and not element.tail.strip():
        element.tail = None


def _minify_svg_asset(asset: Asset) -> Asset:
    root = _parse_svg(asset)
    _clean_svg(root)
    return asset.with_text(ET.tostring(root, encoding="unicode"))


def minify_svg(assets: list[Asset], config: BuildConfig) -> list[Asset]:
    """Remove metadata, editor cruft and insignificant whitespace. Keeps ids."""
    return [_minify_svg_asset(asset) for asset in assets]


def strip_svg_paint(assets: list[Asset], config: BuildConfig) -> list[Asset]:
    """Remove fill, stroke and style attributes so icons inherit CSS paint."""
    stripped: list[Asset] = []
    for asset in assets:
        root = _parse_svg(asset)
        for element in root.iter():
            for attr in _PAINT_ATTRIBUTES:
                element.attrib.pop(attr, None)
        stripped.append(asset.with_text(ET.tostring(root, encoding="unicode")))
    return stripped


def _view_box(root: ET.Element) -> str | None:
    if root.get("viewBox"):
        return root.get("viewBox")
    width = (root.get("width") or "").removesuffix("px")
    height = (root.get("height") or "").removesuffix("px")
    try:
        return f"0 0 {float(width):g} {float(height):g}"
    except ValueError:
        return None


def build_svg_sprite(assets: list[Asset], config: BuildConfig) -> list[Asset]:
    """Combine SVG icons into one ``sprite.svg`` of ``<symbol>`` elements.

    Each symbol's id is the icon's file stem, so pages reference icons with
    ``<use href="images/sprite/sprite.svg#name">``.

    Returns:
        A single generated asset, or an empty list when there are no icons.
    """
    if not assets:
        return []
    sprite = ET.Element(f"{{{SVG_NS}}}svg")
    for asset in sorted(assets, key=lambda a: a.path.as_posix()):
        root = _parse_svg(asset)
        symbol = ET.SubElement(sprite, f"{{{SVG_NS}}}symbol", id=asset.path.stem)
        view_box = _view_box(root)
        if view_box:
            symbol.set("viewBox", view_box)
        for child in list(root):
            symbol.append(child)
    text = '<?xml version="1.0" encoding="utf-8"?>' + ET.tostring(sprite, encoding="unicode")
    return [Asset(path=Path("sprite.svg"), contents=text.encode("utf-8"))]
