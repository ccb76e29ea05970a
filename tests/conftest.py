from pathlib import Path

import pytest

from sitepipe.config import load_config

VALID_PUG = """doctype html
html(lang="en")
  head
    title Test
  body
    h1 Hello
"""

# No doctype: html5lib reports expected-doctype-but-got-start-tag.
INVALID_PUG = """html
  body
    h1 Broken
"""

SCSS = """$color: #333;

body {
  color: $color;
  margin: 0 auto;
}

.nav {
  .item {
    padding: 4px;
  }
}
"""

ICON_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 10 10">'
    '<path d="M0 0h10v10H0z" fill="red" style="stroke:blue"/></svg>'
)


def create_project(root: Path, pug: str = VALID_PUG) -> Path:
    src = root / "src"
    (src / "pug" / "pages").mkdir(parents=True)
    (src / "pug" / "partials").mkdir()
    (src / "styles").mkdir()
    (src / "js").mkdir()
    (src / "images" / "sprite").mkdir(parents=True)
    (src / "fonts").mkdir()

    (src / "pug" / "pages" / "index.pug").write_text(pug, encoding="utf-8")
    (src / "pug" / "partials" / "nav.pug").write_text("nav\n  a(href='/') Home\n", encoding="utf-8")
    (src / "styles" / "style.scss").write_text(SCSS, encoding="utf-8")
    (src / "js" / "main.js").write_text(
        "// entry\nconst greet = (name) => {\n  return 'hi ' + name;\n};\n",
        encoding="utf-8",
    )
    (src / "images" / "sprite" / "icon.svg").write_text(ICON_SVG, encoding="utf-8")
    (src / "fonts" / "body.woff2").write_bytes(b"wOF2fake-font")

    from PIL import Image

    img = Image.new("RGB", (4, 4), color="red")
    img.save(src / "images" / "logo.png")
    return root


@pytest.fixture(autouse=True)
def no_node_tools(monkeypatch):
    """Keep tests independent of any babel/postcss installed on the machine."""
    monkeypatch.setattr(
        "sitepipe.executable_utils.find_executable",
        lambda name, project_root=None: None,
    )


@pytest.fixture
def project(tmp_path):
    return create_project(tmp_path)


@pytest.fixture
def dev_config(project):
    return load_config(project)


@pytest.fixture
def prod_config(project):
    return load_config(project, production=True)
