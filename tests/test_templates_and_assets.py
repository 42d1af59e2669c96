from datetime import datetime
from pathlib import Path

import pytest
from jinja2 import TemplateNotFound

from sia.assets import AssetPipeline
from sia.config import normalize_config
from sia.content import ContentItem
from sia.templates import TemplateEngine, TemplateRenderer


def make_engine(tmp_path, **overrides):
    return TemplateEngine(normalize_config(overrides, tmp_path))


def test_engine_satisfies_protocol(tmp_path):
    assert isinstance(make_engine(tmp_path), TemplateRenderer)


def test_project_layouts_take_precedence(tmp_path):
    layouts = tmp_path / "_layouts"
    layouts.mkdir()
    (layouts / "post.html.jinja").write_text("POST {{ page.title }}", encoding="utf-8")
    engine = make_engine(tmp_path)

    assert engine.render("post", {"page": {"title": "Hi"}}) == "POST Hi"


def test_missing_layout_falls_back_to_default(tmp_path):
    engine = make_engine(tmp_path)
    html = engine.render(
        "nope", {"page": {"title": "Hi"}, "content": "<p>x</p>", "site": {"title": "S"}, "title": "Hi"}
    )
    assert "<h1>Hi</h1>" in html
    assert "<p>x</p>" in html


def test_missing_default_raises(tmp_path):
    engine = make_engine(tmp_path)
    engine.env.loader.loaders.pop()
    with pytest.raises(TemplateNotFound):
        engine.render("default", {})


def test_url_for_and_filters(tmp_path):
    layouts = tmp_path / "_layouts"
    layouts.mkdir()
    (layouts / "links.html").write_text(
        "{{ url_for('/about/') }}|{{ url_for('https://x.org') }}|{{ '*hi*' | markdown_inline }}",
        encoding="utf-8",
    )
    engine = make_engine(tmp_path, site={"base_path": "/docs/"})
    assert engine.render("links", {}) == "/docs/about/|https://x.org|<em>hi</em>"


def test_pygments_css_global(tmp_path):
    layouts = tmp_path / "_layouts"
    layouts.mkdir()
    (layouts / "css.html").write_text("{{ pygments_css() }}", encoding="utf-8")
    assert ".highlight" in make_engine(tmp_path).render("css", {})


def test_asset_pipeline_copies_static_and_colocated_files(tmp_path):
    config = normalize_config({}, tmp_path)
    static = tmp_path / "static" / "css"
    static.mkdir(parents=True)
    (static / "site.css").write_text("body{}", encoding="utf-8")

    post_dir = tmp_path / "src" / "posts" / "2024-01-01-cats"
    post_dir.mkdir(parents=True)
    (post_dir / "index.md").write_text("x", encoding="utf-8")
    (post_dir / "cat.png").write_bytes(b"png")
    loose = tmp_path / "src" / "posts" / "loose.md"
    loose.write_text("x", encoding="utf-8")

    output = config["output_dir"]
    owned = ContentItem(
        file_path=post_dir / "index.md",
        slug="cats",
        date=datetime(2024, 1, 1),
        output_path=output / "blog" / "cats" / "index.html",
    )
    plain = ContentItem(
        file_path=loose,
        slug="loose",
        date=datetime(2024, 1, 1),
        output_path=output / "blog" / "loose" / "index.html",
    )

    copied = AssetPipeline(config).run([owned, plain])

    assert copied == 2
    assert (output / "css" / "site.css").read_text(encoding="utf-8") == "body{}"
    assert (output / "blog" / "cats" / "cat.png").read_bytes() == b"png"
    assert not (output / "blog" / "cats" / "index.md").exists()
    assert not (output / "blog" / "loose").exists()


def test_asset_pipeline_without_static_dir(tmp_path):
    assert AssetPipeline(normalize_config({}, tmp_path)).copy_static() == 0
