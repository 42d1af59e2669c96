import asyncio
from datetime import datetime
from pathlib import Path

import pytest

from sia.api import PluginAPI
from sia.config import normalize_config
from sia.content import (
    ContentItem,
    ContentLoader,
    expand_date_path,
    extract_excerpt,
    get_base_path,
    get_date_from_filename,
    get_markdown_files,
    get_slug_from_filename,
    normalize_tags,
    parse_content,
    parse_date,
    parse_flag,
    split_front_matter,
    truncate_markdown_safely,
)
from sia.errors import ConfigError, ContentParseError, HookExecutionError
from sia.hooks import HookDispatcher, HookName, HookRegistry


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def parse(path: Path, config=None, registry=None) -> ContentItem:
    config = config or normalize_config({}, path.parent)
    dispatcher = HookDispatcher(registry or HookRegistry())
    return asyncio.run(
        parse_content(path, config=config, dispatcher=dispatcher, api=PluginAPI(config))
    )


def test_split_front_matter():
    data, body = split_front_matter("---\ntitle: Hi\ntags: [a]\n---\nBody\n")
    assert data == {"title": "Hi", "tags": ["a"]}
    assert body == "Body\n"

    assert split_front_matter("No front matter") == ({}, "No front matter")
    assert split_front_matter("---\n---\nBody") == ({}, "Body")


def test_split_front_matter_invalid():
    with pytest.raises(ContentParseError):
        split_front_matter("---\ntitle: [unclosed\n---\nBody")
    with pytest.raises(ContentParseError, match="mapping"):
        split_front_matter("---\n- a\n- b\n---\nBody")


def test_slug_and_date_from_folder_index():
    path = Path("posts/2024-12-17-my-post/index.md")
    assert get_slug_from_filename(path) == "my-post"
    assert get_date_from_filename(path) == datetime(2024, 12, 17)


def test_slug_from_plain_filename():
    assert get_slug_from_filename(Path("pages/About Us.md")) == "about-us"
    assert get_date_from_filename(Path("pages/about.md")) is None


def test_slug_from_punctuation_only_filename():
    assert get_slug_from_filename(Path("pages/!!!.md")) == "index"


def test_path_templates():
    assert get_base_path("posts/:year/:month") == "posts/"
    assert get_base_path("notes") == "notes"
    assert expand_date_path("posts/:year/:month/:day", datetime(2024, 5, 6)) == "posts/2024/05/06"


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-03-01", datetime(2024, 3, 1)),
        ("2024-03-01T10:30:00", datetime(2024, 3, 1, 10, 30)),
        ("March 1, 2024", datetime(2024, 3, 1)),
        ("2024/03/01", datetime(2024, 3, 1)),
    ],
)
def test_parse_date_strings(value, expected):
    assert parse_date(value) == expected


def test_parse_date_rejects_garbage():
    with pytest.raises(ContentParseError):
        parse_date("next tuesday")
    with pytest.raises(ContentParseError):
        parse_date("2024-02-30")


def test_normalize_tags():
    assert normalize_tags("python, web , ,css") == ["python", "web", "css"]
    assert normalize_tags(["a", None, 3]) == ["a", "3"]
    assert normalize_tags(None) == []


def test_extract_excerpt_skips_headings():
    body = "# Title\n\nFirst paragraph here.\n\nSecond paragraph."
    assert extract_excerpt(body) == "First paragraph here."
    assert extract_excerpt("") == ""


def test_truncate_keeps_links_whole():
    text = "word " * 38 + "[a link](https://example.com/path) trailing text goes on"
    result = truncate_markdown_safely(text, 200)
    assert result.endswith("...")
    assert "[a link](https://example.com/path)" in result


def test_truncate_short_text_unchanged():
    assert truncate_markdown_safely("short", 200) == "short"


def test_truncate_snaps_to_word_boundary():
    text = "abcdefghi " * 30
    result = truncate_markdown_safely(text, 200)
    assert result.endswith("abcdefghi...")
    assert len(result) <= 203


def test_parse_content_resolves_metadata(tmp_path):
    path = write(
        tmp_path / "posts" / "2024-12-17-my-post" / "index.md",
        "---\ntags: python, web\n---\n# Heading\n\nHello **world**.\n",
    )
    item = parse(path)

    assert item.slug == "my-post"
    assert item.date == datetime(2024, 12, 17)
    assert item.title == "My Post"
    assert item.tags == ["python", "web"]
    assert item.excerpt == "Hello **world**."
    assert item.excerpt_html == "Hello <strong>world</strong>."
    assert '<h1 id="heading">Heading</h1>' in item.content
    assert item.raw_content.startswith("# Heading")
    assert item["title"] == "My Post"


def test_parse_content_front_matter_wins(tmp_path):
    path = write(
        tmp_path / "2024-12-17-my-post.md",
        "---\nslug: custom\ndate: 2023-01-02\ntitle: Custom\nexcerpt: Short\nauthor: Ann\n---\nBody",
    )
    item = parse(path)
    assert (item.slug, item.date, item.title, item.excerpt) == (
        "custom",
        datetime(2023, 1, 2),
        "Custom",
        "Short",
    )
    assert item.get("author") == "Ann"
    assert "author" in item


def test_parse_content_runs_content_hooks_in_order(tmp_path):
    path = write(tmp_path / "note.md", "---\ntitle: T\n---\nbody text")
    registry = HookRegistry()
    seen = []

    def before_parse(raw, ctx):
        seen.append(("before_content_parse", ctx["file_path"]))
        return raw.replace("body", "changed")

    def before_markdown(body, ctx):
        seen.append(("before_markdown", ctx["front_matter"]["title"]))
        return body + "\n\nextra"

    async def after_markdown(html, ctx):
        seen.append(("after_markdown", None))
        return html + "<footer></footer>"

    def after_parse(item, ctx):
        seen.append(("after_content_parse", item.slug))
        item.front_matter["touched"] = True
        return item

    registry.register(HookName.BEFORE_CONTENT_PARSE, "p", before_parse)
    registry.register(HookName.BEFORE_MARKDOWN, "p", before_markdown)
    registry.register(HookName.AFTER_MARKDOWN, "p", after_markdown)
    registry.register(HookName.AFTER_CONTENT_PARSE, "p", after_parse)

    item = parse(path, registry=registry)

    assert [name for name, _ in seen] == [
        "before_content_parse",
        "before_markdown",
        "after_markdown",
        "after_content_parse",
    ]
    assert seen[0][1] == path
    assert seen[1][1] == "T"
    assert "changed text" in item.content
    assert "<p>extra</p>" in item.content
    assert item.content.endswith("<footer></footer>")
    assert item.get("touched") is True


def test_parse_content_requires_item_from_after_parse(tmp_path):
    path = write(tmp_path / "note.md", "body")
    registry = HookRegistry()
    registry.register(HookName.AFTER_CONTENT_PARSE, "p", lambda item, ctx: "oops")
    with pytest.raises(ContentParseError):
        parse(path, registry=registry)


def test_get_markdown_files(tmp_path):
    write(tmp_path / "b.md", "b")
    write(tmp_path / "sub" / "a.markdown", "a")
    write(tmp_path / "image.png", "x")
    assert get_markdown_files(tmp_path) == [tmp_path / "b.md", tmp_path / "sub" / "a.markdown"]
    assert get_markdown_files(tmp_path / "missing") == []


def make_loader(tmp_path, registry=None, strict=False):
    config = normalize_config({}, tmp_path)
    dispatcher = HookDispatcher(registry or HookRegistry(), strict=strict)
    return ContentLoader(config, dispatcher, PluginAPI(config))


def test_loader_drops_files_that_fail(tmp_path, caplog):
    write(tmp_path / "src" / "posts" / "good.md", "---\ntitle: Good\n---\nok")
    write(tmp_path / "src" / "posts" / "bad.md", "---\ntitle: [oops\n---\nbroken")
    loader = make_loader(tmp_path)

    items = asyncio.run(
        loader.load_collection("posts", {"path": "posts/:year"}, tmp_path / "src")
    )
    assert [item.title for item in items] == ["Good"]
    assert "bad.md" in caplog.text


def test_loader_rejects_collection_without_path(tmp_path):
    loader = make_loader(tmp_path)
    with pytest.raises(ConfigError):
        asyncio.run(loader.load_collection("posts", {"layout": "post"}, tmp_path))
    with pytest.raises(ConfigError):
        asyncio.run(loader.load_collection("posts", "posts", tmp_path))


def test_loader_strict_hook_failure_propagates(tmp_path):
    write(tmp_path / "posts" / "a.md", "text")
    registry = HookRegistry()

    def broken(raw, ctx):
        raise RuntimeError("nope")

    registry.register(HookName.BEFORE_CONTENT_PARSE, "bad", broken)
    loader = make_loader(tmp_path, registry, strict=True)
    with pytest.raises(HookExecutionError):
        asyncio.run(loader.load_collection("posts", {"path": "posts"}, tmp_path))


@pytest.mark.parametrize(
    "value, expected",
    [('"false"', False), ("'no'", False), ('"true"', True), ("yes", True), ("false", False), ('"Off"', False)],
)
def test_draft_flag_accepts_quoted_booleans(tmp_path, value, expected):
    path = write(tmp_path / "post.md", f"---\ndraft: {value}\n---\nBody")
    assert parse(path).draft is expected


def test_parse_flag():
    assert parse_flag(" TRUE ")
    assert not parse_flag("0")
    assert not parse_flag(None)
    assert parse_flag(1)
