"""Test list parsing and generation."""

from __future__ import annotations

import pytest

from richmsg.ast import (
    CustomMarker,
    List,
    ListItem,
    ListStyle,
    Text,
    bold,
    bullet_list,
    group,
    item,
    marker_list,
    numbered_list,
)
from richmsg.dialects import Dialect
from richmsg.errors import UnsupportedElement
from richmsg.generator import generate

from tests.conftest import assert_round_trip

MD = Dialect.MARKDOWN
V2 = Dialect.MARKDOWN_V2
HTML = Dialect.HTML
PLAIN = Dialect.PLAIN


class TestBuilders:
    def test_strings_become_items(self):
        lst = bullet_list("a", "b")
        assert lst.items == (ListItem((Text("a"),)), ListItem((Text("b"),)))
        assert lst.style is ListStyle.BULLET

    def test_item_with_nested(self):
        entry = item("a", bold("b"), nested=numbered_list("c"))
        assert entry.content == (Text("a"), bold("b"))
        assert entry.nested == numbered_list("c")

    def test_marker_list(self):
        assert marker_list("→", "a").style == CustomMarker("→")


class TestGenerate:
    def test_numbered_markdown(self):
        out = generate(MD, numbered_list("Step one", "Step two"))
        assert out == "1. Step one\n2. Step two"

    def test_bullet_markdown(self):
        assert generate(MD, bullet_list("a", "b")) == "- a\n- b"

    def test_nested_markdown(self):
        lst = bullet_list(item("a", nested=bullet_list("b")), "c")
        assert generate(MD, lst) == "- a\n  - b\n- c"

    def test_bullet_v2(self):
        assert generate(V2, bullet_list("a", "b")) == "• a\n• b"

    def test_numbered_v2_escapes_marker(self):
        assert generate(V2, numbered_list("a")) == r"1\. a"

    def test_plain(self):
        assert generate(PLAIN, numbered_list("a", "b")) == "1. a\n2. b"

    def test_html_bullet(self):
        assert generate(HTML, bullet_list("a")) == "<ul>\n<li>a</li>\n</ul>"

    def test_html_numbered_nested(self):
        lst = numbered_list(item("a", nested=bullet_list("b")))
        assert generate(HTML, lst) == "<ol>\n<li>a<ul>\n<li>b</li>\n</ul></li>\n</ol>"

    def test_html_custom_marker(self):
        out = generate(HTML, marker_list("→", "a"))
        assert out == '<ul data-marker="→">\n<li>a</li>\n</ul>'

    def test_item_content_is_escaped(self):
        assert generate(MD, bullet_list("1.5")) == r"- 1\.5"

    def test_list_inside_item_content_unsupported(self):
        lst = bullet_list(item(bullet_list("x")))
        with pytest.raises(UnsupportedElement):
            generate(MD, lst)

    @pytest.mark.parametrize("marker", ["*", "+", "->", "x"])
    def test_markdown_marker_must_be_a_glyph(self, marker):
        with pytest.raises(UnsupportedElement, match="cannot be read back as a list marker"):
            generate(MD, marker_list(marker, "a"))

    def test_markdown_glyph_marker_unescaped(self):
        assert generate(MD, marker_list("▸", "a")) == "▸ a"

    def test_v2_marker_escaped(self):
        assert generate(V2, marker_list("+", "a")) == r"\+ a"

    def test_markdown_list_must_end_line(self):
        with pytest.raises(UnsupportedElement, match="must start and end a line"):
            generate(MD, group(bullet_list("a"), Text("b")))

    def test_markdown_list_inside_bold_unsupported(self):
        with pytest.raises(UnsupportedElement, match="inline formatting"):
            generate(MD, bold(bullet_list("a")))


class TestParse:
    def test_markdown_bullet(self, parse_source):
        nodes = parse_source("- a\n- b", MD)
        assert nodes == (bullet_list("a", "b"),)

    def test_markdown_numbered(self, parse_source):
        nodes = parse_source("1. a\n2. **b**", MD)
        assert nodes == (numbered_list("a", item(bold("b"))),)

    def test_style_change_starts_new_list(self, parse_source):
        nodes = parse_source("- a\n1. b", MD)
        assert nodes == (bullet_list("a"), Text("\n"), numbered_list("b"))

    def test_markdown_nested(self, parse_source):
        nodes = parse_source("- a\n  - b\n- c", MD)
        assert nodes == (bullet_list(item("a", nested=bullet_list("b")), "c"),)

    def test_markdown_custom_marker(self, parse_source):
        nodes = parse_source("▸ a\n▸ b", MD)
        assert nodes == (marker_list("▸", "a", "b"),)

    def test_text_after_list(self, parse_source):
        nodes = parse_source("- a\n\nafter", MD)
        assert nodes == (bullet_list("a"), Text("\n\nafter"))

    def test_html_list(self, parse_source):
        nodes = parse_source("<ul>\n  <li>a</li>\n  <li>b</li>\n</ul>", HTML)
        assert nodes == (bullet_list("a", "b"),)

    def test_html_nested(self, parse_source):
        nodes = parse_source("<ol><li>a</li><li>b<ul><li>c</li></ul></li></ol>", HTML)
        assert nodes == (numbered_list("a", item("b", nested=bullet_list("c"))),)

    def test_html_marker(self, parse_source):
        nodes = parse_source('<ul data-marker="»"><li>a</li></ul>', HTML)
        assert nodes == (List((ListItem((Text("a"),)),), CustomMarker("»")),)


class TestRoundTrip:
    @pytest.mark.parametrize("dialect", [MD, HTML])
    def test_nested_lists(self, dialect):
        tree = group(
            numbered_list(
                item("first", nested=bullet_list("x", item("y", nested=bullet_list("z")))),
                item("second ", bold("bold")),
            )
        )
        assert_round_trip(dialect, tree)

    @pytest.mark.parametrize("dialect", [MD, HTML])
    def test_custom_marker(self, dialect):
        assert_round_trip(dialect, group(marker_list("→", "a", "b")))

    @pytest.mark.parametrize("marker", ["▸", "●", "»"])
    def test_markdown_glyph_markers(self, marker):
        assert_round_trip(MD, group(marker_list(marker, "a")))

    def test_list_followed_by_line(self):
        assert_round_trip(MD, group(bullet_list("a"), Text("\nb")))
