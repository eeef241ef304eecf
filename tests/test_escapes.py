"""Test per-dialect escaping of text, code, and urls."""

from __future__ import annotations

import pytest

from richmsg.ast import Group, Text
from richmsg.dialects import (
    Dialect,
    dialect_for_path,
    escape_attr,
    escape_code,
    escape_text,
    escape_url,
)
from richmsg.parser import parse

MD = Dialect.MARKDOWN
V2 = Dialect.MARKDOWN_V2
HTML = Dialect.HTML

TRICKY = "Price: 5*3 = 15! (approx) [note] #1 @ home_x ~a~ |b| `c` > d {e} 1.5-2 \\ end"


class TestDialectNames:
    @pytest.mark.parametrize(
        ("name", "dialect"),
        [
            ("plain", Dialect.PLAIN),
            ("TEXT", Dialect.PLAIN),
            ("md", MD),
            ("MarkdownV2", V2),
            ("markdown-v2", V2),
            ("mdv2", V2),
            ("html", HTML),
        ],
    )
    def test_aliases(self, name, dialect):
        assert Dialect.from_name(name) is dialect

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="unknown dialect 'bbcode'"):
            Dialect.from_name("bbcode")

    def test_is_markdown(self):
        assert MD.is_markdown and V2.is_markdown
        assert not HTML.is_markdown

    @pytest.mark.parametrize(
        ("path", "dialect"),
        [
            ("msg.md", MD),
            ("dir/msg.MDV2", V2),
            ("msg.tgmd", V2),
            ("page.htm", HTML),
            ("notes.txt", Dialect.PLAIN),
            ("README", None),
            (".md", None),
            ("msg.json", None),
        ],
    )
    def test_dialect_for_path(self, path, dialect):
        assert dialect_for_path(path) is dialect


class TestEscapeTextV2:
    def test_reserved_characters(self):
        assert escape_text(V2, "a_b*c") == r"a\_b\*c"

    def test_every_reserved_character(self):
        for ch in "_*[]()~`>#+-=|{}.!\\":
            assert escape_text(V2, ch) == "\\" + ch

    def test_letters_untouched(self):
        assert escape_text(V2, "hello world") == "hello world"

    def test_entity_prefixes(self):
        assert escape_text(V2, "@user") == r"\@user"
        assert escape_text(V2, "/start") == r"\/start"

    def test_lone_at_untouched(self):
        assert escape_text(V2, "a @ b") == "a @ b"

    def test_url_colon(self):
        assert escape_text(V2, "http://x") == r"http\:/\/x"

    def test_emoji(self):
        assert escape_text(V2, "ok \U0001f44d") == "ok \\\U0001f44d"

    def test_lone_carriage_return(self):
        assert escape_text(V2, "a\rb\r\nc") == "a\\\rb\r\nc"


class TestEscapeTextMarkdown:
    def test_reserved_characters(self):
        assert escape_text(MD, "**x**") == r"\*\*x\*\*"

    def test_equals_not_reserved(self):
        assert escape_text(MD, "a=b") == "a=b"

    def test_mention(self):
        assert escape_text(MD, "@bob") == r"\@bob"

    def test_list_glyph_at_line_start(self):
        assert escape_text(MD, "▸ a\n  ▸ b") == "\\▸ a\n  \\▸ b"

    def test_list_glyph_inside_line_untouched(self):
        assert escape_text(MD, "a ▸ b") == "a ▸ b"


class TestEscapeTextHtml:
    def test_markup_characters(self):
        assert escape_text(HTML, '<b> & "q"') == "&lt;b&gt; &amp; &quot;q&quot;"

    def test_markdown_characters_untouched(self):
        assert escape_text(HTML, "*_~") == "*_~"

    def test_entities_as_numeric_references(self):
        assert escape_text(HTML, "@bob #tag /cmd") == "&#64;bob &#35;tag &#47;cmd"

    def test_url_colon(self):
        assert escape_text(HTML, "https://a") == "https&#58;/&#47;a"

    def test_emoji_as_numeric_reference(self):
        assert escape_text(HTML, "\U0001f44d") == "&#128077;"


class TestEscapePlain:
    def test_unchanged(self):
        assert escape_text(Dialect.PLAIN, TRICKY) == TRICKY


class TestEscapeCodeAndUrls:
    def test_code_markdown(self):
        assert escape_code(V2, "a`b\\c") == "a\\`b\\\\c"

    def test_code_keeps_markup(self):
        assert escape_code(V2, "*x*") == "*x*"

    def test_code_html(self):
        assert escape_code(HTML, "a<b>&") == "a&lt;b&gt;&amp;"

    def test_url_markdown(self):
        assert escape_url(MD, "https://a.org/(x)") == "https://a.org/(x\\)"

    def test_url_html(self):
        assert escape_url(HTML, 'https://a.org?a=1&b="2"') == "https://a.org?a=1&amp;b=&quot;2&quot;"

    def test_attr(self):
        assert escape_attr("<\">") == "&lt;&quot;&gt;"


class TestEscapedTextParsesBack:
    @pytest.mark.parametrize("dialect", [MD, V2, HTML])
    def test_tricky_text(self, dialect):
        tree = parse(dialect, escape_text(dialect, TRICKY))
        assert tree == Group((Text(TRICKY),))

    @pytest.mark.parametrize("dialect", [MD, V2, HTML])
    def test_entity_lookalikes(self, dialect):
        value = "mail @bob about #news and /start at https://example.com"
        tree = parse(dialect, escape_text(dialect, value))
        assert tree == Group((Text(value),))

    @pytest.mark.parametrize("dialect", [MD, V2])
    def test_block_lookalikes(self, dialect):
        value = "> not a quote\n- not a list\n1. not numbered\n| not | a table |"
        tree = parse(dialect, escape_text(dialect, value))
        assert tree == Group((Text(value),))

    @pytest.mark.parametrize("dialect", [MD, V2, HTML])
    def test_emoji_stays_text(self, dialect):
        value = "Nice \U0001f44d and \U0001f1fa\U0001f1f8 \u2764\ufe0f"
        tree = parse(dialect, escape_text(dialect, value))
        assert tree == Group((Text(value),))

    @pytest.mark.parametrize("dialect", [MD, V2])
    def test_carriage_returns(self, dialect):
        value = "a\rb\r\nc*\r*d"
        tree = parse(dialect, escape_text(dialect, value))
        assert tree == Group((Text(value),))

    def test_list_glyph_lookalike(self):
        value = "▸ not a list\n» nor this"
        tree = parse(MD, escape_text(MD, value))
        assert tree == Group((Text(value),))
