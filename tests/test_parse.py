"""Test parsing each dialect into a document tree."""

from __future__ import annotations

from richmsg.ast import (
    Bold,
    Code,
    Command,
    CustomEmoji,
    Emoji,
    Group,
    Hashtag,
    Italic,
    Link,
    Mention,
    MentionId,
    Pre,
    Quote,
    Spoiler,
    Strikethrough,
    Text,
    Underline,
)
from richmsg.dialects import Dialect
from richmsg.parser import parse

MD = Dialect.MARKDOWN
V2 = Dialect.MARKDOWN_V2
HTML = Dialect.HTML


class TestDocument:
    def test_returns_group(self):
        tree = parse(V2, "hello")
        assert isinstance(tree, Group)
        assert tree.children == (Text("hello"),)

    def test_empty_source(self):
        assert parse(V2, "") == Group(())

    def test_group_span_covers_source(self):
        tree = parse(V2, "ab\ncd")
        assert tree.span is not None
        assert tree.span.start.offset == 0
        assert tree.span.end.offset == 5

    def test_text_coalesces(self, parse_source):
        nodes = parse_source(r"a\.b\!c")
        assert nodes == (Text("a.b!c"),)

    def test_newlines_are_text(self, parse_source):
        assert parse_source("a\nb") == (Text("a\nb"),)

    def test_spans_do_not_affect_equality(self):
        assert parse(V2, "*x*") == Group((Bold((Text("x"),)),))


class TestEmphasisV2:
    def test_mixed_sentence(self, parse_source):
        nodes = parse_source("Hello *bold* and _italic_ text")
        assert nodes == (
            Text("Hello "),
            Bold((Text("bold"),)),
            Text(" and "),
            Italic((Text("italic"),)),
            Text(" text"),
        )

    def test_nested(self, parse_source):
        nodes = parse_source("*bold _both_*")
        assert nodes == (Bold((Text("bold "), Italic((Text("both"),)))),)

    def test_all_containers(self, parse_source):
        nodes = parse_source("__u__~s~||p||")
        assert nodes == (
            Underline((Text("u"),)),
            Strikethrough((Text("s"),)),
            Spoiler((Text("p"),)),
        )

    def test_unmatched_star_is_text(self, parse_source):
        assert parse_source("2*3") == (Text("2*3"),)


class TestEmphasisMarkdown:
    def test_bold_and_italic(self, parse_source):
        nodes = parse_source("**b** *i* __u__ ~~s~~", MD)
        assert nodes == (
            Bold((Text("b"),)),
            Text(" "),
            Italic((Text("i"),)),
            Text(" "),
            Underline((Text("u"),)),
            Text(" "),
            Strikethrough((Text("s"),)),
        )

    def test_triple_star(self, parse_source):
        nodes = parse_source("***x***", MD)
        assert nodes == (Bold((Italic((Text("x"),)),)),)


class TestEmphasisHtml:
    def test_tags_and_aliases(self, parse_source):
        nodes = parse_source("<b>a</b><strong>b</strong><em>c</em><del>d</del>", HTML)
        assert nodes == (
            Bold((Text("a"),)),
            Bold((Text("b"),)),
            Italic((Text("c"),)),
            Strikethrough((Text("d"),)),
        )

    def test_spoiler_forms(self, parse_source):
        nodes = parse_source('<tg-spoiler>a</tg-spoiler><span class="tg-spoiler">b</span>', HTML)
        assert nodes == (Spoiler((Text("a"),)), Spoiler((Text("b"),)))

    def test_entities_and_br(self, parse_source):
        nodes = parse_source("a &lt;b&gt;<br>c", HTML)
        assert nodes == (Text("a <b>\nc"),)

    def test_tag_names_are_case_insensitive(self, parse_source):
        assert parse_source("<B>x</B>", HTML) == (Bold((Text("x"),)),)


class TestCode:
    def test_inline_code(self, parse_source):
        assert parse_source("`a*b`") == (Code("a*b"),)

    def test_pre_language(self, parse_source):
        assert parse_source("```py\nx = 1\n```") == (Pre("x = 1", "py"),)

    def test_pre_without_language(self, parse_source):
        assert parse_source("```\nx\n```") == (Pre("x"),)

    def test_html_pre(self, parse_source):
        nodes = parse_source('<pre><code class="language-sh">ls &amp;&amp; pwd</code></pre>', HTML)
        assert nodes == (Pre("ls && pwd", "sh"),)

    def test_html_code(self, parse_source):
        assert parse_source("<code>1 &lt; 2</code>", HTML) == (Code("1 < 2"),)


class TestLinks:
    def test_link(self, parse_source):
        nodes = parse_source("[site](https://example.com)")
        assert nodes == (Link((Text("site"),), "https://example.com"),)

    def test_link_with_formatting(self, parse_source):
        nodes = parse_source("[*big*](https://a.org)")
        assert nodes == (Link((Bold((Text("big"),)),), "https://a.org"),)

    def test_mention_by_id(self, parse_source):
        nodes = parse_source("[John](tg://user?id=123)")
        assert nodes == (MentionId(123, "John"),)

    def test_html_mention_by_id(self, parse_source):
        nodes = parse_source('<a href="tg://user?id=7">Ann</a>', HTML)
        assert nodes == (MentionId(7, "Ann"),)

    def test_bare_url(self, parse_source):
        nodes = parse_source("go https://example.com")
        assert nodes == (
            Text("go "),
            Link((Text("https://example.com"),), "https://example.com"),
        )


class TestEntities:
    def test_mention_hashtag(self, parse_source):
        nodes = parse_source("hi @bob #news")
        assert nodes == (Text("hi "), Mention("bob"), Text(" "), Hashtag("news"))

    def test_command(self, parse_source):
        assert parse_source("/start now") == (Command("start", ("now",)),)

    def test_command_on_later_line(self, parse_source):
        nodes = parse_source("hi\n/help")
        assert nodes == (Text("hi\n"), Command("help"))

    def test_emoji(self, parse_source):
        assert parse_source("\U0001f600") == (Emoji("\U0001f600"),)

    def test_custom_emoji(self, parse_source):
        nodes = parse_source("![⭐](tg://emoji?id=99)")
        assert nodes == (CustomEmoji("⭐", 99),)

    def test_plain_dialect_has_no_entities(self, parse_source):
        nodes = parse_source("*x* @bob", Dialect.PLAIN)
        assert nodes == (Text("*x* @bob"),)


class TestQuotes:
    def test_v2_quote(self, parse_source):
        assert parse_source(">hello") == (Quote((Text("hello"),)),)

    def test_multiline_quote(self, parse_source):
        assert parse_source(">a\n>b") == (Quote((Text("a\nb"),)),)

    def test_quote_ends_at_unquoted_line(self, parse_source):
        nodes = parse_source(">a\nb")
        assert nodes == (Quote((Text("a"),)), Text("\nb"))

    def test_markdown_quote(self, parse_source):
        assert parse_source("> *x*", MD) == (Quote((Italic((Text("x"),)),)),)

    def test_html_blockquote(self, parse_source):
        nodes = parse_source("<blockquote>a<b>b</b></blockquote>", HTML)
        assert nodes == (Quote((Text("a"), Bold((Text("b"),)))),)
