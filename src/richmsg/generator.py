"""Generator: renders a document tree as text in one dialect."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping

from richmsg.ast import (
    Align,
    Bold,
    Cell,
    Code,
    Command,
    Custom,
    CustomEmoji,
    CustomMarker,
    Emoji,
    Group,
    Hashtag,
    Italic,
    Link,
    List,
    ListStyle,
    Mention,
    MentionId,
    Node,
    Pre,
    Quote,
    Spoiler,
    Strikethrough,
    Table,
    TableStyle,
    Text,
    TextLink,
    Underline,
    plain_text,
)
from richmsg.conditional import apply
from richmsg.dialects import (
    LIST_MARKER_GLYPHS,
    Dialect,
    escape_attr,
    escape_code,
    escape_text,
    escape_url,
)
from richmsg.errors import (
    FormatterFailed,
    GenError,
    InvalidTable,
    UnknownFormatter,
    UnsupportedElement,
)
from richmsg.formatters import Formatter, FormatterRegistry, shared_registry
from richmsg.layout import Slot, TableShapeError, render_text_table, table_grid

logger = logging.getLogger(__name__)

_MARKERS: dict[Dialect, dict[type, tuple[str, str]]] = {
    Dialect.MARKDOWN: {
        Bold: ("**", "**"),
        Italic: ("*", "*"),
        Underline: ("__", "__"),
        Strikethrough: ("~~", "~~"),
    },
    Dialect.MARKDOWN_V2: {
        Bold: ("*", "*"),
        Italic: ("_", "_"),
        Underline: ("__", "__"),
        Strikethrough: ("~", "~"),
        Spoiler: ("||", "||"),
    },
    Dialect.HTML: {
        Bold: ("<b>", "</b>"),
        Italic: ("<i>", "</i>"),
        Underline: ("<u>", "</u>"),
        Strikethrough: ("<s>", "</s>"),
        Spoiler: ("<tg-spoiler>", "</tg-spoiler>"),
    },
}

# First characters of each markdown dialect's delimiters
_RUN_CHARS = {
    d: frozenset(opening[0] for opening, _ in markers.values())
    for d, markers in _MARKERS.items()
    if d.is_markdown
}

_ALIGN_SPECS = {Align.LEFT: "---", Align.CENTER: ":---:", Align.RIGHT: "---:"}


class Generator:
    """Render nodes as *dialect* text, looking formatters up in *registry*.

    The registry is read once, when the generator is created; later
    registrations do not affect it. *formatters* passes an existing
    snapshot instead.
    """

    def __init__(
        self,
        dialect: Dialect,
        registry: FormatterRegistry | None = None,
        *,
        formatters: Mapping[str, Formatter] | None = None,
    ) -> None:
        self._dialect = dialect
        if formatters is None:
            formatters = (registry if registry is not None else shared_registry()).snapshot()
        self._formatters = formatters
        self._block_depth = 0  # inside quotes, list items and table cells
        self._inline_depth = 0  # inside emphasis and link text

    def generate(self, node: Node) -> str:
        d = self._dialect
        match node:
            case Text(value=value):
                return escape_text(d, value)
            case Bold() | Italic() | Underline() | Strikethrough() | Spoiler():
                return self._emphasis(node)
            case Group(children=children):
                return self._children(children)
            case Code(code=code):
                return self._code(code)
            case Pre():
                return self._pre(node)
            case Link(children=children, url=url):
                return self._link(self._inline(children), url, plain_text(children))
            case TextLink(text=text, url=url):
                return self._link(escape_text(d, text), url, text)
            case MentionId(user_id=user_id, text=text):
                return self._mention_id(user_id, text)
            case Mention(username=username):
                return "@" + escape_text(d, username)
            case Hashtag(tag=tag):
                return "#" + escape_text(d, tag)
            case Command(name=name, args=args):
                return " ".join(["/" + escape_text(d, name), *(escape_text(d, a) for a in args)])
            case Emoji(glyph=glyph):
                return glyph
            case CustomEmoji():
                return self._custom_emoji(node)
            case Custom():
                return self._custom(node)
            case Quote(children=children):
                return self._quote(children)
            case List():
                return self._list(node)
            case Table():
                return self._table(node)
            case _:
                raise TypeError(f"not a document node: {node!r}")

    def generate_all(
        self,
        nodes: Iterable[Node],
        fallback: Callable[[Node, GenError], str] | None = None,
    ) -> str:
        """Render nodes in order, substituting ``fallback(node, error)`` for failures."""
        parts: list[str] = []
        for node in nodes:
            try:
                parts.append(self.generate(node))
            except GenError as exc:
                if fallback is None:
                    raise
                logger.debug("using fallback for %s: %s", type(node).__name__, exc)
                parts.append(fallback(node, exc))
        return "".join(parts)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _children(self, nodes: Iterable[Node]) -> str:
        if not self._dialect.is_markdown:
            return "".join(self.generate(node) for node in nodes)
        flat = list(_flatten(nodes))
        parts = [self.generate(node) for node in flat]
        for i, node in enumerate(flat):
            if self._is_line_block(node):
                self._check_line_bounds(type(node).__name__, parts[:i], parts[i + 1 :])
        return self._join(parts)

    def _join(self, parts: list[str]) -> str:
        """Concatenate markdown fragments, keeping adjacent delimiter runs apart.

        ``*`` followed by ``**`` would lex as one run, so a carriage
        return is placed between fragments that meet on the same
        delimiter character. Telegram ignores it; the lexer drops it.
        """
        run_chars = _RUN_CHARS.get(self._dialect)
        if run_chars is None:
            return "".join(parts)
        out: list[str] = []
        for part in parts:
            if not part:
                continue
            if out and out[-1][-1] == part[0] and part[0] in run_chars:
                out.append("\r")
            out.append(part)
        return "".join(out)

    def _nested(self, nodes: Iterable[Node]) -> str:
        """Render content that lives inside a quote, list item or table cell."""
        self._block_depth += 1
        try:
            return self._children(nodes)
        finally:
            self._block_depth -= 1

    def _inline(self, nodes: Iterable[Node]) -> str:
        """Render content that lives inside emphasis or link text."""
        self._inline_depth += 1
        try:
            return self._children(nodes)
        finally:
            self._inline_depth -= 1

    def _check_block(self, kind: str, *, line: bool = False) -> None:
        """Reject block constructs markdown can only read back at the top level.

        *line* marks constructs recognized at the start of a line, which
        also cannot sit inside emphasis or link text.
        """
        if not self._dialect.is_markdown:
            return
        if self._block_depth:
            raise UnsupportedElement(
                kind, self._dialect, "cannot appear inside a quote, list item or table cell"
            )
        if line and self._inline_depth:
            raise UnsupportedElement(kind, self._dialect, "cannot appear inside inline formatting")

    def _is_line_block(self, node: Node) -> bool:
        if isinstance(node, Quote):
            return True
        return isinstance(node, (List, Table)) and self._dialect is Dialect.MARKDOWN

    def _check_line_bounds(self, kind: str, before: list[str], after: list[str]) -> None:
        prev = next((p for p in reversed(before) if p), "")
        following = next((p for p in after if p), "")
        if (prev and not prev.endswith("\n")) or (following and not following.startswith("\n")):
            raise UnsupportedElement(kind, self._dialect, "must start and end a line")

    def _plain(self, nodes: Iterable[Node]) -> str:
        return Generator(Dialect.PLAIN, formatters=self._formatters)._children(nodes)

    # ------------------------------------------------------------------
    # Inline elements
    # ------------------------------------------------------------------

    def _emphasis(self, node: Bold | Italic | Underline | Strikethrough | Spoiler) -> str:
        markers = _MARKERS.get(self._dialect)
        if markers is None:
            return self._children(node.children)
        pair = markers.get(type(node))
        if pair is None:
            raise UnsupportedElement(type(node).__name__, self._dialect)
        opening, closing = pair
        return self._join([opening, self._inline(node.children), closing])

    def _code(self, code: str) -> str:
        d = self._dialect
        if d.is_markdown:
            if "\n" in code and self._block_depth:
                raise UnsupportedElement(
                    "Code",
                    d,
                    "multi-line code cannot appear inside a quote, list item or table cell",
                )
            return f"`{escape_code(d, code)}`"
        if d is Dialect.HTML:
            return f"<code>{escape_code(d, code)}</code>"
        return code

    def _pre(self, node: Pre) -> str:
        d = self._dialect
        if d.is_markdown:
            self._check_block("Pre")
            return f"```{node.language or ''}\n{escape_code(d, node.code)}\n```"
        if d is Dialect.HTML:
            if node.language:
                lang = escape_attr(node.language)
                return f'<pre><code class="language-{lang}">{escape_code(d, node.code)}</code></pre>'
            return f"<pre>{escape_code(d, node.code)}</pre>"
        return node.code

    def _link(self, text: str, url: str, visible: str) -> str:
        d = self._dialect
        if d.is_markdown:
            return f"[{text}]({escape_url(d, url)})"
        if d is Dialect.HTML:
            return f'<a href="{escape_url(d, url)}">{text}</a>'
        return text if visible == url else f"{text} ({url})"

    def _mention_id(self, user_id: int, text: str) -> str:
        d = self._dialect
        url = f"tg://user?id={user_id}"
        if d is Dialect.PLAIN:
            return text
        return self._link(escape_text(d, text), url, text)

    def _custom_emoji(self, node: CustomEmoji) -> str:
        d = self._dialect
        if d.is_markdown:
            return f"![{node.glyph}](tg://emoji?id={node.id})"
        if d is Dialect.HTML:
            return f'<tg-emoji emoji-id="{node.id}">{escape_code(d, node.glyph)}</tg-emoji>'
        return node.glyph

    def _custom(self, node: Custom) -> str:
        formatter = self._formatters.get(node.formatter)
        if formatter is None:
            raise UnknownFormatter(node.formatter)
        try:
            return formatter.format(node.value, self._dialect)
        except Exception as exc:
            raise FormatterFailed(node.formatter, exc) from exc

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    def _quote(self, children: tuple[Node, ...]) -> str:
        d = self._dialect
        if d is Dialect.HTML:
            return f"<blockquote>{self._children(children)}</blockquote>"
        if d is Dialect.PLAIN:
            return self._children(children)
        self._check_block("Quote", line=True)
        prefix = "> " if d is Dialect.MARKDOWN else ">"
        content = self._nested(children)
        return "\n".join(prefix + line for line in content.split("\n"))

    def _marker(self, style: ListStyle | CustomMarker, index: int) -> str:
        d = self._dialect
        if isinstance(style, CustomMarker):
            marker = style.marker
            if d is Dialect.MARKDOWN:
                # Only single glyphs from the known set read back as list items
                if len(marker) != 1 or marker not in LIST_MARKER_GLYPHS:
                    raise UnsupportedElement(
                        "List", d, f"marker '{marker}' cannot be read back as a list marker"
                    )
                return marker
        elif style is ListStyle.NUMBERED:
            marker = f"{index}."
        else:
            marker = "-" if d is Dialect.MARKDOWN else "•"

        if d is Dialect.MARKDOWN_V2:
            return escape_text(d, marker)
        return marker

    def _list(self, node: List, depth: int = 0) -> str:
        if self._dialect is Dialect.HTML:
            return self._html_list(node)
        if depth == 0:
            self._check_block("List", line=self._dialect is Dialect.MARKDOWN)

        lines: list[str] = []
        for index, entry in enumerate(node.items, start=1):
            content = self._nested(entry.content)
            lines.append("  " * depth + self._marker(node.style, index) + " " + content)
            if entry.nested is not None:
                lines.append(self._list(entry.nested, depth + 1))
        return "\n".join(lines)

    def _html_list(self, node: List) -> str:
        tag = "ol" if node.style is ListStyle.NUMBERED else "ul"
        attrs = ""
        if isinstance(node.style, CustomMarker):
            attrs = f' data-marker="{escape_attr(node.style.marker)}"'
        items = []
        for entry in node.items:
            nested = self._html_list(entry.nested) if entry.nested is not None else ""
            items.append(f"<li>{self._children(entry.content)}{nested}</li>\n")
        return f"<{tag}{attrs}>\n{''.join(items)}</{tag}>"

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def _table(self, node: Table) -> str:
        d = self._dialect
        table = apply(node)
        try:
            grid = table_grid(table)
        except TableShapeError as exc:
            raise InvalidTable(str(exc)) from exc

        if d is Dialect.HTML:
            return self._html_table(table)
        if d is Dialect.MARKDOWN:
            self._check_block("Table", line=True)
            return self._pipe_table(table, grid)

        art = render_text_table(table, grid, self._cell_text)
        if d is Dialect.MARKDOWN_V2:
            self._check_block("Table")
            return f"```\n{escape_code(d, art)}\n```"
        return art

    def _cell_text(self, cell: Cell) -> str:
        return self._plain(cell.content).replace("\n", " ")

    def _pipe_row(self, slots: list[Slot]) -> str:
        parts = ["|"]
        for slot in slots:
            text = self._nested(slot.cell.content) if slot.origin else "^^"
            parts.append(f" {text} |" + "|" * (slot.cell.colspan - 1))
        return "".join(parts)

    def _pipe_table(self, table: Table, grid: list[list[Slot]]) -> str:
        if not table.headers:
            raise UnsupportedElement("Table", self._dialect, "pipe tables need a header row")
        aligns = [h.align for h in table.headers for _ in range(h.colspan)]
        lines = [self._pipe_row(grid[0])]
        lines.append("|" + "".join(f" {_ALIGN_SPECS[a]} |" for a in aligns))
        lines.extend(self._pipe_row(slots) for slots in grid[1:])
        return "\n".join(lines)

    def _html_cell(self, tag: str, cell: Cell) -> str:
        attrs = ""
        if cell.align is not Align.LEFT:
            attrs += f' align="{cell.align.value}"'
        if cell.colspan > 1:
            attrs += f' colspan="{cell.colspan}"'
        if cell.rowspan > 1:
            attrs += f' rowspan="{cell.rowspan}"'
        return f"<{tag}{attrs}>{self._children(cell.content)}</{tag}>"

    def _html_table(self, table: Table) -> str:
        style = "" if table.style is TableStyle.ASCII else f' data-style="{table.style.value}"'
        lines = [f"<table{style}>"]
        if table.headers:
            lines.append("<tr>" + "".join(self._html_cell("th", c) for c in table.headers) + "</tr>")
        for row in table.rows:
            lines.append("<tr>" + "".join(self._html_cell("td", c) for c in row.cells) + "</tr>")
        lines.append("</table>")
        return "\n".join(lines)


def _flatten(nodes: Iterable[Node]) -> Iterator[Node]:
    for node in nodes:
        if isinstance(node, Group):
            yield from _flatten(node.children)
        else:
            yield node


def generate(dialect: Dialect, node: Node, registry: FormatterRegistry | None = None) -> str:
    """Convenience function: render one node in *dialect*."""
    return Generator(dialect, registry).generate(node)


def generate_all(
    dialect: Dialect,
    nodes: Iterable[Node],
    registry: FormatterRegistry | None = None,
    fallback: Callable[[Node, GenError], str] | None = None,
) -> str:
    """Convenience function: render nodes in order with an optional fallback."""
    return Generator(dialect, registry).generate_all(nodes, fallback)
