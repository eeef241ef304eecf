"""Parser: converts a token stream into a document tree."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, replace

from richmsg.ast import (
    Align,
    Bold,
    Cell,
    Code,
    Command,
    CustomEmoji,
    CustomMarker,
    Emoji,
    Group,
    Hashtag,
    Italic,
    Link,
    List,
    ListItem,
    ListStyle,
    Mention,
    MentionId,
    Node,
    Pre,
    Quote,
    Row,
    Spoiler,
    Strikethrough,
    Table,
    TableStyle,
    Text,
    Underline,
)
from richmsg.dialects import Dialect
from richmsg.errors import (
    CrossedDelimiters,
    ParseError,
    TableShapeMismatch,
    UnexpectedToken,
    UnterminatedElement,
)
from richmsg.layout import TableShapeError, table_grid
from richmsg.lexer import tokenize
from richmsg.tokens import Position, Span, Token, TokenType

_CONTAINERS: dict[TokenType, type] = {
    TokenType.BOLD: Bold,
    TokenType.ITALIC: Italic,
    TokenType.UNDERLINE: Underline,
    TokenType.STRIKETHROUGH: Strikethrough,
    TokenType.SPOILER: Spoiler,
    TokenType.QUOTE: Quote,
}

_NAMES: dict[TokenType, str] = {
    TokenType.BOLD: "bold",
    TokenType.ITALIC: "italic",
    TokenType.UNDERLINE: "underline",
    TokenType.STRIKETHROUGH: "strikethrough",
    TokenType.SPOILER: "spoiler",
    TokenType.CODE: "code",
    TokenType.PRE: "code block",
    TokenType.QUOTE: "quote",
    TokenType.LINK: "link",
    TokenType.LIST: "list",
    TokenType.LIST_ITEM: "list item",
    TokenType.TABLE: "table",
    TokenType.TABLE_ROW: "table row",
    TokenType.TABLE_CELL: "table cell",
}

_ALIGNS = {"left": Align.LEFT, "center": Align.CENTER, "right": Align.RIGHT}

_MENTION_URL_RE = re.compile(r"tg://user\?id=(\d+)")


@dataclass(slots=True)
class _CellDraft:
    """A pipe table cell whose spans are still being collected."""

    content: tuple[Node, ...]
    column: int
    span: Span
    colspan: int = 1
    rowspan: int = 1
    cover: bool = False


class Parser:
    """Recursive descent parser producing a Group from a token list."""

    def __init__(self, tokens: list[Token], source: str, dialect: Dialect) -> None:
        self._tokens = tokens
        self._source = source
        self._dialect = dialect
        self._tagged = dialect is Dialect.HTML
        self._pos = 0
        self._scopes: list[Token] = []  # opening tokens of unclosed elements
        self._line_depth = 0  # inside list items and table cells a newline ends content
        self._quote_depth = 0
        self._cell_depth = 0

    # ------------------------------------------------------------------
    # Navigation helpers
    # ------------------------------------------------------------------

    def _peek(self, offset: int = 0) -> Token:
        idx = self._pos + offset
        if idx < len(self._tokens):
            return self._tokens[idx]
        return self._tokens[-1]  # EOF

    def _at(self, *types: TokenType) -> bool:
        return self._peek().type in types

    def _at_eof(self) -> bool:
        return self._peek().type == TokenType.EOF

    def _advance(self) -> Token:
        tok = self._tokens[self._pos]
        if tok.type != TokenType.EOF:
            self._pos += 1
        return tok

    def _lookahead(self, predicate: Callable[[Token], bool], offset: int = 1) -> bool:
        return predicate(self._peek(offset))

    def _prev_end(self) -> Position:
        """End position of the previously consumed token."""
        if self._pos > 0:
            return self._tokens[self._pos - 1].span.end
        return self._tokens[0].span.start

    def _skip_layout_whitespace(self) -> None:
        """Skip newlines and blank text between HTML list and table tags."""
        while self._at(TokenType.LINE_BREAK) or (
            self._at(TokenType.TEXT) and not self._peek().value.strip()
        ):
            self._advance()

    def _error(self, cls: type[ParseError], message: str, span: Span) -> ParseError:
        return cls(message, span, self._source)

    def _unexpected(self, tok: Token, message: str | None = None) -> ParseError:
        if message is None:
            if tok.type == TokenType.EOF:
                message = "unexpected end of input"
            else:
                message = f"unexpected '{tok.raw}'"
        return self._error(UnexpectedToken, message, tok.span)

    def _unterminated(self, open_tok: Token) -> ParseError:
        name = _NAMES.get(open_tok.type, open_tok.type.name.lower())
        return self._error(UnterminatedElement, f"unterminated {name} '{open_tok.raw}'", open_tok.span)

    def _expect_closer(self, open_tok: Token) -> Token:
        tok = self._peek()
        if tok.type != open_tok.type or (self._tagged and not tok.closing):
            raise self._unterminated(open_tok)
        return self._advance()

    def _closes_scope(self, tok: Token) -> bool:
        """Whether *tok* closes the innermost open element.

        Markdown delimiters close when they match the innermost element and
        open a new one otherwise. Closing tags must match the innermost element.
        """
        kind = TokenType.LINK if tok.type == TokenType.LINK_END else tok.type
        closer = tok.closing or not self._tagged
        if closer and self._scopes and self._scopes[-1].type == kind:
            return True
        if closer and any(scope.type == kind for scope in self._scopes):
            inner = _NAMES.get(self._scopes[-1].type, "element")
            raise self._error(
                CrossedDelimiters,
                f"'{tok.raw}' closes an outer element while {inner} "
                f"'{self._scopes[-1].raw}' is still open",
                tok.span,
            )
        if tok.closing:
            raise self._unexpected(tok, f"'{tok.raw}' has no matching opening")
        return False

    # ------------------------------------------------------------------
    # Document level
    # ------------------------------------------------------------------

    def parse(self) -> Group:
        start = self._peek().span.start
        children = self._parse_sequence()
        if not self._at_eof():
            raise self._unexpected(self._peek())
        end = self._peek().span.end
        return Group(tuple(children), span=Span(start, end))

    def _parse_sequence(self) -> list[Node]:
        """Parse nodes until EOF or a token that ends the enclosing element."""
        nodes: list[Node] = []

        while True:
            tok = self._peek()
            tt = tok.type

            if tt == TokenType.EOF:
                break

            if tt in (TokenType.TEXT, TokenType.ESCAPE):
                self._advance()
                nodes.append(Text(tok.value, span=tok.span))

            elif tt == TokenType.LINE_BREAK:
                if self._line_depth:
                    break
                if self._quote_depth:
                    if not self._lookahead(lambda t: t.type == TokenType.QUOTE):
                        break
                    self._advance()
                    quote = self._advance()
                    nodes.append(Text("\n", span=Span(tok.span.start, quote.span.end)))
                    continue
                self._advance()
                nodes.append(Text("\n", span=tok.span))

            elif tt in _CONTAINERS and (self._tagged or tt != TokenType.QUOTE):
                if self._closes_scope(tok):
                    break
                nodes.append(self._parse_container())

            elif tt == TokenType.QUOTE:
                nodes.append(self._parse_md_quote())

            elif tt in (TokenType.CODE, TokenType.PRE):
                if tok.closing:
                    raise self._unexpected(tok, f"'{tok.raw}' has no matching opening")
                nodes.append(self._parse_code())

            elif tt in (TokenType.LINK, TokenType.LINK_END):
                if tt == TokenType.LINK_END:
                    if self._closes_scope(tok):
                        break
                    raise self._unexpected(tok)
                nodes.append(self._parse_link())

            elif tt == TokenType.URL:
                self._advance()
                nodes.append(Link((Text(tok.value, span=tok.span),), tok.value, span=tok.span))

            elif tt in _LEAVES:
                self._advance()
                nodes.append(_LEAVES[tt](tok))

            elif tt == TokenType.PIPE:
                if self._cell_depth:
                    break
                raise self._unexpected(tok)

            elif tt == TokenType.LIST_ITEM and not self._tagged:
                nodes.append(self._parse_md_list())

            elif tt == TokenType.TABLE_ROW and not self._tagged:
                nodes.append(self._parse_md_table())

            elif tt == TokenType.LIST and not tok.closing:
                nodes.append(self._parse_html_list())

            elif tt == TokenType.TABLE and not tok.closing:
                nodes.append(self._parse_html_table())

            elif tok.closing:
                if self._closes_scope(tok):
                    break
                raise self._unexpected(tok)

            else:
                raise self._unexpected(tok)

        return _coalesce_text(nodes)

    # ------------------------------------------------------------------
    # Inline elements
    # ------------------------------------------------------------------

    def _parse_container(self) -> Node:
        open_tok = self._advance()
        self._scopes.append(open_tok)
        children = self._parse_sequence()
        self._scopes.pop()
        end = self._expect_closer(open_tok)
        cls = _CONTAINERS[open_tok.type]
        return cls(tuple(children), span=Span(open_tok.span.start, end.span.end))

    def _parse_code(self) -> Code | Pre:
        open_tok = self._advance()
        code = ""
        if self._at(TokenType.TEXT):
            code = self._advance().value
        end = self._peek()
        if end.type != open_tok.type or not end.closing:
            raise self._unterminated(open_tok)
        self._advance()
        span = Span(open_tok.span.start, end.span.end)
        if open_tok.type == TokenType.PRE:
            return Pre(code, open_tok.value or None, span=span)
        return Code(code, span=span)

    def _parse_link(self) -> Link | MentionId:
        open_tok = self._advance()
        self._scopes.append(open_tok)
        children = self._parse_sequence()
        self._scopes.pop()
        if not self._at(TokenType.LINK_END):
            raise self._unterminated(open_tok)
        end = self._advance()
        span = Span(open_tok.span.start, end.span.end)

        url = open_tok.value
        m = _MENTION_URL_RE.fullmatch(url)
        if m is not None and all(isinstance(child, Text) for child in children):
            text = "".join(child.value for child in children)
            return MentionId(int(m.group(1)), text, span=span)
        return Link(tuple(children), url, span=span)

    def _parse_md_quote(self) -> Quote:
        open_tok = self._advance()
        self._quote_depth += 1
        children = self._parse_sequence()
        self._quote_depth -= 1
        return Quote(tuple(children), span=Span(open_tok.span.start, self._prev_end()))

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    def _continues_list(self, accept: Callable[[Token], bool]) -> bool:
        return self._at(TokenType.LINE_BREAK) and self._lookahead(
            lambda t: t.type == TokenType.LIST_ITEM and accept(t)
        )

    def _parse_md_list(self) -> List:
        first = self._peek()
        indent = _indent(first)
        style = _list_style(first.value)
        items: list[ListItem] = []

        while True:
            marker = self._advance()
            self._line_depth += 1
            content = self._parse_sequence()
            self._line_depth -= 1

            nested = None
            if self._continues_list(lambda t: _indent(t) > indent):
                self._advance()
                nested = self._parse_md_list()
            items.append(
                ListItem(tuple(content), nested, span=Span(marker.span.start, self._prev_end()))
            )

            if not self._continues_list(
                lambda t: _indent(t) == indent and _list_style(t.value) == style
            ):
                break
            self._advance()

        return List(tuple(items), style, span=Span(first.span.start, self._prev_end()))

    def _parse_html_list(self) -> List:
        open_tok = self._advance()
        if open_tok.value == "ol":
            style: ListStyle | CustomMarker = ListStyle.NUMBERED
        elif open_tok.attr("data-marker"):
            style = CustomMarker(open_tok.attr("data-marker") or "")
        else:
            style = ListStyle.BULLET

        self._scopes.append(open_tok)
        items: list[ListItem] = []
        while True:
            self._skip_layout_whitespace()
            tok = self._peek()
            if tok.type == TokenType.LIST and tok.closing:
                break
            if tok.type == TokenType.LIST_ITEM and not tok.closing:
                items.append(self._parse_html_item())
            elif tok.type == TokenType.EOF:
                raise self._unterminated(open_tok)
            else:
                raise self._unexpected(tok, f"expected <li> inside <{open_tok.value}>")
        self._scopes.pop()
        end = self._advance()
        return List(tuple(items), style, span=Span(open_tok.span.start, end.span.end))

    def _parse_html_item(self) -> ListItem:
        open_tok = self._advance()
        self._scopes.append(open_tok)
        content = self._parse_sequence()
        self._scopes.pop()
        end = self._expect_closer(open_tok)

        # A list closing the item's content is its nested list
        nested = None
        if content and isinstance(content[-1], List):
            nested = content.pop()
        return ListItem(tuple(content), nested, span=Span(open_tok.span.start, end.span.end))

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def _parse_md_row(self) -> tuple[list[_CellDraft], Token]:
        row_tok = self._advance()
        drafts: list[_CellDraft] = []
        column = 0

        while not self._at(TokenType.LINE_BREAK, TokenType.EOF):
            tok = self._peek()

            if tok.type == TokenType.PIPE:
                # '||' extends the previous cell over one more column
                if not drafts:
                    raise self._unexpected(tok, "a table row cannot start with an empty span")
                self._advance()
                drafts[-1].colspan += 1
                column += 1
                continue

            if tok.type == TokenType.TABLE_CELL:
                self._advance()
                if not self._at(TokenType.PIPE):
                    raise self._unexpected(self._peek(), "expected '|' to close the table cell")
                self._advance()
                drafts.append(_CellDraft((), column, tok.span, cover=True))
                column += 1
                continue

            self._line_depth += 1
            self._cell_depth += 1
            content = self._parse_sequence()
            self._line_depth -= 1
            self._cell_depth -= 1

            if not self._at(TokenType.PIPE):
                # Trailing blanks after the last pipe
                if self._at(TokenType.LINE_BREAK, TokenType.EOF) and not _plain_value(content).strip():
                    break
                raise self._unexpected(self._peek(), "expected '|' to close the table cell")
            end = self._advance()
            drafts.append(
                _CellDraft(_trim_cell(content), column, Span(tok.span.start, end.span.end))
            )
            column += 1

        return drafts, row_tok

    def _parse_md_table(self) -> Table:
        header, header_tok = self._parse_md_row()
        width = sum(d.colspan for d in header)
        for draft in header:
            if draft.cover:
                raise self._unexpected_span(draft.span, "'^^' cannot appear in the header row")

        if not (self._at(TokenType.LINE_BREAK) and self._peek(1).type == TokenType.TABLE_DELIM):
            tok = self._peek(1) if self._at(TokenType.LINE_BREAK) else self._peek()
            raise self._unexpected(tok, "expected an alignment row after the table header")
        self._advance()
        delim = self._advance()
        aligns = _alignments(delim.value)
        if len(aligns) != width:
            raise TableShapeMismatch(width, len(aligns), delim.span, self._source)

        above: list[_CellDraft] = [d for d in header for _ in range(d.colspan)]
        body: list[tuple[list[_CellDraft], Span]] = []
        while self._at(TokenType.LINE_BREAK) and self._peek(1).type == TokenType.TABLE_ROW:
            self._advance()
            drafts, row_tok = self._parse_md_row()
            row_span = Span(row_tok.span.start, self._prev_end())
            found = sum(d.colspan for d in drafts)
            if found != width:
                raise TableShapeMismatch(width, found, row_span, self._source)

            for draft in drafts:
                if not draft.cover:
                    above[draft.column : draft.column + draft.colspan] = [draft] * draft.colspan
                    continue
                origin = above[draft.column]
                if origin.column != draft.column or origin.colspan != draft.colspan:
                    raise self._unexpected_span(
                        draft.span, "'^^' does not line up with the cell above"
                    )
                origin.rowspan += 1
            body.append((drafts, row_span))

        def build(draft: _CellDraft) -> Cell:
            return Cell(draft.content, aligns[draft.column], draft.colspan, draft.rowspan, span=draft.span)

        headers = tuple(build(d) for d in header)
        rows = tuple(
            Row(tuple(build(d) for d in drafts if not d.cover), span=span) for drafts, span in body
        )
        return Table(headers, rows, span=Span(header_tok.span.start, self._prev_end()))

    def _unexpected_span(self, span: Span, message: str) -> ParseError:
        return self._error(UnexpectedToken, message, span)

    def _parse_html_table(self) -> Table:
        open_tok = self._advance()
        style_name = (open_tok.attr("data-style") or TableStyle.ASCII.value).lower()
        try:
            style = TableStyle(style_name)
        except ValueError:
            raise self._unexpected(open_tok, f"unknown table style '{style_name}'") from None

        self._scopes.append(open_tok)
        rows: list[tuple[list[Cell], bool, Token]] = []
        while True:
            self._skip_layout_whitespace()
            tok = self._peek()
            if tok.type == TokenType.TABLE and tok.closing:
                break
            if tok.type == TokenType.TABLE_ROW and not tok.closing:
                rows.append(self._parse_html_row())
            elif tok.type == TokenType.EOF:
                raise self._unterminated(open_tok)
            else:
                raise self._unexpected(tok, "expected <tr> inside <table>")
        self._scopes.pop()
        end = self._advance()

        headers: tuple[Cell, ...] = ()
        body = rows
        if rows and rows[0][1]:
            headers = tuple(rows[0][0])
            body = rows[1:]
        table = Table(
            headers,
            tuple(Row(tuple(cells), span=tok.span) for cells, _, tok in body),
            style,
            span=Span(open_tok.span.start, end.span.end),
        )

        try:
            table_grid(table)
        except TableShapeError as exc:
            row_tok = rows[min(exc.row, len(rows) - 1)][2]
            raise TableShapeMismatch(exc.expected, exc.found, row_tok.span, self._source) from exc
        return table

    def _parse_html_row(self) -> tuple[list[Cell], bool, Token]:
        """Parse <tr>; return its cells and whether all of them are <th>."""
        open_tok = self._advance()
        self._scopes.append(open_tok)
        cells: list[Cell] = []
        all_headers = True
        while True:
            self._skip_layout_whitespace()
            tok = self._peek()
            if tok.type == TokenType.TABLE_ROW and tok.closing:
                break
            if tok.type == TokenType.TABLE_CELL and not tok.closing:
                all_headers = all_headers and tok.value == "th"
                cells.append(self._parse_html_cell())
            elif tok.type == TokenType.EOF:
                raise self._unterminated(open_tok)
            else:
                raise self._unexpected(tok, "expected <td> or <th> inside <tr>")
        self._scopes.pop()
        self._advance()
        return cells, bool(cells) and all_headers, open_tok

    def _parse_html_cell(self) -> Cell:
        open_tok = self._advance()
        self._scopes.append(open_tok)
        content = self._parse_sequence()
        self._scopes.pop()
        end = self._expect_closer(open_tok)

        align_name = (open_tok.attr("align") or "left").lower()
        align = _ALIGNS.get(align_name)
        if align is None:
            raise self._unexpected(open_tok, f"unknown alignment '{align_name}'")
        return Cell(
            tuple(content),
            align,
            self._span_attr(open_tok, "colspan"),
            self._span_attr(open_tok, "rowspan"),
            span=Span(open_tok.span.start, end.span.end),
        )

    def _span_attr(self, tok: Token, name: str) -> int:
        value = tok.attr(name)
        if value is None:
            return 1
        if not value.strip().isdigit() or int(value) < 1:
            raise self._unexpected(tok, f"invalid {name} '{value}'")
        return int(value)


# Leaf tokens that become a single node
_LEAVES: dict[TokenType, Callable[[Token], Node]] = {
    TokenType.MENTION: lambda tok: Mention(tok.value, span=tok.span),
    TokenType.HASHTAG: lambda tok: Hashtag(tok.value, span=tok.span),
    TokenType.COMMAND: lambda tok: Command(tok.value, tuple(tok.attr_list("arg")), span=tok.span),
    TokenType.EMOJI: lambda tok: Emoji(tok.value, span=tok.span),
    TokenType.CUSTOM_EMOJI: lambda tok: CustomEmoji(tok.value, int(tok.attr("id") or 0), span=tok.span),
}


def _indent(tok: Token) -> int:
    return int(tok.attr("indent") or 0)


def _list_style(marker: str) -> ListStyle | CustomMarker:
    if marker == "-":
        return ListStyle.BULLET
    if marker.endswith(".") and marker[:-1].isdigit():
        return ListStyle.NUMBERED
    return CustomMarker(marker)


def _alignments(delim: str) -> list[Align]:
    aligns = []
    for spec in delim.strip().strip("|").split("|"):
        spec = spec.strip()
        if spec.startswith(":") and spec.endswith(":") and len(spec) > 1:
            aligns.append(Align.CENTER)
        elif spec.endswith(":"):
            aligns.append(Align.RIGHT)
        else:
            aligns.append(Align.LEFT)
    return aligns


def _plain_value(nodes: list[Node]) -> str:
    return "".join(node.value if isinstance(node, Text) else "x" for node in nodes)


def _trim_cell(content: list[Node]) -> tuple[Node, ...]:
    """Strip the single space of padding on each side of a pipe table cell."""
    nodes = list(content)
    if nodes and isinstance(nodes[0], Text) and nodes[0].value.startswith(" "):
        nodes[0] = replace(nodes[0], value=nodes[0].value[1:])
    if nodes and isinstance(nodes[-1], Text) and nodes[-1].value.endswith(" "):
        nodes[-1] = replace(nodes[-1], value=nodes[-1].value[:-1])
    return tuple(node for node in nodes if not (isinstance(node, Text) and not node.value))


def _coalesce_text(nodes: list[Node]) -> list[Node]:
    """Coalesce adjacent Text nodes into single nodes."""
    result: list[Node] = []
    for node in nodes:
        if isinstance(node, Text) and result and isinstance(result[-1], Text):
            prev = result[-1]
            span = None
            if prev.span is not None and node.span is not None:
                span = Span(prev.span.start, node.span.end)
            result[-1] = Text(prev.value + node.value, span=span)
        else:
            result.append(node)
    return result


def parse(dialect: Dialect, source: str) -> Group:
    """Convenience function: parse source text in *dialect* and return a Group."""
    tokens = tokenize(dialect, source)
    return Parser(tokens, source, dialect).parse()
