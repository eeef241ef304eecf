"""Tokenizer: converts dialect source text into a flat token stream."""

from __future__ import annotations

import html
import re

from richmsg.dialects import LIST_MARKER_GLYPHS, Dialect
from richmsg.tokens import Position, Span, Token, TokenType, is_word_char

_DELIMITERS: dict[Dialect, dict[str, TokenType]] = {
    Dialect.MARKDOWN: {
        "**": TokenType.BOLD,
        "*": TokenType.ITALIC,
        "__": TokenType.UNDERLINE,
        "~~": TokenType.STRIKETHROUGH,
    },
    Dialect.MARKDOWN_V2: {
        "*": TokenType.BOLD,
        "_": TokenType.ITALIC,
        "__": TokenType.UNDERLINE,
        "~": TokenType.STRIKETHROUGH,
        "||": TokenType.SPOILER,
    },
}

_HTML_TAGS: dict[str, TokenType] = {
    "b": TokenType.BOLD,
    "strong": TokenType.BOLD,
    "i": TokenType.ITALIC,
    "em": TokenType.ITALIC,
    "u": TokenType.UNDERLINE,
    "ins": TokenType.UNDERLINE,
    "s": TokenType.STRIKETHROUGH,
    "strike": TokenType.STRIKETHROUGH,
    "del": TokenType.STRIKETHROUGH,
    "tg-spoiler": TokenType.SPOILER,
    "code": TokenType.CODE,
    "pre": TokenType.PRE,
    "blockquote": TokenType.QUOTE,
    "ul": TokenType.LIST,
    "ol": TokenType.LIST,
    "li": TokenType.LIST_ITEM,
    "table": TokenType.TABLE,
    "tr": TokenType.TABLE_ROW,
    "th": TokenType.TABLE_CELL,
    "td": TokenType.TABLE_CELL,
}

# Table section wrappers carry no structure of their own
_HTML_IGNORED = frozenset({"thead", "tbody", "tfoot"})


_MD_LIST_RE = re.compile(rf"( *)(-|\d+\.|[{LIST_MARKER_GLYPHS}]) ")
_TABLE_DELIM_RE = re.compile(r"\|(?: *:?-+:? *\|)+ *")
_COVER_CELL_RE = re.compile(r"[ \t]*\^\^[ \t]*(?=\|)")
_CUSTOM_EMOJI_RE = re.compile(r"!\[([^\]\\\n]+)\]\(tg://emoji\?id=(\d+)\)")
_CODE_ESCAPE_RE = re.compile(r"\\([\\`])")
_TEXT_ESCAPE_RE = re.compile(r"\\(.)")

_URL_RE = re.compile(r"https?://[^\s<>\[\]()\\`*|\"'{}]+")
_URL_TRAILING = ".,;:!?"

_EMOJI_BODY = "[\U0001f300-\U0001faff\U00002600-\U000027bf][\U0000fe0f\U0001f3fb-\U0001f3ff]*"
_EMOJI_RE = re.compile(f"[\U0001f1e6-\U0001f1ff]{{2}}|{_EMOJI_BODY}(?:\U0000200d{_EMOJI_BODY})*")

_HTML_TAG_RE = re.compile(
    r"<(/?)([a-zA-Z][a-zA-Z0-9-]*)"
    r"((?:\s+[^\s=/>]+(?:\s*=\s*(?:\"[^\"]*\"|'[^']*'|[^\s\"'=<>`]+))?)*)"
    r"\s*/?>"
)
_HTML_ATTR_RE = re.compile(r"([^\s=/>]+)(?:\s*=\s*(?:\"([^\"]*)\"|'([^']*)'|([^\s\"'=<>`]+)))?")
_ENTITY_RE = re.compile(r"&(?:#[0-9]+|#[xX][0-9a-fA-F]+|[a-zA-Z][a-zA-Z0-9]*);")
_PRE_CODE_RE = re.compile(
    r"\s*<code(?:\s+class=\"language-([^\"]*)\")?\s*>(.*)</code>\s*",
    re.DOTALL | re.IGNORECASE,
)


def _parse_attrs(text: str) -> tuple[tuple[str, str], ...]:
    result: list[tuple[str, str]] = []
    for m in _HTML_ATTR_RE.finditer(text):
        value = next((g for g in m.group(2, 3, 4) if g is not None), "")
        result.append((m.group(1).lower(), html.unescape(value)))
    return tuple(result)


class Lexer:
    """Tokenize source text in one dialect into a stream of Token objects.

    The lexer never fails: anything that does not form a construct of the
    dialect is emitted as TEXT. Nesting is checked by the parser.
    """

    def __init__(self, source: str, dialect: Dialect) -> None:
        self._source = source
        self._dialect = dialect
        self._pos = 0
        self._line = 1
        self._col = 1
        self._tokens: list[Token] = []
        self._delims = _DELIMITERS.get(dialect, {})
        self._open_delims: list[str] = []  # lexically open markdown delimiters
        self._link_closes: list[tuple[int, int]] = []  # (offset of ']', end of '(url)')
        self._table_line = False
        self._anchor_depth = 0
        self._spans: list[bool] = []  # open <span> tags, True for spoilers

        if dialect is Dialect.HTML:
            self._specials = frozenset("<&\n@#")
        else:
            self._specials = frozenset("\\\n\r`[!@#") | {d[0] for d in self._delims}

    def tokenize(self) -> list[Token]:
        """Tokenize the full source and return the token list."""
        while self._pos < len(self._source):
            if self._dialect is Dialect.PLAIN:
                self._lex_plain()
            elif self._dialect is Dialect.HTML:
                self._lex_html()
            else:
                self._lex_markdown()

        self._emit(TokenType.EOF, "", "")
        return self._tokens

    # ------------------------------------------------------------------
    # Position helpers
    # ------------------------------------------------------------------

    def _current_pos(self) -> Position:
        return Position(self._line, self._col, self._pos)

    def _peek(self, offset: int = 0) -> str:
        idx = self._pos + offset
        if idx < len(self._source):
            return self._source[idx]
        return ""

    def _advance(self) -> str:
        ch = self._source[self._pos]
        self._pos += 1
        if ch == "\n":
            self._line += 1
            self._col = 1
        else:
            self._col += 1
        return ch

    def _advance_to(self, offset: int) -> None:
        while self._pos < offset:
            self._advance()

    def _at_line_start(self) -> bool:
        return self._pos == 0 or self._source[self._pos - 1] == "\n"

    def _emit(
        self,
        tt: TokenType,
        value: str,
        raw: str,
        start: Position | None = None,
        *,
        closing: bool = False,
        attrs: tuple[tuple[str, str], ...] = (),
    ) -> Token:
        end = self._current_pos()
        if start is None:
            start = end
        tok = Token(tt, value, raw, Span(start, end), closing, attrs)
        self._tokens.append(tok)
        return tok

    def _consume(
        self,
        tt: TokenType,
        value: str,
        length: int,
        *,
        closing: bool = False,
        attrs: tuple[tuple[str, str], ...] = (),
    ) -> Token:
        """Emit a token covering the next *length* source characters."""
        start = self._current_pos()
        raw = self._source[self._pos : self._pos + length]
        self._advance_to(self._pos + length)
        return self._emit(tt, value, raw, start, closing=closing, attrs=attrs)

    def _may_start_token(self, offset: int) -> bool:
        ch = self._source[offset]
        if ch in self._specials:
            return True
        if ch == "|" and self._table_line:
            return True
        if self._link_closes and offset == self._link_closes[-1][0]:
            return True
        if ch == "h":
            return self._source.startswith(("http://", "https://"), offset)
        return ord(ch) >= 0x2600 and _EMOJI_RE.match(self._source, offset) is not None

    def _unescape(self, text: str) -> str:
        if self._dialect is Dialect.HTML:
            return html.unescape(text)
        if self._dialect.is_markdown:
            return _TEXT_ESCAPE_RE.sub(r"\1", text)
        return text

    # ------------------------------------------------------------------
    # Shared lexing
    # ------------------------------------------------------------------

    def _lex_text(self) -> None:
        end = self._pos + 1
        while end < len(self._source) and not self._may_start_token(end):
            end += 1
        text = self._source[self._pos : end]
        self._consume(TokenType.TEXT, text, len(text))

    def _read_word(self, offset: int) -> tuple[str, int]:
        """Read a name starting at *offset*; return it and its source length."""
        src = self._source
        chars: list[str] = []
        i = offset
        while i < len(src):
            ch = src[i]
            if is_word_char(ch):
                chars.append(ch)
                i += 1
            elif (
                ch == "\\"
                and self._dialect.is_markdown
                and i + 1 < len(src)
                and is_word_char(src[i + 1])
            ):
                chars.append(src[i + 1])
                i += 2
            else:
                break
        return "".join(chars), i - offset

    def _lex_command(self) -> bool:
        if self._peek() != "/":
            return False
        name, length = self._read_word(self._pos + 1)
        if not name:
            return False

        end = self._pos + 1 + length
        args: tuple[tuple[str, str], ...] = ()
        if self._source.startswith(" ", end):
            line_end = self._source.find("\n", end)
            if line_end == -1:
                line_end = len(self._source)
            words = self._unescape(self._source[end:line_end]).split(" ")
            args = tuple(("arg", word) for word in words if word)
            end = line_end
        self._consume(TokenType.COMMAND, name, end - self._pos, attrs=args)
        return True

    def _lex_entity(self) -> bool:
        """Try a mention, hashtag, bare URL or emoji at the current position."""
        src = self._source
        ch = self._peek()
        prev = src[self._pos - 1] if self._pos else ""
        boundary = not is_word_char(prev) if prev else True

        if ch in "@#":
            if not boundary:
                return False
            name, length = self._read_word(self._pos + 1)
            if not name:
                return False
            tt = TokenType.MENTION if ch == "@" else TokenType.HASHTAG
            self._consume(tt, name, 1 + length)
            return True

        if ch == "h":
            if not boundary or self._link_closes or self._anchor_depth:
                return False
            m = _URL_RE.match(src, self._pos)
            if m is None:
                return False
            url = m.group(0).rstrip(_URL_TRAILING)
            self._consume(TokenType.URL, url, len(url))
            return True

        if ord(ch) >= 0x2600:
            m = _EMOJI_RE.match(src, self._pos)
            if m is not None:
                self._consume(TokenType.EMOJI, m.group(0), len(m.group(0)))
                return True
        return False

    # ------------------------------------------------------------------
    # Plain
    # ------------------------------------------------------------------

    def _lex_plain(self) -> None:
        if self._peek() == "\n":
            self._consume(TokenType.LINE_BREAK, "\n", 1)
            return
        end = self._source.find("\n", self._pos)
        if end == -1:
            end = len(self._source)
        text = self._source[self._pos : end]
        self._consume(TokenType.TEXT, text, len(text))

    # ------------------------------------------------------------------
    # Markdown and MarkdownV2
    # ------------------------------------------------------------------

    def _lex_markdown(self) -> None:
        if self._at_line_start():
            self._table_line = False
            if self._lex_line_start():
                return

        src = self._source
        if self._link_closes and self._pos == self._link_closes[-1][0]:
            _, end = self._link_closes.pop()
            self._consume(TokenType.LINK_END, "", end - self._pos, closing=True)
            return

        if self._table_line and src[self._pos - 1] == "|":
            m = _COVER_CELL_RE.match(src, self._pos)
            if m is not None:
                self._consume(TokenType.TABLE_CELL, "^^", m.end() - self._pos)
                return

        ch = self._peek()
        if ch == "\\":
            self._lex_escape()
        elif ch == "\r" and self._peek(1) != "\n":
            # Separator between adjacent delimiter runs
            self._advance()
        elif ch == "\n":
            self._consume(TokenType.LINE_BREAK, "\n", 1)
        elif ch == "`":
            self._lex_backticks()
        elif ch in "*_~|" and any(d[0] == ch for d in self._delims):
            self._lex_delimiter_run()
        elif ch == "|" and self._table_line:
            self._consume(TokenType.PIPE, "|", 1)
        elif ch == "[" and self._lex_link():
            return
        elif ch == "!" and self._lex_custom_emoji():
            return
        elif not self._lex_entity():
            self._lex_text()

    def _lex_line_start(self) -> bool:
        src = self._source
        line_end = src.find("\n", self._pos)
        if line_end == -1:
            line_end = len(src)
        line = src[self._pos : line_end]

        if self._dialect is Dialect.MARKDOWN:
            if line.startswith("|"):
                self._table_line = True
                if _TABLE_DELIM_RE.fullmatch(line):
                    self._consume(TokenType.TABLE_DELIM, line.strip(), len(line))
                else:
                    self._consume(TokenType.TABLE_ROW, "|", 1)
                return True

            m = _MD_LIST_RE.match(line)
            if m is not None:
                indent = (("indent", str(len(m.group(1)))),)
                self._consume(TokenType.LIST_ITEM, m.group(2), m.end(), attrs=indent)
                return True

            if line.startswith(">"):
                self._consume(TokenType.QUOTE, ">", 2 if line.startswith("> ") else 1)
                return True

        elif line.startswith(">"):
            self._consume(TokenType.QUOTE, ">", 1)
            return True

        return self._lex_command()

    def _lex_escape(self) -> None:
        nxt = self._peek(1)
        if not nxt or nxt == "\n":
            self._consume(TokenType.TEXT, "\\", 1)
            return
        self._consume(TokenType.ESCAPE, nxt, 2)

    def _find_unescaped(self, needle: str, start: int) -> int:
        src = self._source
        i = start
        while i < len(src):
            if src[i] == "\\":
                i += 2
                continue
            if src.startswith(needle, i):
                return i
            i += 1
        return -1

    def _lex_backticks(self) -> None:
        if self._source.startswith("```", self._pos):
            close = self._find_unescaped("```", self._pos + 3)
            if close != -1:
                self._lex_pre(close)
            else:
                self._consume(TokenType.TEXT, "```", 3)
            return

        close = self._find_unescaped("`", self._pos + 1)
        if close == -1:
            self._consume(TokenType.TEXT, "`", 1)
            return
        self._consume(TokenType.CODE, "", 1)
        body = self._source[self._pos : close]
        if body:
            self._consume(TokenType.TEXT, _CODE_ESCAPE_RE.sub(r"\1", body), len(body))
        self._consume(TokenType.CODE, "", 1, closing=True)

    def _lex_pre(self, close: int) -> None:
        content = self._source[self._pos + 3 : close]
        if "\n" in content:
            first, body = content.split("\n", 1)
            language = first.strip()
            header_len = 3 + len(first) + 1
        else:
            language, body, header_len = "", content, 3
        # The newline before the closing fence belongs to the fence
        if body.endswith("\n"):
            body = body[:-1]

        self._consume(TokenType.PRE, language, header_len)
        if body:
            self._consume(TokenType.TEXT, _CODE_ESCAPE_RE.sub(r"\1", body), len(body))
        self._consume(TokenType.PRE, "", close + 3 - self._pos, closing=True)

    def _has_closer(self, delim: str, start: int) -> bool:
        return self._find_unescaped(delim, start) != -1

    def _lex_delimiter_run(self) -> None:
        src = self._source
        ch = self._peek()
        run_end = self._pos
        while run_end < len(src) and src[run_end] == ch:
            run_end += 1
        remaining = run_end - self._pos
        candidates = sorted((d for d in self._delims if d[0] == ch), key=len, reverse=True)
        run_opened: list[str] = []

        while remaining:
            # The run closes the innermost open delimiters when it matches them exactly
            count = 0 if run_opened else self._closing_count(ch, remaining)
            if count:
                for _ in range(count):
                    delim = self._open_delims.pop()
                    self._consume(self._delims[delim], delim, len(delim))
                return

            opened = next(
                (
                    d
                    for d in candidates
                    if len(d) <= remaining
                    and d not in run_opened
                    and self._has_closer(d, run_end)
                ),
                None,
            )
            if opened is not None:
                run_opened.append(opened)
                self._open_delims.append(opened)
                self._consume(self._delims[opened], opened, len(opened))
                remaining -= len(opened)
                continue

            if run_opened:
                self._consume(TokenType.TEXT, ch * remaining, remaining)
                return

            # Otherwise close the innermost delimiter of this character, even
            # when another delimiter is open inside it
            for depth in range(len(self._open_delims) - 1, -1, -1):
                delim = self._open_delims[depth]
                if delim[0] == ch and len(delim) <= remaining:
                    del self._open_delims[depth:]
                    self._consume(self._delims[delim], delim, len(delim))
                    remaining -= len(delim)
                    break
            else:
                self._consume(TokenType.TEXT, ch * remaining, remaining)
                remaining = 0

    def _closing_count(self, ch: str, length: int) -> int:
        """Number of open delimiters on top of the stack that a run of *length* closes."""
        total = 0
        for count, delim in enumerate(reversed(self._open_delims), start=1):
            if delim[0] != ch:
                return 0
            total += len(delim)
            if total == length:
                return count
            if total > length:
                return 0
        return 0

    def _scan_link(self) -> tuple[int, int, str] | None:
        """Find the ']' and '(url)' closing the link opened at the current '['."""
        src = self._source
        depth = 0
        i = self._pos + 1
        while i < len(src):
            ch = src[i]
            if ch == "\\":
                i += 2
                continue
            if ch == "[":
                depth += 1
            elif ch == "]":
                if depth == 0:
                    break
                depth -= 1
            i += 1
        else:
            return None

        if not src.startswith("(", i + 1):
            return None
        url: list[str] = []
        j = i + 2
        while j < len(src):
            ch = src[j]
            if ch == "\\" and j + 1 < len(src):
                url.append(src[j + 1])
                j += 2
                continue
            if ch == ")":
                return i, j + 1, "".join(url)
            if ch == "\n":
                return None
            url.append(ch)
            j += 1
        return None

    def _lex_link(self) -> bool:
        found = self._scan_link()
        if found is None:
            return False
        close, end, url = found
        self._consume(TokenType.LINK, url, 1)
        self._link_closes.append((close, end))
        return True

    def _lex_custom_emoji(self) -> bool:
        m = _CUSTOM_EMOJI_RE.match(self._source, self._pos)
        if m is None:
            return False
        self._consume(
            TokenType.CUSTOM_EMOJI,
            m.group(1),
            m.end() - self._pos,
            attrs=(("id", m.group(2)),),
        )
        return True

    # ------------------------------------------------------------------
    # HTML
    # ------------------------------------------------------------------

    def _lex_html(self) -> None:
        if self._at_line_start() and self._lex_command():
            return

        ch = self._peek()
        if ch == "<":
            self._lex_tag()
        elif ch == "&":
            self._lex_char_entity()
        elif ch == "\n":
            self._consume(TokenType.LINE_BREAK, "\n", 1)
        elif not self._lex_entity():
            self._lex_text()

    def _lex_char_entity(self) -> None:
        m = _ENTITY_RE.match(self._source, self._pos)
        if m is None:
            self._consume(TokenType.TEXT, "&", 1)
            return
        raw = m.group(0)
        value = html.unescape(raw)
        tt = TokenType.TEXT if value == raw else TokenType.ESCAPE
        self._consume(tt, value, len(raw))

    def _lex_tag(self) -> None:
        m = _HTML_TAG_RE.match(self._source, self._pos)
        if m is None:
            self._consume(TokenType.TEXT, "<", 1)
            return

        closing = m.group(1) == "/"
        name = m.group(2).lower()
        attrs = _parse_attrs(m.group(3))
        length = m.end() - self._pos
        raw = m.group(0)

        if not closing and name in ("code", "pre"):
            self._lex_raw_element(name, attrs, m.end())
        elif not closing and name == "tg-emoji":
            self._lex_tg_emoji(attrs, m.end())
        elif name == "br":
            self._consume(TokenType.LINE_BREAK, "\n", length)
        elif name == "a":
            if closing:
                self._anchor_depth = max(0, self._anchor_depth - 1)
                self._consume(TokenType.LINK_END, "", length, closing=True)
            else:
                self._anchor_depth += 1
                href = next((v for k, v in attrs if k == "href"), "")
                self._consume(TokenType.LINK, href, length, attrs=attrs)
        elif name == "span":
            if closing:
                spoiler = self._spans.pop() if self._spans else False
            else:
                classes = next((v for k, v in attrs if k == "class"), "")
                spoiler = "tg-spoiler" in classes.split()
                self._spans.append(spoiler)
            if spoiler:
                self._consume(TokenType.SPOILER, name, length, closing=closing, attrs=attrs)
            else:
                self._consume(TokenType.TEXT, raw, length)
        elif name in _HTML_IGNORED:
            self._advance_to(m.end())
        elif name in _HTML_TAGS:
            self._consume(_HTML_TAGS[name], name, length, closing=closing, attrs=attrs)
        else:
            self._consume(TokenType.TEXT, raw, length)

    def _lex_raw_element(
        self, name: str, attrs: tuple[tuple[str, str], ...], content_start: int
    ) -> None:
        """Lex <code> or <pre> whose content is taken verbatim up to the closing tag."""
        tt = TokenType.CODE if name == "code" else TokenType.PRE
        open_len = content_start - self._pos
        close = re.compile(rf"</{name}\s*>", re.IGNORECASE).search(self._source, content_start)
        if close is None:
            # Left unclosed for the parser to report
            self._consume(tt, "", open_len, attrs=attrs)
            return

        inner = self._source[content_start : close.start()]
        language = ""
        if tt is TokenType.PRE:
            m = _PRE_CODE_RE.fullmatch(inner)
            if m is not None:
                language = m.group(1) or ""
                inner = m.group(2)

        self._consume(tt, language, open_len, attrs=attrs)
        if inner:
            body_len = close.start() - self._pos
            self._consume(TokenType.TEXT, html.unescape(inner), body_len)
        self._consume(tt, "", close.end() - self._pos, closing=True)

    def _lex_tg_emoji(self, attrs: tuple[tuple[str, str], ...], content_start: int) -> None:
        emoji_id = next((v for k, v in attrs if k == "emoji-id"), "")
        close = re.compile(r"</tg-emoji\s*>", re.IGNORECASE).search(self._source, content_start)
        if close is None or not emoji_id.isdigit():
            length = content_start - self._pos
            self._consume(TokenType.TEXT, self._source[self._pos : content_start], length)
            return
        glyph = html.unescape(self._source[content_start : close.start()])
        self._consume(
            TokenType.CUSTOM_EMOJI,
            glyph,
            close.end() - self._pos,
            attrs=(("id", emoji_id),),
        )


def tokenize(dialect: Dialect, source: str) -> list[Token]:
    """Convenience: tokenize source text in the given dialect."""
    return Lexer(source, dialect).tokenize()
