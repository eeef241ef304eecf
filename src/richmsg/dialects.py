"""Markup dialects and the escaping rules that keep text literal in each."""

from __future__ import annotations

from enum import Enum

from richmsg.tokens import is_word_char


class Dialect(Enum):
    PLAIN = "plain"
    MARKDOWN = "markdown"
    MARKDOWN_V2 = "markdownv2"
    HTML = "html"

    @classmethod
    def from_name(cls, name: str) -> Dialect:
        """Look up a dialect by value or common alias, case-insensitively."""
        key = name.strip().lower().replace("_", "").replace("-", "")
        dialect = _ALIASES.get(key)
        if dialect is None:
            choices = ", ".join(d.value for d in cls)
            raise ValueError(f"unknown dialect '{name}' (expected one of: {choices})")
        return dialect

    @property
    def is_markdown(self) -> bool:
        return self in (Dialect.MARKDOWN, Dialect.MARKDOWN_V2)


_ALIASES = {
    "plain": Dialect.PLAIN,
    "text": Dialect.PLAIN,
    "txt": Dialect.PLAIN,
    "markdown": Dialect.MARKDOWN,
    "md": Dialect.MARKDOWN,
    "markdownv2": Dialect.MARKDOWN_V2,
    "mdv2": Dialect.MARKDOWN_V2,
    "v2": Dialect.MARKDOWN_V2,
    "html": Dialect.HTML,
    "htm": Dialect.HTML,
}

# Characters always backslash-escaped in text
MARKDOWN_V2_RESERVED = frozenset("_*[]()~`>#+-=|{}.!\\")
MARKDOWN_RESERVED = frozenset("\\`*_~|[]()>#+-.!{}^")

# Single glyphs markdown reads as list markers at the start of a line
LIST_MARKER_GLYPHS = "→▪▸►◦‣⁃○●■□◆◇»"

# Characters that start an entity when followed by a word character
_ENTITY_PREFIXES = frozenset("@#/")

_HTML_TEXT_ESCAPES = {"&": "&amp;", "<": "&lt;", ">": "&gt;"}
_HTML_ATTR_ESCAPES = {**_HTML_TEXT_ESCAPES, '"': "&quot;"}


def _starts_emoji(ch: str) -> bool:
    code = ord(ch)
    return (
        0x1F1E6 <= code <= 0x1F1FF or 0x1F300 <= code <= 0x1FAFF or 0x2600 <= code <= 0x27BF
    )


def _opens_list_item(text: str, i: int) -> bool:
    if text[i] not in LIST_MARKER_GLYPHS or not text.startswith(" ", i + 1):
        return False
    line_start = text.rfind("\n", 0, i) + 1
    return text[line_start:i].strip(" ") == ""


def _needs_context_escape(text: str, i: int) -> bool:
    ch = text[i]
    nxt = text[i + 1] if i + 1 < len(text) else ""
    if _starts_emoji(ch):
        return True
    if ch in _ENTITY_PREFIXES:
        return bool(nxt) and is_word_char(nxt)
    if ch == ":":
        return text.startswith("//", i + 1)
    return False


def escape_text(dialect: Dialect, text: str) -> str:
    """Escape *text* so that parsing the result in *dialect* yields it unchanged."""
    if dialect is Dialect.PLAIN:
        return text

    reserved: frozenset[str]
    if dialect is Dialect.MARKDOWN_V2:
        reserved = MARKDOWN_V2_RESERVED
    elif dialect is Dialect.MARKDOWN:
        reserved = MARKDOWN_RESERVED
    else:
        reserved = frozenset()

    out: list[str] = []
    for i, ch in enumerate(text):
        if dialect is Dialect.HTML:
            if ch in _HTML_ATTR_ESCAPES:
                out.append(_HTML_ATTR_ESCAPES[ch])
            elif _needs_context_escape(text, i):
                out.append(f"&#{ord(ch)};")
            else:
                out.append(ch)
        elif ch in reserved or _needs_context_escape(text, i):
            out.append("\\" + ch)
        elif dialect is Dialect.MARKDOWN and _opens_list_item(text, i):
            out.append("\\" + ch)
        elif ch == "\r" and not text.startswith("\n", i + 1):
            # A lone carriage return separates delimiter runs
            out.append("\\" + ch)
        else:
            out.append(ch)
    return "".join(out)


def escape_code(dialect: Dialect, code: str) -> str:
    """Escape only what would terminate an inline code span or code block."""
    if dialect.is_markdown:
        return code.replace("\\", "\\\\").replace("`", "\\`")
    if dialect is Dialect.HTML:
        return "".join(_HTML_TEXT_ESCAPES.get(ch, ch) for ch in code)
    return code


def escape_url(dialect: Dialect, url: str) -> str:
    """Escape a link target for the url position of *dialect*."""
    if dialect.is_markdown:
        return url.replace("\\", "\\\\").replace(")", "\\)")
    if dialect is Dialect.HTML:
        return escape_attr(url)
    return url


def escape_attr(value: str) -> str:
    """Escape an HTML attribute value for use inside double quotes."""
    return "".join(_HTML_ATTR_ESCAPES.get(ch, ch) for ch in value)


_EXTENSIONS = {
    ".txt": Dialect.PLAIN,
    ".md": Dialect.MARKDOWN,
    ".markdown": Dialect.MARKDOWN,
    ".tgmd": Dialect.MARKDOWN_V2,
    ".mdv2": Dialect.MARKDOWN_V2,
    ".html": Dialect.HTML,
    ".htm": Dialect.HTML,
}


def dialect_for_path(path: str) -> Dialect | None:
    """Guess a file's dialect from its extension."""
    name = path.rsplit("/", 1)[-1].lower()
    dot = name.rfind(".")
    if dot <= 0:
        return None
    return _EXTENSIONS.get(name[dot:])
