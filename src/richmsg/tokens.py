"""Token types, data structures, and character classification helpers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


class TokenType(Enum):
    # Text
    TEXT = auto()  # plain character run
    ESCAPE = auto()  # backslash escape or character entity, value is the resolved character
    LINE_BREAK = auto()  # \n (or <br> in HTML)

    # Paired formatting delimiters
    BOLD = auto()
    ITALIC = auto()
    UNDERLINE = auto()
    STRIKETHROUGH = auto()
    SPOILER = auto()
    CODE = auto()  # inline code delimiter, content follows as one TEXT token
    PRE = auto()  # code block delimiter, value is the language on the opener
    QUOTE = auto()  # line-leading '>' or <blockquote>

    # Entities
    LINK = auto()  # '[' or <a href>, value is the url
    LINK_END = auto()  # '](url)' or </a>
    URL = auto()  # bare url found in text
    MENTION = auto()  # @username
    HASHTAG = auto()  # #tag
    COMMAND = auto()  # /command, args in attrs
    EMOJI = auto()
    CUSTOM_EMOJI = auto()  # value is the glyph, id in attrs

    # Block structure
    LIST = auto()  # <ul> / <ol>
    LIST_ITEM = auto()  # line-leading list marker or <li>
    TABLE = auto()  # <table>
    TABLE_ROW = auto()  # line-leading '|' or <tr>
    TABLE_CELL = auto()  # <th> / <td>, or a '^^' row-span cell in pipe tables
    TABLE_DELIM = auto()  # pipe table alignment row
    PIPE = auto()  # '|' cell separator inside a pipe table row

    EOF = auto()


@dataclass(frozen=True, slots=True)
class Position:
    """Source position, 1-based line and column, 0-based character offset."""

    line: int
    column: int
    offset: int


@dataclass(frozen=True, slots=True)
class Span:
    """Source range from start to end position."""

    start: Position
    end: Position


@dataclass(frozen=True, slots=True)
class Token:
    """A single lexer token with resolved value and original source text."""

    type: TokenType
    value: str
    raw: str
    span: Span
    closing: bool = False
    attrs: tuple[tuple[str, str], ...] = ()

    def attr(self, name: str, default: str | None = None) -> str | None:
        """Return the first attribute called *name*."""
        for key, value in self.attrs:
            if key == name:
                return value
        return default

    def attr_list(self, name: str) -> list[str]:
        """Return every attribute value called *name*, in order."""
        return [value for key, value in self.attrs if key == name]


def is_word_char(ch: str) -> bool:
    """Return True if ch can appear in a username, hashtag, or command name."""
    return ch.isalnum() or ch == "_"
