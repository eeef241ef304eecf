"""Document tree node types for formatted messages."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from richmsg.tokens import Span

if TYPE_CHECKING:
    from richmsg.conditional import ConditionalFormat


def _span() -> Span | None:
    return field(default=None, compare=False, repr=False)


# ----------------------------------------------------------------------
# Leaves
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Text:
    """Literal text, escaped on output."""

    value: str
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class Code:
    code: str
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class Pre:
    """Preformatted block; the code is never tokenized again."""

    code: str
    language: str | None = None
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class Hashtag:
    tag: str
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class Emoji:
    glyph: str
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class CustomEmoji:
    glyph: str
    id: int
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class Command:
    """Bot command: /name followed by space-separated args."""

    name: str
    args: tuple[str, ...] = ()
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class Mention:
    username: str
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class MentionId:
    """Mention of a user by numeric id, shown as text."""

    user_id: int
    text: str
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class TextLink:
    """Link whose text is a plain string."""

    text: str
    url: str
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class Custom:
    """Raw value rendered by the formatter registered under *formatter*."""

    formatter: str
    value: str
    span: Span | None = _span()


# ----------------------------------------------------------------------
# Containers
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Bold:
    children: tuple[Node, ...]
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class Italic:
    children: tuple[Node, ...]
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class Underline:
    children: tuple[Node, ...]
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class Strikethrough:
    children: tuple[Node, ...]
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class Spoiler:
    children: tuple[Node, ...]
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class Quote:
    children: tuple[Node, ...]
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class Group:
    """Ordered sequence of nodes with no formatting of its own."""

    children: tuple[Node, ...]
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class Link:
    children: tuple[Node, ...]
    url: str
    span: Span | None = _span()


# ----------------------------------------------------------------------
# Lists
# ----------------------------------------------------------------------


class ListStyle(Enum):
    BULLET = "bullet"
    NUMBERED = "numbered"


@dataclass(frozen=True, slots=True)
class CustomMarker:
    """List style using a fixed marker glyph for every item."""

    marker: str


@dataclass(frozen=True, slots=True)
class ListItem:
    content: tuple[Node, ...]
    nested: List | None = None
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class List:
    items: tuple[ListItem, ...]
    style: ListStyle | CustomMarker = ListStyle.BULLET
    span: Span | None = _span()


# ----------------------------------------------------------------------
# Tables
# ----------------------------------------------------------------------


class Align(Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class TableStyle(Enum):
    ASCII = "ascii"
    UNICODE = "unicode"
    MINIMAL = "minimal"
    COMPACT = "compact"


@dataclass(frozen=True, slots=True)
class Cell:
    content: tuple[Node, ...]
    align: Align = Align.LEFT
    colspan: int = 1
    rowspan: int = 1
    span: Span | None = _span()

    def __post_init__(self) -> None:
        if self.colspan < 1:
            raise ValueError(f"colspan must be at least 1, got {self.colspan}")
        if self.rowspan < 1:
            raise ValueError(f"rowspan must be at least 1, got {self.rowspan}")


@dataclass(frozen=True, slots=True)
class Row:
    cells: tuple[Cell, ...]
    span: Span | None = _span()


@dataclass(frozen=True, slots=True)
class Table:
    """Header cells, body rows, a text-grid style, and conditional rules.

    Rules are applied to body cells at generation time; the stored rows
    are never rewritten in place.
    """

    headers: tuple[Cell, ...]
    rows: tuple[Row, ...]
    style: TableStyle = TableStyle.ASCII
    rules: tuple[ConditionalFormat, ...] = ()
    span: Span | None = _span()


Node = (
    Text
    | Code
    | Pre
    | Hashtag
    | Emoji
    | CustomEmoji
    | Command
    | Mention
    | MentionId
    | TextLink
    | Custom
    | Bold
    | Italic
    | Underline
    | Strikethrough
    | Spoiler
    | Quote
    | Group
    | Link
    | List
    | Table
)

# Containers whose children are a plain node tuple
CONTAINERS = (Bold, Italic, Underline, Strikethrough, Spoiler, Quote, Group, Link)


# ----------------------------------------------------------------------
# Constructor helpers
# ----------------------------------------------------------------------


def _nodes(items: Iterable[Node | str]) -> tuple[Node, ...]:
    return tuple(Text(item) if isinstance(item, str) else item for item in items)


def text(value: str) -> Text:
    return Text(value)


def bold(*children: Node | str) -> Bold:
    return Bold(_nodes(children))


def italic(*children: Node | str) -> Italic:
    return Italic(_nodes(children))


def underline(*children: Node | str) -> Underline:
    return Underline(_nodes(children))


def strikethrough(*children: Node | str) -> Strikethrough:
    return Strikethrough(_nodes(children))


def spoiler(*children: Node | str) -> Spoiler:
    return Spoiler(_nodes(children))


def quote(*children: Node | str) -> Quote:
    return Quote(_nodes(children))


def group(*children: Node | str) -> Group:
    return Group(_nodes(children))


def link(url: str, *children: Node | str) -> Link:
    return Link(_nodes(children), url)


def item(*content: Node | str, nested: List | None = None) -> ListItem:
    return ListItem(_nodes(content), nested)


def _items(items: Iterable[ListItem | Node | str]) -> tuple[ListItem, ...]:
    return tuple(i if isinstance(i, ListItem) else item(i) for i in items)


def bullet_list(*items: ListItem | Node | str) -> List:
    return List(_items(items), ListStyle.BULLET)


def numbered_list(*items: ListItem | Node | str) -> List:
    return List(_items(items), ListStyle.NUMBERED)


def marker_list(marker: str, *items: ListItem | Node | str) -> List:
    return List(_items(items), CustomMarker(marker))


def cell(
    *content: Node | str,
    align: Align = Align.LEFT,
    colspan: int = 1,
    rowspan: int = 1,
) -> Cell:
    return Cell(_nodes(content), align, colspan, rowspan)


def _cell(value: Cell | Node | str) -> Cell:
    return value if isinstance(value, Cell) else cell(value)


def row(*cells: Cell | Node | str) -> Row:
    return Row(tuple(_cell(c) for c in cells))


def table(
    headers: Iterable[Cell | Node | str],
    *rows: Row | Iterable[Cell | Node | str],
    style: TableStyle = TableStyle.ASCII,
    rules: Iterable[ConditionalFormat] = (),
) -> Table:
    """Build a table from header values and rows of cell values."""
    body = tuple(r if isinstance(r, Row) else row(*r) for r in rows)
    return Table(tuple(_cell(h) for h in headers), body, style, tuple(rules))


# ----------------------------------------------------------------------
# Inspection
# ----------------------------------------------------------------------


def plain_text(nodes: Iterable[Node]) -> str:
    """Flatten nodes to their visible text, without any markup."""
    parts: list[str] = []
    for node in nodes:
        match node:
            case Text(value=value):
                parts.append(value)
            case Code(code=code) | Pre(code=code):
                parts.append(code)
            case Hashtag(tag=tag):
                parts.append("#" + tag)
            case Emoji(glyph=glyph) | CustomEmoji(glyph=glyph):
                parts.append(glyph)
            case Command(name=name, args=args):
                parts.append(" ".join(("/" + name, *args)))
            case Mention(username=username):
                parts.append("@" + username)
            case MentionId(text=value) | TextLink(text=value) | Custom(value=value):
                parts.append(value)
            case List(items=items):
                for entry in items:
                    parts.append(plain_text(entry.content))
                    if entry.nested is not None:
                        parts.append(plain_text((entry.nested,)))
            case Table(headers=headers, rows=rows):
                for c in headers:
                    parts.append(plain_text(c.content))
                for r in rows:
                    for c in r.cells:
                        parts.append(plain_text(c.content))
            case _:
                parts.append(plain_text(node.children))
    return "".join(parts)
