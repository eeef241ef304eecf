"""--debug tree dump to stderr."""

from __future__ import annotations

import sys
from typing import TextIO

from richmsg.ast import (
    CONTAINERS,
    Cell,
    Code,
    Command,
    Custom,
    CustomEmoji,
    CustomMarker,
    Emoji,
    Hashtag,
    Link,
    List,
    Mention,
    MentionId,
    Node,
    Pre,
    Table,
    Text,
    TextLink,
)


def dump_ast(node: Node, *, file: TextIO = sys.stderr) -> None:
    """Print a human-readable document tree to *file*."""
    _dump_node(node, 0, file)


def _indent(depth: int) -> str:
    return "  " * depth


def _dump_node(node: Node, depth: int, f: TextIO) -> None:
    pad = _indent(depth)
    match node:
        case Text(value=value):
            f.write(f"{pad}Text({value!r})\n")
        case Code(code=code):
            f.write(f"{pad}Code({code!r})\n")
        case Pre(code=code, language=language):
            lang = f" lang={language}" if language else ""
            f.write(f"{pad}Pre{lang}({code!r})\n")
        case Mention(username=username):
            f.write(f"{pad}Mention(@{username})\n")
        case MentionId(user_id=user_id, text=text):
            f.write(f"{pad}MentionId({user_id}, {text!r})\n")
        case Hashtag(tag=tag):
            f.write(f"{pad}Hashtag(#{tag})\n")
        case Command(name=name, args=args):
            shown = " ".join(("/" + name, *args))
            f.write(f"{pad}Command({shown})\n")
        case Emoji(glyph=glyph):
            f.write(f"{pad}Emoji({glyph})\n")
        case CustomEmoji(glyph=glyph, id=emoji_id):
            f.write(f"{pad}CustomEmoji({glyph}, id={emoji_id})\n")
        case TextLink(text=text, url=url):
            f.write(f"{pad}TextLink({text!r} -> {url})\n")
        case Custom(formatter=formatter, value=value):
            f.write(f"{pad}Custom({formatter}: {value!r})\n")
        case Link(children=children, url=url):
            f.write(f"{pad}Link -> {url}\n")
            for child in children:
                _dump_node(child, depth + 1, f)
        case List():
            _dump_list(node, depth, f)
        case Table():
            _dump_table(node, depth, f)
        case _ if isinstance(node, CONTAINERS):
            f.write(f"{pad}{type(node).__name__}\n")
            for child in node.children:
                _dump_node(child, depth + 1, f)


def _dump_list(node: List, depth: int, f: TextIO) -> None:
    style = node.style.marker if isinstance(node.style, CustomMarker) else node.style.value
    f.write(f"{_indent(depth)}List {style}\n")
    for item in node.items:
        f.write(f"{_indent(depth + 1)}Item\n")
        for child in item.content:
            _dump_node(child, depth + 2, f)
        if item.nested is not None:
            _dump_list(item.nested, depth + 2, f)


def _dump_cell(kind: str, cell: Cell, depth: int, f: TextIO) -> None:
    extras = []
    if cell.align.value != "left":
        extras.append(cell.align.value)
    if cell.colspan > 1:
        extras.append(f"colspan={cell.colspan}")
    if cell.rowspan > 1:
        extras.append(f"rowspan={cell.rowspan}")
    suffix = f" ({', '.join(extras)})" if extras else ""
    f.write(f"{_indent(depth)}{kind}{suffix}\n")
    for child in cell.content:
        _dump_node(child, depth + 1, f)


def _dump_table(node: Table, depth: int, f: TextIO) -> None:
    rules = f", {len(node.rules)} rule(s)" if node.rules else ""
    f.write(f"{_indent(depth)}Table {node.style.value}{rules}\n")
    for cell in node.headers:
        _dump_cell("Header", cell, depth + 1, f)
    for row in node.rows:
        f.write(f"{_indent(depth + 1)}Row\n")
        for cell in row.cells:
            _dump_cell("Cell", cell, depth + 2, f)
