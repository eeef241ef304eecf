"""Tests for the --debug tree dump."""

from __future__ import annotations

import io

from richmsg.ast import Align, Command, Pre, bold, bullet_list, cell, group, item, link, table
from richmsg.debug import dump_ast


def _dump(node) -> str:
    buf = io.StringIO()
    dump_ast(node, file=buf)
    return buf.getvalue()


class TestDumpAst:
    def test_containers_indent(self):
        out = _dump(group(bold("x")))
        assert out == "Group\n  Bold\n    Text('x')\n"

    def test_leaves(self):
        out = _dump(group(Pre("a", "py"), Command("start", ("now",))))
        assert out.splitlines()[1:] == ["  Pre lang=py('a')", "  Command(/start now)"]

    def test_link(self):
        assert _dump(link("https://a.org", "a")) == "Link -> https://a.org\n  Text('a')\n"

    def test_list(self):
        out = _dump(bullet_list(item("a", nested=bullet_list("b"))))
        assert out.splitlines() == [
            "List bullet",
            "  Item",
            "    Text('a')",
            "    List bullet",
            "      Item",
            "        Text('b')",
        ]

    def test_table(self):
        out = _dump(table([cell("h", align=Align.CENTER)], [cell("v", colspan=1)]))
        assert out.splitlines() == [
            "Table ascii",
            "  Header (center)",
            "    Text('h')",
            "  Row",
            "    Cell",
            "      Text('v')",
        ]
