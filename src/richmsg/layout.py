"""Table grid layout: span bookkeeping and text-grid rendering."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from richmsg.ast import Align, Cell, Table, TableStyle


class TableShapeError(ValueError):
    """A table's cells do not tile a rectangular grid."""

    def __init__(self, message: str, expected: int, found: int, row: int) -> None:
        self.expected = expected
        self.found = found
        self.row = row
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class Slot:
    """One cell placed on the grid.

    Rows covered by a cell's rowspan below its first row hold a slot with
    ``origin=False`` for the same cell.
    """

    cell: Cell
    row: int
    column: int
    origin: bool = True


def grid_rows(table: Table) -> list[tuple[Cell, ...]]:
    """Header cells (when present) followed by each body row's cells."""
    rows = [r.cells for r in table.rows]
    if table.headers:
        rows.insert(0, table.headers)
    return rows


def table_grid(table: Table) -> list[list[Slot]]:
    """Place every cell of *table* on a grid, header row first.

    Raises TableShapeError when a row does not cover the header's width
    once the rowspans carried from earlier rows are counted.
    """
    rows = grid_rows(table)
    if not rows:
        return []

    width = sum(c.colspan for c in rows[0])
    pending = [0] * width  # rows still covered below, per column
    carried: list[Cell | None] = [None] * width
    grid: list[list[Slot]] = []

    for r, cells in enumerate(rows):
        found = sum(1 for k in pending if k) + sum(c.colspan for c in cells)
        if found != width:
            raise TableShapeError(
                f"row {r + 1} covers {found} column(s), expected {width}", width, found, r
            )

        slots: list[Slot] = []
        remaining = iter(cells)
        col = 0
        while col < width:
            above = carried[col]
            if pending[col] and above is not None:
                slots.append(Slot(above, r, col, origin=False))
                for k in range(col, col + above.colspan):
                    pending[k] -= 1
                col += above.colspan
                continue

            cell = next(remaining, None)
            end = col + cell.colspan if cell is not None else col
            if cell is None or end > width or any(pending[col:end]):
                raise TableShapeError(
                    f"cells in row {r + 1} overlap a row span", width, found, r
                )
            slots.append(Slot(cell, r, col))
            if cell.rowspan > 1:
                for k in range(col, end):
                    pending[k] = cell.rowspan - 1
                    carried[k] = cell
            col = end

        grid.append(slots)

    overflow = max(pending, default=0)
    if overflow:
        raise TableShapeError(
            "row span extends past the last row",
            len(rows),
            len(rows) + overflow,
            len(rows) - 1,
        )
    return grid


# ----------------------------------------------------------------------
# Text grids
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Rule:
    fill: str
    left: str
    joint: str
    right: str


@dataclass(frozen=True, slots=True)
class _Frame:
    left: str
    sep: str
    right: str
    top: _Rule | None = None
    middle: _Rule | None = None
    bottom: _Rule | None = None

    @property
    def bordered(self) -> bool:
        return bool(self.left)


_ASCII_RULE = _Rule("-", "+", "+", "+")

_FRAMES: dict[TableStyle, _Frame] = {
    TableStyle.ASCII: _Frame("| ", " | ", " |", _ASCII_RULE, _ASCII_RULE, _ASCII_RULE),
    TableStyle.UNICODE: _Frame(
        "│ ",
        " │ ",
        " │",
        _Rule("─", "┌", "┬", "┐"),
        _Rule("─", "├", "┼", "┤"),
        _Rule("─", "└", "┴", "┘"),
    ),
    TableStyle.MINIMAL: _Frame("", "  ", "", middle=_Rule("─", "", "  ", "")),
    TableStyle.COMPACT: _Frame("", " ", ""),
}


def _rule(rule: _Rule, widths: list[int], pad: int) -> str:
    return rule.left + rule.joint.join(rule.fill * (w + pad) for w in widths) + rule.right


def _aligned(text: str, width: int, align: Align) -> str:
    if align is Align.RIGHT:
        return text.rjust(width)
    if align is Align.CENTER:
        return text.center(width)
    return text.ljust(width)


def render_text_table(table: Table, grid: list[list[Slot]], text_of: Callable[[Cell], str]) -> str:
    """Lay out a placed grid as monospace text in the table's style."""
    if not grid:
        return ""

    frame = _FRAMES[table.style]
    sep = len(frame.sep)
    columns = sum(slot.cell.colspan for slot in grid[0])
    texts = [[text_of(slot.cell) if slot.origin else "" for slot in row] for row in grid]

    widths = [0] * columns
    for row, row_texts in zip(grid, texts):
        for slot, text in zip(row, row_texts):
            if slot.cell.colspan == 1:
                widths[slot.column] = max(widths[slot.column], len(text))

    # Spanned cells widen their last column when the columns they cover are too narrow
    spanned = [
        (slot, text)
        for row, row_texts in zip(grid, texts)
        for slot, text in zip(row, row_texts)
        if slot.cell.colspan > 1
    ]
    spanned.sort(key=lambda pair: pair[0].cell.colspan)
    for slot, text in spanned:
        first, last = slot.column, slot.column + slot.cell.colspan
        have = sum(widths[first:last]) + sep * (slot.cell.colspan - 1)
        if len(text) > have:
            widths[last - 1] += len(text) - have

    pad = 2 if frame.bordered else 0
    lines: list[str] = []
    if frame.top is not None:
        lines.append(_rule(frame.top, widths, pad))

    for r, (row, row_texts) in enumerate(zip(grid, texts)):
        parts = []
        for slot, text in zip(row, row_texts):
            first, last = slot.column, slot.column + slot.cell.colspan
            width = sum(widths[first:last]) + sep * (slot.cell.colspan - 1)
            parts.append(_aligned(text, width, slot.cell.align))
        lines.append(frame.left + frame.sep.join(parts) + frame.right)
        if r == 0 and table.headers and frame.middle is not None:
            lines.append(_rule(frame.middle, widths, pad))

    if frame.bottom is not None:
        lines.append(_rule(frame.bottom, widths, pad))

    if not frame.bordered:
        lines = [line.rstrip() for line in lines]
    return "\n".join(lines)
