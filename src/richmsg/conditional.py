"""Conditional formatting rules for table body cells."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace

from richmsg.ast import Cell, Node, Table, plain_text

logger = logging.getLogger(__name__)

Transform = Callable[[tuple[Node, ...]], tuple[Node, ...]]


_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?", re.ASCII)


def _number(text: str) -> float | None:
    """Read a plain decimal number; anything else is not a number."""
    if _NUMBER_RE.fullmatch(text) is None:
        return None
    return float(text)


@dataclass(frozen=True, slots=True)
class GreaterThan:
    threshold: float

    def matches(self, text: str) -> bool:
        value = _number(text)
        return value is not None and value > self.threshold


@dataclass(frozen=True, slots=True)
class LessThan:
    threshold: float

    def matches(self, text: str) -> bool:
        value = _number(text)
        return value is not None and value < self.threshold


@dataclass(frozen=True, slots=True)
class Equals:
    """Exact match of the cell's visible text."""

    value: str

    def matches(self, text: str) -> bool:
        return text == self.value


@dataclass(frozen=True, slots=True)
class Contains:
    substring: str

    def matches(self, text: str) -> bool:
        return self.substring in text


@dataclass(frozen=True, slots=True)
class Matches:
    """Regular expression searched anywhere in the cell's text.

    An invalid pattern never matches.
    """

    pattern: str

    def matches(self, text: str) -> bool:
        try:
            return re.search(self.pattern, text) is not None
        except re.error:
            logger.debug("ignoring invalid pattern %r", self.pattern)
            return False


@dataclass(frozen=True, slots=True)
class Predicate:
    """Arbitrary test over the cell's text, named for display."""

    name: str
    test: Callable[[str], bool]

    def matches(self, text: str) -> bool:
        try:
            return bool(self.test(text))
        except Exception as exc:
            logger.debug("predicate %r failed on %r: %s", self.name, text, exc)
            return False


Condition = GreaterThan | LessThan | Equals | Contains | Matches | Predicate


@dataclass(frozen=True, slots=True)
class ConditionalFormat:
    condition: Condition
    transform: Transform


def wrap(container: Callable[[tuple[Node, ...]], Node]) -> Transform:
    """Transform wrapping a cell's content in *container*, e.g. ``wrap(Bold)``."""

    def transform(content: tuple[Node, ...]) -> tuple[Node, ...]:
        return (container(content),)

    return transform


def _apply_cell(cell: Cell, rules: tuple[ConditionalFormat, ...]) -> Cell:
    content = cell.content
    for rule in rules:
        if rule.condition.matches(plain_text(content)):
            content = rule.transform(content)
    if content == cell.content:
        return cell
    return replace(cell, content=tuple(content))


def apply(table: Table, rules: Iterable[ConditionalFormat] | None = None) -> Table:
    """Return *table* with every rule applied to its body cells.

    Rules run in order and each sees the content left by the previous
    one. Header cells are never rewritten. Without explicit rules the
    table's own rules are applied and cleared from the result.
    """
    active = tuple(table.rules if rules is None else rules)
    if not active:
        return table
    logger.debug("applying %d conditional rule(s) to %d row(s)", len(active), len(table.rows))
    rows = tuple(
        replace(row, cells=tuple(_apply_cell(cell, active) for cell in row.cells))
        for row in table.rows
    )
    return replace(table, rows=rows, rules=() if rules is None else table.rules)
