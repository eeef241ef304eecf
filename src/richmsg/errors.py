"""Error types with formatted source context."""

from __future__ import annotations

from typing import TYPE_CHECKING

from richmsg.tokens import Span

if TYPE_CHECKING:
    from richmsg.dialects import Dialect


def _excerpt(message: str, span: Span, source: str, filename: str) -> str:
    lines = source.splitlines(keepends=True)
    line_idx = span.start.line - 1
    col = span.start.column

    if 0 <= line_idx < len(lines):
        source_line = lines[line_idx].rstrip("\n").rstrip("\r")
    else:
        source_line = ""

    # Underline the full span when on one line, otherwise to end of line
    if span.end.line == span.start.line:
        underline_len = max(1, span.end.column - col)
    else:
        underline_len = max(1, len(source_line) - col + 1)

    pad = " " * (col - 1)
    carets = "^" * underline_len

    line_num = str(span.start.line)
    gutter_width = len(line_num) + 1

    blank_gutter = " " * gutter_width + "|"
    line_gutter = f"{line_num:>{gutter_width - 1}} |"

    return (
        f"error: {message}\n"
        f"{' ' * gutter_width}--> {filename}:{span.start.line}:{col}\n"
        f"{blank_gutter}\n"
        f"{line_gutter} {source_line}\n"
        f"{blank_gutter} {pad}{carets}"
    )


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------


class ParseError(Exception):
    """Raised on the first parse error, with span and source context."""

    def __init__(self, message: str, span: Span, source: str) -> None:
        self.message = message
        self.span = span
        self.source = source
        super().__init__(self.format())

    def format(self, filename: str = "input") -> str:
        return _excerpt(self.message, self.span, self.source, filename)


class UnterminatedElement(ParseError):
    """An opening delimiter or tag has no matching closer."""


class CrossedDelimiters(ParseError):
    """A closer for an outer element appeared while an inner one was open."""


class UnexpectedToken(ParseError):
    """A token that cannot appear at this point in the document."""


class TableShapeMismatch(ParseError):
    """A table row does not cover the same number of grid columns as the header."""

    def __init__(self, expected: int, found: int, span: Span, source: str) -> None:
        self.expected = expected
        self.found = found
        super().__init__(
            f"table row covers {found} column(s), expected {expected}", span, source
        )


# ----------------------------------------------------------------------
# Generation
# ----------------------------------------------------------------------


class GenError(Exception):
    """Base class for errors raised while generating dialect text."""


class UnsupportedElement(GenError):
    def __init__(self, kind: str, dialect: Dialect, reason: str = "") -> None:
        self.kind = kind
        self.dialect = dialect
        message = f"{kind} cannot be expressed in {dialect.value}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class UnknownFormatter(GenError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"no formatter registered as '{name}'")


class FormatterFailed(GenError):
    def __init__(self, name: str, cause: Exception) -> None:
        self.name = name
        self.cause = cause
        super().__init__(f"formatter '{name}' failed: {cause}")


class InvalidTable(GenError):
    """The table cannot be laid out on a grid."""


class FormatterError(ValueError):
    """A formatter was given a value outside its domain."""
