"""Test error messages and formatted source excerpts."""

from __future__ import annotations

import pytest

from richmsg.dialects import Dialect
from richmsg.errors import (
    FormatterFailed,
    FormatterError,
    GenError,
    InvalidTable,
    ParseError,
    TableShapeMismatch,
    UnknownFormatter,
    UnsupportedElement,
    UnterminatedElement,
)
from richmsg.parser import parse
from richmsg.tokens import Position, Span


def _parse_error(source: str, dialect: Dialect = Dialect.HTML) -> ParseError:
    with pytest.raises(ParseError) as exc_info:
        parse(dialect, source)
    return exc_info.value


class TestErrorFormatting:
    def test_format_contains_line(self):
        err = _parse_error("some text <b>more text")
        assert "some text <b>more text" in err.format()

    def test_format_contains_carets(self):
        err = _parse_error("<b>x")
        assert err.format().splitlines()[-1].endswith("^^^")

    def test_format_contains_error_prefix(self):
        err = _parse_error("<b>x")
        assert err.format().startswith("error: unterminated bold")

    def test_format_uses_filename(self):
        err = _parse_error("line one\n<i>x")
        assert "--> msg.html:2:1" in err.format("msg.html")

    def test_default_filename(self):
        err = _parse_error("<b>x")
        assert "--> input:1:1" in str(err)

    def test_caret_offset(self):
        err = _parse_error("abc <u>x")
        last = err.format().splitlines()[-1]
        assert last.index("^") - last.index("|") - 2 == 4

    def test_multiline_span_underlines_to_end_of_line(self):
        span = Span(Position(1, 3, 2), Position(2, 2, 6))
        err = UnterminatedElement("boom", span, "abcd\nef")
        assert err.format().splitlines()[-1].endswith(" ^^")


class TestTableShapeMismatch:
    def test_fields(self):
        span = Span(Position(1, 1, 0), Position(1, 2, 1))
        err = TableShapeMismatch(3, 2, span, "x")
        assert err.expected == 3
        assert err.found == 2
        assert err.message == "table row covers 2 column(s), expected 3"


class TestGenErrors:
    def test_unsupported_element(self):
        err = UnsupportedElement("Spoiler", Dialect.MARKDOWN)
        assert str(err) == "Spoiler cannot be expressed in markdown"
        assert err.kind == "Spoiler"
        assert err.dialect is Dialect.MARKDOWN

    def test_unsupported_with_reason(self):
        err = UnsupportedElement("Pre", Dialect.MARKDOWN_V2, "inside a quote")
        assert str(err).endswith("(inside a quote)")

    def test_unknown_formatter(self):
        err = UnknownFormatter("money")
        assert err.name == "money"
        assert "money" in str(err)

    def test_formatter_failed_keeps_cause(self):
        cause = FormatterError("bad value")
        err = FormatterFailed("phone", cause)
        assert err.cause is cause
        assert "bad value" in str(err)

    def test_hierarchy(self):
        assert issubclass(InvalidTable, GenError)
        assert issubclass(FormatterFailed, GenError)
        assert issubclass(FormatterError, ValueError)
        assert not issubclass(GenError, ParseError)
