"""Shared test fixtures and helpers."""

from __future__ import annotations

import pytest

from richmsg.ast import Group, Node
from richmsg.dialects import Dialect
from richmsg.generator import generate
from richmsg.lexer import tokenize
from richmsg.parser import parse
from richmsg.tokens import Token, TokenType


@pytest.fixture
def lex():
    """Return a helper that tokenizes source and returns tokens (excluding EOF)."""

    def _lex(source: str, dialect: Dialect = Dialect.MARKDOWN_V2) -> list[Token]:
        tokens = tokenize(dialect, source)
        # Strip trailing EOF for convenience
        return [t for t in tokens if t.type != TokenType.EOF]

    return _lex


@pytest.fixture
def parse_source():
    """Return a helper that parses source and returns the top-level nodes."""

    def _parse(source: str, dialect: Dialect = Dialect.MARKDOWN_V2) -> tuple[Node, ...]:
        return parse(dialect, source).children

    return _parse


def assert_types(tokens: list[Token], expected: list[TokenType]) -> None:
    """Assert that the token types match the expected list."""
    actual = [t.type for t in tokens]
    assert actual == expected, f"Expected {expected}, got {actual}"


def assert_values(tokens: list[Token], expected: list[str]) -> None:
    """Assert that the token values match the expected list."""
    actual = [t.value for t in tokens]
    assert actual == expected, f"Expected {expected}, got {actual}"


def find_tokens(tokens: list[Token], tt: TokenType) -> list[Token]:
    """Return all tokens of the given type."""
    return [t for t in tokens if t.type == tt]


def assert_round_trip(dialect: Dialect, tree: Group) -> str:
    """Generate *tree* in *dialect*, parse it back, and return the generated text."""
    out = generate(dialect, tree)
    back = parse(dialect, out)
    assert back == tree, f"{dialect.value} round trip changed the tree:\n{out!r}\n{back!r}"
    return out
