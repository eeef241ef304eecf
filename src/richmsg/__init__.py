"""Formatted chat message trees and their Markdown, MarkdownV2, HTML and plain text forms."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from richmsg.dialects import Dialect
    from richmsg.formatters import FormatterRegistry

__version__ = "0.1.0"


def convert(
    source: str,
    source_dialect: Dialect,
    target_dialect: Dialect,
    registry: FormatterRegistry | None = None,
) -> str:
    """Parse *source* in one dialect and generate it in another."""
    from richmsg.generator import generate
    from richmsg.parser import parse

    return generate(target_dialect, parse(source_dialect, source), registry)
