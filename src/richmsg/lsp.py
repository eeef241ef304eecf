"""Minimal LSP server for chat messages: diagnostics only."""

from __future__ import annotations

import logging

from lsprotocol.types import (
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_OPEN,
    Diagnostic,
    DiagnosticSeverity,
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    Position,
    PublishDiagnosticsParams,
    Range,
    TextDocumentSyncKind,
)
from pygls.lsp.server import LanguageServer

from richmsg.ast import Group
from richmsg.dialects import Dialect, dialect_for_path
from richmsg.errors import GenError, ParseError
from richmsg.generator import generate
from richmsg.parser import parse
from richmsg.tokens import Span

logger = logging.getLogger(__name__)

server = LanguageServer("richmsg-lsp", "0.1.0", text_document_sync_kind=TextDocumentSyncKind.Full)

DEFAULT_DIALECT = Dialect.MARKDOWN_V2

# Editor language ids that are not dialect names
_LANGUAGE_IDS = {"plaintext": Dialect.PLAIN}


def dialect_for_document(uri: str, language_id: str | None) -> Dialect:
    """Pick the dialect from the language id, then the extension."""
    if language_id:
        if language_id in _LANGUAGE_IDS:
            return _LANGUAGE_IDS[language_id]
        try:
            return Dialect.from_name(language_id)
        except ValueError:
            pass
    return dialect_for_path(uri) or DEFAULT_DIALECT


def _range(span: Span | None) -> Range:
    if span is None:
        return Range(start=Position(line=0, character=0), end=Position(line=0, character=0))
    return Range(
        start=Position(line=span.start.line - 1, character=span.start.column - 1),
        end=Position(line=span.end.line - 1, character=span.end.column - 1),
    )


def _round_trip_mismatch(tree: Group, dialect: Dialect) -> Span | None:
    """Return the span of the first top-level node that does not survive a round trip.

    A clean round trip returns None. The whole document span is returned when no
    single node can be blamed.
    """
    reparsed = parse(dialect, generate(dialect, tree))
    if reparsed == tree:
        return None
    for before, after in zip(tree.children, reparsed.children):
        if before != after:
            return before.span
    if len(tree.children) > len(reparsed.children):
        return tree.children[len(reparsed.children)].span
    return tree.span


def _validate(ls: LanguageServer, uri: str) -> None:
    """Parse the document, check it regenerates, and publish diagnostics."""
    doc = ls.workspace.get_text_document(uri)
    dialect = dialect_for_document(uri, getattr(doc, "language_id", None))
    diagnostics: list[Diagnostic] = []

    try:
        tree = parse(dialect, doc.source)
    except ParseError as exc:
        diagnostics.append(
            Diagnostic(
                range=_range(exc.span),
                message=exc.message,
                severity=DiagnosticSeverity.Error,
                source="richmsg",
            )
        )
    else:
        try:
            mismatch = _round_trip_mismatch(tree, dialect)
        except (GenError, ParseError) as exc:
            diagnostics.append(
                Diagnostic(
                    range=_range(tree.span),
                    message=exc.message if isinstance(exc, ParseError) else str(exc),
                    severity=DiagnosticSeverity.Warning,
                    source="richmsg",
                )
            )
        else:
            if mismatch is not None:
                diagnostics.append(
                    Diagnostic(
                        range=_range(mismatch),
                        message=f"text changes when regenerated as {dialect.value}",
                        severity=DiagnosticSeverity.Warning,
                        source="richmsg",
                    )
                )

    logger.debug("%s: %d diagnostic(s) as %s", uri, len(diagnostics), dialect.value)
    ls.text_document_publish_diagnostics(
        PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics)
    )


@server.feature(TEXT_DOCUMENT_DID_OPEN)
def did_open(ls: LanguageServer, params: DidOpenTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: LanguageServer, params: DidChangeTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


def main() -> None:
    server.start_io()
