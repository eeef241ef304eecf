"""Command-line interface for richmsg."""

from __future__ import annotations

import argparse
import logging
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from richmsg.dialects import Dialect, dialect_for_path
from richmsg.errors import GenError, ParseError
from richmsg.formatters import FormatterSettings

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = Dialect.MARKDOWN_V2
DEFAULT_TARGET = Dialect.HTML


@dataclass(frozen=True, slots=True)
class CliOptions:
    """Parsed CLI options."""

    input_file: Path
    output_file: Path | None
    source_dialect: Dialect
    target_dialect: Dialect
    formatters: FormatterSettings
    check: bool
    debug: bool


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser (separate function for testability)."""
    p = argparse.ArgumentParser(
        prog="richmsg",
        description="Convert formatted chat messages between markup dialects",
    )
    p.add_argument("input", help="Input message file")
    p.add_argument("-o", "--output", help="Output file (default: stdout)")
    p.add_argument(
        "--from",
        dest="source",
        metavar="DIALECT",
        help="Dialect of the input (default: from the file extension, else markdownv2)",
    )
    p.add_argument(
        "--to",
        dest="target",
        metavar="DIALECT",
        help="Dialect to write (default: html)",
    )
    p.add_argument(
        "--config",
        metavar="FILE",
        help="Config file (default: auto-discover richmsg.toml)",
    )
    p.add_argument(
        "--country-code",
        metavar="CODE",
        help="Country code shown in front of phone numbers",
    )
    p.add_argument("--check", action="store_true", help="Only parse the input and report errors")
    p.add_argument("--debug", action="store_true", help="Dump the document tree to stderr")
    p.add_argument("-v", "--verbose", action="store_true", help="Log debug messages")
    return p


def parse_dialect_arg(s: str) -> Dialect:
    """Parse a dialect name given on the command line or in the config file."""
    try:
        return Dialect.from_name(s)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def load_config(config_path: Path | None, input_dir: Path) -> dict[str, Any]:
    """Load a TOML config file, returning an empty dict on missing/absent file."""
    path = config_path if config_path is not None else input_dir / "richmsg.toml"

    if not path.is_file():
        return {}

    logger.debug("loading config from %s", path)
    with open(path, "rb") as f:
        return tomllib.load(f)


def resolve_options(args: argparse.Namespace) -> CliOptions:
    """Merge config file and CLI args into CliOptions.

    Precedence: file extension < config file < CLI flags.
    """
    input_file = Path(args.input)
    input_dir = input_file.parent
    if not input_dir.parts:
        input_dir = Path(".")

    config_path = Path(args.config) if args.config else None
    config = load_config(config_path, input_dir)

    # Dialects: extension < config < CLI
    source = dialect_for_path(input_file.name) or DEFAULT_SOURCE
    target = DEFAULT_TARGET
    cfg_convert = config.get("convert")
    if isinstance(cfg_convert, dict):
        if isinstance(cfg_convert.get("from"), str):
            source = parse_dialect_arg(cfg_convert["from"])
        if isinstance(cfg_convert.get("to"), str):
            target = parse_dialect_arg(cfg_convert["to"])
    if args.source:
        source = parse_dialect_arg(args.source)
    if args.target:
        target = parse_dialect_arg(args.target)

    # Formatter settings: config < CLI
    cfg_formatters = config.get("formatters")
    settings = FormatterSettings.from_mapping(
        cfg_formatters if isinstance(cfg_formatters, dict) else {}
    )
    if args.country_code:
        code = args.country_code.lstrip("+")
        if not code.isdigit():
            raise argparse.ArgumentTypeError(f"invalid country code: {args.country_code}")
        settings = FormatterSettings(
            phone_country_code=code,
            date_format=settings.date_format,
            time_format=settings.time_format,
            datetime_format=settings.datetime_format,
            currency_symbol=settings.currency_symbol,
            progress_width=settings.progress_width,
        )

    output_file = Path(args.output) if args.output else None

    return CliOptions(
        input_file=input_file,
        output_file=output_file,
        source_dialect=source,
        target_dialect=target,
        formatters=settings,
        check=args.check,
        debug=args.debug,
    )


def convert_file(options: CliOptions) -> str:
    """Read and parse the input file, then generate it in the target dialect."""
    from richmsg.debug import dump_ast
    from richmsg.formatters import default_registry
    from richmsg.generator import generate
    from richmsg.parser import parse

    source = options.input_file.read_text(encoding="utf-8")
    tree = parse(options.source_dialect, source)
    logger.debug(
        "parsed %s as %s: %d top-level node(s)",
        options.input_file,
        options.source_dialect.value,
        len(tree.children),
    )

    if options.debug:
        dump_ast(tree, file=sys.stderr)
    if options.check:
        return ""

    registry = default_registry(options.formatters)
    return generate(options.target_dialect, tree, registry)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns exit code (0/1/2). Does not call sys.exit()."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        options = resolve_options(args)
    except (argparse.ArgumentTypeError, tomllib.TOMLDecodeError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    try:
        output = convert_file(options)
    except ParseError as exc:
        print(exc.format(str(options.input_file)), file=sys.stderr)
        return 1
    except GenError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if options.check:
        return 0

    if options.output_file:
        options.output_file.write_text(output, encoding="utf-8")
    else:
        sys.stdout.write(output)
        if output and not output.endswith("\n"):
            sys.stdout.write("\n")

    return 0


def run() -> None:
    """Console script wrapper around main()."""
    raise SystemExit(main())
