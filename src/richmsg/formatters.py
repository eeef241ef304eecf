"""Custom value formatters and the registry the generator looks them up in."""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Protocol, runtime_checkable

from richmsg.ast import Custom, Node, Text
from richmsg.dialects import Dialect, escape_text
from richmsg.errors import FormatterError

logger = logging.getLogger(__name__)


@runtime_checkable
class Formatter(Protocol):
    """Renders a raw value for display and recognizes the display form again."""

    def format(self, value: str, dialect: Dialect) -> str:
        """Return the escaped display text of *value* in *dialect*."""
        ...

    def parse(self, text: str) -> tuple[str, int] | None:
        """Match a display form at the start of *text*.

        Returns the raw value and the number of characters consumed.
        """
        ...


# ----------------------------------------------------------------------
# Settings
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FormatterSettings:
    """Display settings for the built-in formatters."""

    phone_country_code: str | None = None
    date_format: str = "%d.%m.%Y"
    time_format: str = "%H:%M"
    datetime_format: str = "%d.%m.%Y %H:%M"
    currency_symbol: str = "₽"
    progress_width: int = 10

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> FormatterSettings:
        """Build settings from a config table, ignoring keys it does not know."""
        kwargs: dict[str, Any] = {}
        for name in ("date_format", "time_format", "datetime_format", "currency_symbol"):
            value = data.get(name)
            if isinstance(value, str):
                kwargs[name] = value
        code = data.get("phone_country_code")
        if isinstance(code, (str, int)) and not isinstance(code, bool):
            kwargs["phone_country_code"] = str(code).lstrip("+")
        width = data.get("progress_width")
        if isinstance(width, int) and not isinstance(width, bool) and width > 0:
            kwargs["progress_width"] = width
        return cls(**kwargs)


# ----------------------------------------------------------------------
# Built-in formatters
# ----------------------------------------------------------------------

_STRFTIME_PATTERNS = {
    "%d": r"\d{2}",
    "%m": r"\d{2}",
    "%Y": r"\d{4}",
    "%y": r"\d{2}",
    "%H": r"\d{2}",
    "%M": r"\d{2}",
    "%S": r"\d{2}",
    "%%": "%",
}


def _strftime_regex(fmt: str) -> re.Pattern[str]:
    """Regex matching the output of strftime(fmt) for the directives we support."""
    parts: list[str] = []
    i = 0
    while i < len(fmt):
        directive = fmt[i : i + 2]
        if directive in _STRFTIME_PATTERNS:
            parts.append(_STRFTIME_PATTERNS[directive])
            i += 2
        elif fmt[i] == "%":
            raise ValueError(f"unsupported format directive '{directive}' in '{fmt}'")
        else:
            parts.append(re.escape(fmt[i]))
            i += 1
    return re.compile("".join(parts))


def _minimal_decimal(amount: Decimal) -> str:
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text == "-0" else text


def _decimal(value: str) -> Decimal:
    try:
        amount = Decimal(value.strip())
    except InvalidOperation:
        raise FormatterError(f"'{value}' is not a number") from None
    if not amount.is_finite():
        raise FormatterError(f"'{value}' is not a finite number")
    return amount


_PHONE_RE = re.compile(r"(?:\+(\d{1,3}) )?\((\d{3})\) (\d{3})-(\d{2})-(\d{2})")


@dataclass(frozen=True, slots=True)
class PhoneFormatter:
    """Ten-digit national numbers, shown as ``+7 (999) 123-45-67``.

    Without a configured country code, an 11 to 13 digit value carries its
    own country code in the leading digits.
    """

    country_code: str | None = None

    def display(self, value: str) -> str:
        digits = value.strip()
        if not re.fullmatch(r"\d+", digits, re.ASCII):
            raise FormatterError(f"phone number '{value}' must contain only digits")
        if self.country_code is not None:
            if len(digits) != 10:
                raise FormatterError(f"phone number '{value}' must have 10 digits")
            code = self.country_code
        elif len(digits) == 10:
            code = ""
        elif 11 <= len(digits) <= 13:
            code, digits = digits[:-10], digits[-10:]
        else:
            raise FormatterError(f"phone number '{value}' must have 10 to 13 digits")

        national = f"({digits[:3]}) {digits[3:6]}-{digits[6:8]}-{digits[8:]}"
        return f"+{code} {national}" if code else national

    def format(self, value: str, dialect: Dialect) -> str:
        return escape_text(dialect, self.display(value))

    def parse(self, text: str) -> tuple[str, int] | None:
        m = _PHONE_RE.match(text)
        if m is None:
            return None
        code, national = m.group(1), "".join(m.group(2, 3, 4, 5))
        if self.country_code is not None:
            if code != self.country_code:
                return None
            return national, m.end()
        return (code or "") + national, m.end()


@dataclass(frozen=True, slots=True)
class DateFormatter:
    """ISO dates (``2025-01-16``) shown with a strftime format."""

    fmt: str = "%d.%m.%Y"

    def display(self, value: str) -> str:
        if not re.fullmatch(r"\d{4}-\d{2}-\d{2}", value.strip(), re.ASCII):
            raise FormatterError(f"date '{value}' must be in YYYY-MM-DD form")
        try:
            parsed = date.fromisoformat(value.strip())
        except ValueError as exc:
            raise FormatterError(f"invalid date '{value}': {exc}") from None
        if parsed.year < 1000:
            raise FormatterError(f"date '{value}' is before year 1000")
        return parsed.strftime(self.fmt)

    def format(self, value: str, dialect: Dialect) -> str:
        return escape_text(dialect, self.display(value))

    def parse(self, text: str) -> tuple[str, int] | None:
        m = _strftime_regex(self.fmt).match(text)
        if m is None:
            return None
        try:
            parsed = datetime.strptime(m.group(0), self.fmt).date()
        except ValueError:
            return None
        return parsed.isoformat(), m.end()


@dataclass(frozen=True, slots=True)
class TimeFormatter:
    """Times of day (``14:30`` or ``14:30:15``) shown with a strftime format."""

    fmt: str = "%H:%M"

    def _canonical(self, value: time) -> str:
        return value.strftime("%H:%M:%S" if "%S" in self.fmt else "%H:%M")

    def display(self, value: str) -> str:
        if not re.fullmatch(r"\d{2}:\d{2}(?::\d{2})?", value.strip(), re.ASCII):
            raise FormatterError(f"time '{value}' must be in HH:MM or HH:MM:SS form")
        try:
            parsed = time.fromisoformat(value.strip())
        except ValueError as exc:
            raise FormatterError(f"invalid time '{value}': {exc}") from None
        return parsed.strftime(self.fmt)

    def format(self, value: str, dialect: Dialect) -> str:
        return escape_text(dialect, self.display(value))

    def parse(self, text: str) -> tuple[str, int] | None:
        m = _strftime_regex(self.fmt).match(text)
        if m is None:
            return None
        try:
            parsed = datetime.strptime(m.group(0), self.fmt).time()
        except ValueError:
            return None
        return self._canonical(parsed), m.end()


@dataclass(frozen=True, slots=True)
class DateTimeFormatter:
    """ISO date-times (``2025-01-16T14:30``) shown with a strftime format."""

    fmt: str = "%d.%m.%Y %H:%M"

    def display(self, value: str) -> str:
        if not re.fullmatch(r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(?::\d{2})?", value.strip(), re.ASCII):
            raise FormatterError(f"date-time '{value}' must be in YYYY-MM-DDTHH:MM form")
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise FormatterError(f"invalid date-time '{value}': {exc}") from None
        if parsed.year < 1000:
            raise FormatterError(f"date-time '{value}' is before year 1000")
        return parsed.strftime(self.fmt)

    def format(self, value: str, dialect: Dialect) -> str:
        return escape_text(dialect, self.display(value))

    def parse(self, text: str) -> tuple[str, int] | None:
        m = _strftime_regex(self.fmt).match(text)
        if m is None:
            return None
        try:
            parsed = datetime.strptime(m.group(0), self.fmt)
        except ValueError:
            return None
        timespec = "seconds" if "%S" in self.fmt else "minutes"
        return parsed.isoformat(timespec=timespec), m.end()


@dataclass(frozen=True, slots=True)
class CurrencyFormatter:
    """Amounts shown with two decimals and a currency symbol: ``1500.00 ₽``."""

    symbol: str = "₽"

    def display(self, value: str) -> str:
        amount = _decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        return f"{amount} {self.symbol}"

    def format(self, value: str, dialect: Dialect) -> str:
        return escape_text(dialect, self.display(value))

    def parse(self, text: str) -> tuple[str, int] | None:
        m = re.match(rf"(-?\d+\.\d{{2}}) {re.escape(self.symbol)}", text)
        if m is None:
            return None
        return _minimal_decimal(Decimal(m.group(1))), m.end()


@dataclass(frozen=True, slots=True)
class PercentFormatter:
    """Percentages shown with one decimal: ``15.0%``."""

    def display(self, value: str) -> str:
        amount = _decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
        return f"{amount}%"

    def format(self, value: str, dialect: Dialect) -> str:
        return escape_text(dialect, self.display(value))

    def parse(self, text: str) -> tuple[str, int] | None:
        m = re.match(r"(-?\d+\.\d)%", text)
        if m is None:
            return None
        return _minimal_decimal(Decimal(m.group(1))), m.end()


_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")


@dataclass(frozen=True, slots=True)
class EmailFormatter:
    def display(self, value: str) -> str:
        if _EMAIL_RE.fullmatch(value.strip()) is None:
            raise FormatterError(f"'{value}' is not an email address")
        return value.strip()

    def format(self, value: str, dialect: Dialect) -> str:
        return escape_text(dialect, self.display(value))

    def parse(self, text: str) -> tuple[str, int] | None:
        m = _EMAIL_RE.match(text)
        if m is None:
            return None
        return m.group(0), m.end()


@dataclass(frozen=True, slots=True)
class ProgressFormatter:
    """Whole percentages 0 to 100 drawn as a bar: ``▓▓▓▓▓▓▓▓░░ 75%``."""

    width: int = 10

    def display(self, value: str) -> str:
        text = value.strip()
        if not re.fullmatch(r"\d{1,3}", text, re.ASCII) or int(text) > 100:
            raise FormatterError(f"progress '{value}' must be a whole number from 0 to 100")
        percent = int(text)
        filled = (percent * self.width + 50) // 100
        return "▓" * filled + "░" * (self.width - filled) + f" {percent}%"

    def format(self, value: str, dialect: Dialect) -> str:
        return escape_text(dialect, self.display(value))

    def parse(self, text: str) -> tuple[str, int] | None:
        m = re.match(rf"[▓░]{{{self.width}}} (\d{{1,3}})%", text)
        if m is None or int(m.group(1)) > 100:
            return None
        return str(int(m.group(1))), m.end()


# ----------------------------------------------------------------------
# Registry
# ----------------------------------------------------------------------


@dataclass
class FormatterRegistry:
    """Named formatters shared between generator calls.

    Registration replaces any formatter of the same name. The mapping is
    copied on write, so readers and snapshots never see a partial update.
    """

    _formatters: Mapping[str, Formatter] = field(
        default_factory=lambda: MappingProxyType({}), init=False
    )
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def register(self, name: str, formatter: Formatter) -> None:
        if not name:
            raise ValueError("formatter name must not be empty")
        with self._lock:
            if name in self._formatters:
                logger.debug("replacing formatter %r", name)
            updated = dict(self._formatters)
            updated[name] = formatter
            self._formatters = MappingProxyType(updated)

    def lookup(self, name: str) -> Formatter | None:
        return self._formatters.get(name)

    def names(self) -> frozenset[str]:
        return frozenset(self._formatters)

    def snapshot(self) -> Mapping[str, Formatter]:
        """Immutable view of the formatters registered right now."""
        return self._formatters

    def __contains__(self, name: object) -> bool:
        return name in self._formatters


def default_registry(settings: FormatterSettings | None = None) -> FormatterRegistry:
    """Return a new registry holding the built-in formatters."""
    if settings is None:
        settings = FormatterSettings()
    registry = FormatterRegistry()
    registry.register("phone", PhoneFormatter(settings.phone_country_code))
    registry.register("date", DateFormatter(settings.date_format))
    registry.register("time", TimeFormatter(settings.time_format))
    registry.register("datetime", DateTimeFormatter(settings.datetime_format))
    registry.register("currency", CurrencyFormatter(settings.currency_symbol))
    registry.register("email", EmailFormatter())
    registry.register("percent", PercentFormatter())
    registry.register("progress", ProgressFormatter(settings.progress_width))
    return registry


_shared: FormatterRegistry | None = None
_shared_lock = threading.Lock()


def shared_registry() -> FormatterRegistry:
    """The process-wide registry used when no registry is passed explicitly."""
    global _shared
    with _shared_lock:
        if _shared is None:
            _shared = default_registry()
        return _shared


# ----------------------------------------------------------------------
# Recognition
# ----------------------------------------------------------------------


def recognize(text: str, registry: FormatterRegistry, names: Iterable[str]) -> tuple[Node, ...]:
    """Split *text* into Text and Custom nodes using the named formatters.

    Formatters are tried in the order given at each position; the first
    match wins.
    """
    formatters = registry.snapshot()
    candidates = [(name, formatters[name]) for name in names if name in formatters]
    nodes: list[Node] = []
    pending: list[str] = []
    i = 0
    while i < len(text):
        for name, formatter in candidates:
            match = formatter.parse(text[i:])
            if match is not None and match[1] > 0:
                if pending:
                    nodes.append(Text("".join(pending)))
                    pending.clear()
                nodes.append(Custom(name, match[0]))
                i += match[1]
                break
        else:
            pending.append(text[i])
            i += 1
    if pending:
        nodes.append(Text("".join(pending)))
    return tuple(nodes)
