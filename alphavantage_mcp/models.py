"""
Value types shared by the fetcher, the report builders and the tool handlers.

All of them are request-scoped: built from one API response or one set of
tool arguments, and dropped when the call returns.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Tuple

from .errors import DataShapeError, InvalidDataError, ValidationError

INTRADAY_INTERVALS: Tuple[str, ...] = ("1min", "5min", "15min", "30min", "60min")
DAILY = "daily"
ALL_INTERVALS: Tuple[str, ...] = INTRADAY_INTERVALS + (DAILY,)
OUTPUT_SIZES: Tuple[str, ...] = ("compact", "full")

DEFAULT_INTRADAY_INTERVAL = "5min"
DEFAULT_OUTPUT_SIZE = "compact"
DEFAULT_THRESHOLD = Decimal("5")

# Field names used by Alpha Vantage inside every time-series entry
FIELD_OPEN = "1. open"
FIELD_HIGH = "2. high"
FIELD_LOW = "3. low"
FIELD_CLOSE = "4. close"
FIELD_VOLUME = "5. volume"


def first_scalar(value: Any) -> Any:
    """Unwrap list-wrapped arguments (``["AAPL"]`` -> ``"AAPL"``).

    URI-template and some JSON-RPC clients deliver scalars inside a list.
    An empty list becomes ``None``.
    """
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def format_number(value: Decimal) -> str:
    """Render a decimal without trailing zeros: 150.0000 -> '150', 142.50 -> '142.5'."""
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return format(value.normalize(), "f")


def _to_decimal(raw: Any, key: str, name: str) -> Decimal:
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        raise InvalidDataError(f"Invalid {name} value {raw!r} for {key}") from None
    if not value.is_finite():
        raise InvalidDataError(f"Invalid {name} value {raw!r} for {key}")
    return value


@dataclass(frozen=True)
class OHLCVRecord:
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int

    @classmethod
    def from_payload(cls, key: str, entry: Mapping[str, Any]) -> "OHLCVRecord":
        """Build a record from one ``{"1. open": ..., "5. volume": ...}`` entry."""
        if not isinstance(entry, Mapping):
            raise DataShapeError(f"Malformed time series entry for {key}")
        missing = [f for f in (FIELD_OPEN, FIELD_HIGH, FIELD_LOW, FIELD_CLOSE, FIELD_VOLUME) if f not in entry]
        if missing:
            raise DataShapeError(f"Missing fields {', '.join(missing)} for {key}")

        volume = _to_decimal(entry[FIELD_VOLUME], key, "volume")
        if volume < 0 or volume != volume.to_integral_value():
            raise InvalidDataError(f"Invalid volume value {entry[FIELD_VOLUME]!r} for {key}")

        return cls(
            open=_to_decimal(entry[FIELD_OPEN], key, "open"),
            high=_to_decimal(entry[FIELD_HIGH], key, "high"),
            low=_to_decimal(entry[FIELD_LOW], key, "low"),
            close=_to_decimal(entry[FIELD_CLOSE], key, "close"),
            volume=int(volume),
        )


TimeSeries = Dict[str, OHLCVRecord]


def parse_time_series(raw: Any) -> TimeSeries:
    """Convert the provider's ``{time key: entry}`` mapping into records."""
    if not isinstance(raw, Mapping):
        raise DataShapeError("No time series data found in the response")
    return {str(key): OHLCVRecord.from_payload(str(key), entry) for key, entry in raw.items()}


@dataclass(frozen=True)
class AlertEvent:
    date: str
    direction: str
    percent_change: Decimal
    from_close: Decimal
    to_close: Decimal

    def render(self) -> str:
        return (
            f"{self.date}: Price {self.direction} by {self.percent_change:.2f}% "
            f"from {format_number(self.from_close)} to {format_number(self.to_close)}"
        )


@dataclass(frozen=True)
class AlertReport:
    """Outcome of a threshold scan over a daily series."""

    symbol: str
    threshold: Decimal
    days_analyzed: int = 0
    events: Tuple[AlertEvent, ...] = ()
    skipped: Tuple[str, ...] = ()
    insufficient_history: bool = False

    def render(self) -> str:
        if self.insufficient_history:
            return f"Not enough historical data available for {self.symbol} to generate alerts."

        threshold = format_number(self.threshold)
        lines: List[str] = [f"Stock Alerts for {self.symbol.upper()} ({threshold}% threshold):", ""]
        lines.extend(event.render() for event in self.events)
        if not self.events:
            lines.append(
                f"No significant price movements (>={threshold}%) detected "
                f"in the last {self.days_analyzed} trading days."
            )
        return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Argument validation
# ---------------------------------------------------------------------------

def _parse_symbol(value: Any) -> str:
    value = first_scalar(value)
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError("symbol is required")
    return value


def _parse_choice(value: Any, name: str, allowed: Tuple[str, ...], default: str) -> str:
    value = first_scalar(value)
    if value is None or value == "":
        return default
    if value not in allowed:
        raise ValidationError(f"Invalid {name} {value!r}; expected one of {', '.join(allowed)}")
    return value


def parse_threshold(value: Any) -> Decimal:
    """Validate an alert threshold: a finite number strictly greater than zero."""
    value = first_scalar(value)
    if value is None or value == "":
        return DEFAULT_THRESHOLD
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise ValidationError(f"Invalid threshold {value!r}; expected a number")
    try:
        threshold = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"Invalid threshold {value!r}; expected a number") from None
    if not threshold.is_finite() or threshold <= 0:
        raise ValidationError(f"Invalid threshold {value!r}; must be greater than 0")
    return threshold


@dataclass(frozen=True)
class QueryParams:
    symbol: str
    interval: str = DEFAULT_INTRADAY_INTERVAL
    outputsize: str = DEFAULT_OUTPUT_SIZE
    threshold: Decimal = DEFAULT_THRESHOLD

    @classmethod
    def from_arguments(
        cls,
        arguments: Mapping[str, Any],
        default_interval: str = DEFAULT_INTRADAY_INTERVAL,
        allowed_intervals: Tuple[str, ...] = INTRADAY_INTERVALS,
    ) -> "QueryParams":
        return cls(
            symbol=_parse_symbol(arguments.get("symbol")),
            interval=_parse_choice(arguments.get("interval"), "interval", allowed_intervals, default_interval),
            outputsize=_parse_choice(arguments.get("outputsize"), "outputsize", OUTPUT_SIZES, DEFAULT_OUTPUT_SIZE),
            threshold=parse_threshold(arguments.get("threshold")),
        )


def series_key(interval: str) -> str:
    """Name of the JSON object holding the series for ``interval``."""
    if interval == DAILY:
        return "Time Series (Daily)"
    return f"Time Series ({interval})"
