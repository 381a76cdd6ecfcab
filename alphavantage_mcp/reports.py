"""
Text reports built from a parsed time series.

Both functions are pure. Ordering relies on time keys being fixed-width
``YYYY-MM-DD`` or ``YYYY-MM-DD HH:MM:SS`` strings, which sort
chronologically as plain strings; that is what Alpha Vantage returns.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, List

from .errors import EmptySeriesError, InsufficientHistoryError
from .models import DAILY, AlertEvent, AlertReport, TimeSeries, parse_threshold

MAX_DATA_POINTS = 10
MAX_ALERT_DAYS = 10

_HUNDRED = Decimal(100)
_CENTS = Decimal("0.01")


def _keys_newest_first(series: TimeSeries) -> List[str]:
    return sorted(series.keys(), reverse=True)


def format_time_series(series: TimeSeries, symbol: str, interval: str) -> str:
    """Render the most recent data points of ``series`` as readable text."""
    if not series:
        raise EmptySeriesError(f"No data points available for {symbol}")

    keys = _keys_newest_first(series)
    label = "Daily" if interval == DAILY else interval

    parts = [f"Stock data for {symbol.upper()} ({label} intervals):\n\n"]
    # Fixed-point so small prices never switch to exponent notation
    for key in keys[:MAX_DATA_POINTS]:
        record = series[key]
        parts.append(
            f"{key}:\n"
            f"  Open: {record.open:f}\n"
            f"  High: {record.high:f}\n"
            f"  Low: {record.low:f}\n"
            f"  Close: {record.close:f}\n"
            f"  Volume: {record.volume}\n\n"
        )

    if len(keys) > MAX_DATA_POINTS:
        parts.append(f"... and {len(keys) - MAX_DATA_POINTS} more data points available.\n")

    return "".join(parts)


def _history(series: TimeSeries, symbol: str) -> List[str]:
    keys = _keys_newest_first(series)
    if len(keys) < 2:
        raise InsufficientHistoryError(f"Not enough historical data available for {symbol} to generate alerts.")
    return keys


def analyze_alerts(series: TimeSeries, symbol: str, threshold: Any) -> AlertReport:
    """Flag day-over-day close moves whose magnitude reaches ``threshold`` percent.

    A comparison against a previous close of zero has no defined percentage
    and is skipped; the skipped dates are listed on the report.
    """
    threshold = parse_threshold(threshold)

    try:
        keys = _history(series, symbol)
    except InsufficientHistoryError:
        return AlertReport(symbol=symbol, threshold=threshold, insufficient_history=True)

    days = min(MAX_ALERT_DAYS, len(keys) - 1)
    events: List[AlertEvent] = []
    skipped: List[str] = []

    for i in range(days):
        current_key, previous_key = keys[i], keys[i + 1]
        current = series[current_key].close
        previous = series[previous_key].close

        if previous == 0:
            skipped.append(current_key)
            continue

        change = (current - previous) / previous * _HUNDRED
        magnitude = abs(change)
        if magnitude >= threshold:
            events.append(AlertEvent(
                date=current_key,
                direction="increased" if change >= 0 else "decreased",
                percent_change=magnitude.quantize(_CENTS, rounding=ROUND_HALF_UP),
                from_close=previous,
                to_close=current,
            ))

    return AlertReport(
        symbol=symbol,
        threshold=threshold,
        days_analyzed=days,
        events=tuple(events),
        skipped=tuple(skipped),
    )
