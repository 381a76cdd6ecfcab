"""
MCP tool and resource handlers.

Tool failures come back as text content flagged ``isError`` so the agent can
read them. Resource failures are raised as ResourceError and reach the
client as a JSON-RPC error.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.parse import unquote

from .client import AlphaVantageClient
from .errors import AlphaVantageMCPError, ResourceError, ValidationError
from .models import (
    ALL_INTERVALS,
    DAILY,
    INTRADAY_INTERVALS,
    OUTPUT_SIZES,
    QueryParams,
    first_scalar,
)
from .reports import analyze_alerts, format_time_series

RESOURCE_TEMPLATE = "stock://{symbol}/{interval}"
_RESOURCE_URI = re.compile(r"^stock://(?P<symbol>[^/]+)(?:/(?P<interval>[^/]*))?/?$")

_SYMBOL_SCHEMA = {"type": "string", "description": "Stock symbol (e.g., IBM, AAPL)"}
_OUTPUTSIZE_SCHEMA = {
    "type": "string",
    "enum": list(OUTPUT_SIZES),
    "description": "Amount of data to return (compact: latest 100 data points, full: up to 20 years of data)",
}


@dataclass
class Tool:
    name: str
    description: str
    input_schema: Dict[str, Any]
    handler: Callable[[Mapping[str, Any]], str]
    error_prefix: str


def _text_result(text: str, is_error: bool = False) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


class StockTools:
    """Validates arguments, fetches data and renders the text responses."""

    def __init__(self, client: AlphaVantageClient, logger: Optional[logging.Logger] = None):
        self.client = client
        self.logger = logger or logging.getLogger(__name__)
        self.tools: Dict[str, Tool] = {t.name: t for t in self._build_tools()}

    def _build_tools(self) -> List[Tool]:
        return [
            Tool(
                name="get-stock-data",
                description="Get intraday OHLCV data for a stock symbol (most recent 10 points).",
                input_schema={
                    "type": "object",
                    "properties": {
                        "symbol": _SYMBOL_SCHEMA,
                        "interval": {
                            "type": "string",
                            "enum": list(INTRADAY_INTERVALS),
                            "description": "Time interval between data points (default: 5min)",
                        },
                        "outputsize": _OUTPUTSIZE_SCHEMA,
                    },
                    "required": ["symbol"],
                },
                handler=self.get_stock_data,
                error_prefix="Error fetching stock data",
            ),
            Tool(
                name="get-daily-stock-data",
                description="Get daily OHLCV data for a stock symbol (most recent 10 days).",
                input_schema={
                    "type": "object",
                    "properties": {"symbol": _SYMBOL_SCHEMA, "outputsize": _OUTPUTSIZE_SCHEMA},
                    "required": ["symbol"],
                },
                handler=self.get_daily_stock_data,
                error_prefix="Error fetching daily stock data",
            ),
            Tool(
                name="get-stock-alerts",
                description="Flag daily closing price moves at or above a percentage threshold over the last 10 trading days.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "symbol": _SYMBOL_SCHEMA,
                        "threshold": {
                            "type": "number",
                            "exclusiveMinimum": 0,
                            "description": "Percentage threshold for price movement alerts (default: 5)",
                        },
                    },
                    "required": ["symbol"],
                },
                handler=self.get_stock_alerts,
                error_prefix="Error generating stock alerts",
            ),
        ]

    # ------------------------------------------------------------------
    # Catalogue
    # ------------------------------------------------------------------

    def list_tools(self) -> List[Dict[str, Any]]:
        return [
            {"name": t.name, "description": t.description, "inputSchema": t.input_schema}
            for t in self.tools.values()
        ]

    def list_resource_templates(self) -> List[Dict[str, Any]]:
        return [{
            "uriTemplate": RESOURCE_TEMPLATE,
            "name": "stock-data",
            "description": "Formatted OHLCV data for a symbol and interval (1min..60min or daily)",
            "mimeType": "text/plain",
        }]

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _fetch_and_format(self, params: QueryParams) -> str:
        series = self.client.fetch_time_series(params.symbol, params.interval, params.outputsize)
        return format_time_series(series, params.symbol, params.interval)

    def get_stock_data(self, arguments: Mapping[str, Any]) -> str:
        params = QueryParams.from_arguments({
            "symbol": arguments.get("symbol"),
            "interval": arguments.get("interval"),
            "outputsize": arguments.get("outputsize"),
        })
        return self._fetch_and_format(params)

    def get_daily_stock_data(self, arguments: Mapping[str, Any]) -> str:
        params = QueryParams.from_arguments(
            {"symbol": arguments.get("symbol"), "outputsize": arguments.get("outputsize")},
            default_interval=DAILY,
            allowed_intervals=(DAILY,),
        )
        return self._fetch_and_format(params)

    def get_stock_alerts(self, arguments: Mapping[str, Any]) -> str:
        params = QueryParams.from_arguments(
            {"symbol": arguments.get("symbol"), "threshold": arguments.get("threshold")},
            default_interval=DAILY,
            allowed_intervals=(DAILY,),
        )
        series = self.client.fetch_time_series(params.symbol, DAILY, "compact")
        report = analyze_alerts(series, params.symbol, params.threshold)
        for date in report.skipped:
            self.logger.warning(f"Skipped alert comparison for {params.symbol} on {date}: previous close is 0")
        return report.render()

    def call_tool(self, name: str, arguments: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Run tool ``name``. Raises KeyError for unknown tools."""
        tool = self.tools[name]
        arguments = {k: first_scalar(v) for k, v in (arguments or {}).items()}
        try:
            return _text_result(tool.handler(arguments))
        except AlphaVantageMCPError as e:
            self.logger.warning(f"{name} failed: {e}")
            return _text_result(f"{tool.error_prefix}: {e}", is_error=True)

    def read_resource(self, uri: str) -> Dict[str, Any]:
        """Resolve ``stock://{symbol}/{interval}``; errors propagate as ResourceError."""
        match = _RESOURCE_URI.match(uri or "")
        if not match:
            raise ValidationError(f"Unsupported resource URI: {uri}")

        arguments = {
            "symbol": unquote(match.group("symbol")),
            "interval": unquote(match.group("interval") or "") or DAILY,
        }
        try:
            # outputsize is always compact for the resource
            params = QueryParams.from_arguments(arguments, default_interval=DAILY, allowed_intervals=ALL_INTERVALS)
            text = self._fetch_and_format(params)
        except AlphaVantageMCPError as e:
            self.logger.error(f"Resource read failed for {uri}: {e}")
            raise ResourceError(f"Failed to fetch stock data: {e}") from e

        return {"contents": [{"uri": uri, "text": text, "mimeType": "text/plain"}]}
