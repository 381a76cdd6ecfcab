import logging
from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest

from alphavantage_mcp.client import AlphaVantageClient
from alphavantage_mcp.logging_setup import LOGGER_NAME
from alphavantage_mcp.models import parse_time_series
from alphavantage_mcp.tools import StockTools


def make_entry(close, volume="1000"):
    close = str(close)
    return {
        "1. open": close,
        "2. high": close,
        "3. low": close,
        "4. close": close,
        "5. volume": str(volume),
    }


def make_raw_series(closes):
    """``{date: close}`` -> raw Alpha Vantage series mapping."""
    return {key: make_entry(close) for key, close in closes.items()}


def make_series(closes):
    return parse_time_series(make_raw_series(closes))


def consecutive_days(count, start=date(2024, 1, 1)):
    return [(start + timedelta(days=i)).isoformat() for i in range(count)]


def daily_payload(closes):
    return {
        "Meta Data": {"1. Information": "Daily Prices (open, high, low, close) and Volumes"},
        "Time Series (Daily)": make_raw_series(closes),
    }


@pytest.fixture
def aapl_series():
    return make_series({"2024-01-03": "150.0000", "2024-01-02": "142.5000"})


@pytest.fixture
def fake_client():
    return MagicMock(spec=AlphaVantageClient)


@pytest.fixture
def stock_tools(fake_client):
    return StockTools(fake_client, logger=logging.getLogger("tests.tools"))


@pytest.fixture(autouse=True)
def reset_server_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
