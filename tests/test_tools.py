import logging
from unittest.mock import MagicMock

import pytest
import requests

from alphavantage_mcp.client import AlphaVantageClient
from alphavantage_mcp.errors import DataShapeError, ResourceError, UpstreamError, ValidationError
from alphavantage_mcp.tools import StockTools

from conftest import consecutive_days, make_series


def _text(result):
    assert len(result["content"]) == 1
    assert result["content"][0]["type"] == "text"
    return result["content"][0]["text"]


def test_tool_catalogue(stock_tools):
    tools = {t["name"]: t for t in stock_tools.list_tools()}

    assert set(tools) == {"get-stock-data", "get-daily-stock-data", "get-stock-alerts"}
    assert tools["get-stock-data"]["inputSchema"]["properties"]["interval"]["enum"] == [
        "1min", "5min", "15min", "30min", "60min",
    ]
    assert all(t["inputSchema"]["required"] == ["symbol"] for t in tools.values())


def test_get_stock_data_defaults(stock_tools, fake_client):
    fake_client.fetch_time_series.return_value = make_series({"2024-01-02 16:00:00": "10"})

    result = stock_tools.call_tool("get-stock-data", {"symbol": "aapl"})

    fake_client.fetch_time_series.assert_called_once_with("aapl", "5min", "compact")
    assert result["isError"] is False
    assert _text(result).startswith("Stock data for AAPL (5min intervals):")


def test_list_wrapped_arguments_are_unwrapped(stock_tools, fake_client):
    fake_client.fetch_time_series.return_value = make_series({"2024-01-02 16:00:00": "10"})

    result = stock_tools.call_tool("get-stock-data", {"symbol": ["ibm"], "interval": ["60min"]})

    fake_client.fetch_time_series.assert_called_once_with("ibm", "60min", "compact")
    assert result["isError"] is False


def test_get_daily_stock_data(stock_tools, fake_client):
    fake_client.fetch_time_series.return_value = make_series({d: "10" for d in consecutive_days(12)})

    result = stock_tools.call_tool("get-daily-stock-data", {"symbol": "IBM", "outputsize": "full"})

    fake_client.fetch_time_series.assert_called_once_with("IBM", "daily", "full")
    text = _text(result)
    assert text.startswith("Stock data for IBM (Daily intervals):")
    assert "... and 2 more data points available." in text


def test_get_stock_alerts(stock_tools, fake_client, aapl_series):
    fake_client.fetch_time_series.return_value = aapl_series

    result = stock_tools.call_tool("get-stock-alerts", {"symbol": "AAPL", "threshold": 5})

    fake_client.fetch_time_series.assert_called_once_with("AAPL", "daily", "compact")
    text = _text(result)
    assert "5.26%" in text
    assert "from 142.5 to 150" in text
    assert "increased" in text


def test_get_stock_alerts_default_threshold(stock_tools, fake_client):
    fake_client.fetch_time_series.return_value = make_series({"2024-01-02": "100", "2024-01-01": "101"})

    text = _text(stock_tools.call_tool("get-stock-alerts", {"symbol": "IBM"}))

    assert text.startswith("Stock Alerts for IBM (5% threshold):")


def test_get_stock_alerts_logs_skipped_comparisons(stock_tools, fake_client, caplog):
    fake_client.fetch_time_series.return_value = make_series({"2024-01-02": "100", "2024-01-01": "0"})

    with caplog.at_level(logging.WARNING, logger="tests.tools"):
        result = stock_tools.call_tool("get-stock-alerts", {"symbol": "IBM"})

    assert result["isError"] is False
    assert any("previous close is 0" in r.getMessage() for r in caplog.records)


def test_upstream_failure_is_returned_as_error_text(stock_tools, fake_client):
    fake_client.fetch_time_series.side_effect = UpstreamError("API request failed: HTTP 500: Internal Server Error", 500)

    result = stock_tools.call_tool("get-stock-data", {"symbol": "IBM"})

    assert result["isError"] is True
    assert _text(result) == "Error fetching stock data: API request failed: HTTP 500: Internal Server Error"


def test_missing_symbol_is_reported_without_fetching(stock_tools, fake_client):
    result = stock_tools.call_tool("get-daily-stock-data", {})

    assert result["isError"] is True
    assert _text(result) == "Error fetching daily stock data: symbol is required"
    fake_client.fetch_time_series.assert_not_called()


def test_daily_is_not_an_intraday_interval(stock_tools, fake_client):
    result = stock_tools.call_tool("get-stock-data", {"symbol": "IBM", "interval": "daily"})

    assert result["isError"] is True
    fake_client.fetch_time_series.assert_not_called()


def test_zero_threshold_is_rejected(stock_tools, fake_client):
    result = stock_tools.call_tool("get-stock-alerts", {"symbol": "IBM", "threshold": 0})

    assert result["isError"] is True
    assert _text(result).startswith("Error generating stock alerts: Invalid threshold")


def test_not_enough_history_is_not_an_error(stock_tools, fake_client):
    fake_client.fetch_time_series.return_value = make_series({"2024-01-02": "100"})

    result = stock_tools.call_tool("get-stock-alerts", {"symbol": "IBM"})

    assert result["isError"] is False
    assert _text(result) == "Not enough historical data available for IBM to generate alerts."


def test_unknown_tool_raises_key_error(stock_tools):
    with pytest.raises(KeyError):
        stock_tools.call_tool("get-crypto", {})


# ---------------------------------------------------------------------------
# stock://{symbol}/{interval}
# ---------------------------------------------------------------------------

def test_resource_template_listing(stock_tools):
    (template,) = stock_tools.list_resource_templates()
    assert template["uriTemplate"] == "stock://{symbol}/{interval}"
    assert template["mimeType"] == "text/plain"


def test_read_resource(stock_tools, fake_client):
    fake_client.fetch_time_series.return_value = make_series({"2024-01-02": "10"})

    result = stock_tools.read_resource("stock://aapl/daily")

    fake_client.fetch_time_series.assert_called_once_with("aapl", "daily", "compact")
    (content,) = result["contents"]
    assert content["uri"] == "stock://aapl/daily"
    assert content["mimeType"] == "text/plain"
    assert content["text"].startswith("Stock data for AAPL (Daily intervals):")


def test_read_resource_intraday_and_missing_interval(stock_tools, fake_client):
    fake_client.fetch_time_series.return_value = make_series({"2024-01-02 16:00:00": "10"})

    stock_tools.read_resource("stock://IBM/1min")
    stock_tools.read_resource("stock://IBM")

    assert [c.args for c in fake_client.fetch_time_series.call_args_list] == [
        ("IBM", "1min", "compact"),
        ("IBM", "daily", "compact"),
    ]


def test_read_resource_propagates_failures(stock_tools, fake_client):
    fake_client.fetch_time_series.side_effect = DataShapeError("No time series data found in the response")

    with pytest.raises(ResourceError, match="Failed to fetch stock data: No time series data found"):
        stock_tools.read_resource("stock://IBM/daily")


def test_read_resource_rejects_bad_interval(stock_tools, fake_client):
    with pytest.raises(ResourceError, match="Invalid interval"):
        stock_tools.read_resource("stock://IBM/2min")
    fake_client.fetch_time_series.assert_not_called()


def test_read_resource_rejects_other_schemes(stock_tools):
    with pytest.raises(ValidationError):
        stock_tools.read_resource("file:///etc/passwd")


def test_broken_transfer_from_real_client_is_returned_as_error_text():
    session = MagicMock()
    session.get.side_effect = requests.TooManyRedirects("Exceeded 30 redirects.")
    client = AlphaVantageClient(api_key="secret", max_retries=2, session=session, sleep=MagicMock())
    tools = StockTools(client, logger=logging.getLogger("tests.tools"))

    result = tools.call_tool("get-stock-alerts", {"symbol": "IBM"})

    assert result["isError"] is True
    assert _text(result) == "Error generating stock alerts: API request failed: TooManyRedirects: Exceeded 30 redirects."
    assert session.get.call_count == 1
