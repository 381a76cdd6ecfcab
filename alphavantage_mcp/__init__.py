"""
Alpha Vantage Stock MCP Server
------------------------------
A lightweight MCP server that connects AI assistants (Claude Desktop, Cursor)
to the Alpha Vantage stock data API.

Tools: get-stock-data, get-daily-stock-data, get-stock-alerts.
Resource template: stock://{symbol}/{interval}.
Authentication via the ALPHAVANTAGE_API_KEY environment variable.
"""

__version__ = "1.0.0"
