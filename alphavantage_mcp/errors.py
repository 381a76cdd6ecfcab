"""Exception types raised by the Alpha Vantage MCP server."""
from __future__ import annotations

from typing import Optional


class AlphaVantageMCPError(Exception):
    """Base class for every error this package raises on purpose."""


class ConfigurationError(AlphaVantageMCPError):
    """Required settings are missing or malformed. Fatal at startup."""


class ValidationError(AlphaVantageMCPError):
    """Tool or resource arguments failed validation."""


class UpstreamError(AlphaVantageMCPError):
    """The Alpha Vantage request failed or the provider reported an error."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class DataShapeError(AlphaVantageMCPError):
    """The provider answered, but not with the data we expected."""


class EmptySeriesError(DataShapeError):
    """A time series with no entries was handed to the formatter."""


class InvalidDataError(DataShapeError):
    """A record carried a value that cannot be read as a price or volume."""


class InsufficientHistoryError(AlphaVantageMCPError):
    """Fewer than two daily records were available to compare."""


class ResourceError(AlphaVantageMCPError):
    """A resource read failed; surfaced to the transport as a protocol error."""
