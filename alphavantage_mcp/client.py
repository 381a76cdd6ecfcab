"""
Alpha Vantage HTTP client.

One GET against ``{base_url}/query`` per call. Retries are bounded and only
happen for HTTP 408, HTTP 429 and network-level failures; any other
``requests`` failure becomes an ``UpstreamError`` straight away.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from .config import Settings
from .errors import DataShapeError, UpstreamError
from .models import DAILY, TimeSeries, parse_time_series, series_key

RETRY_STATUSES = (408, 429)
MAX_BACKOFF = 30.0


class AlphaVantageClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://www.alphavantage.co",
        timeout: float = 30.0,
        max_retries: int = 2,
        retry_backoff: float = 1.0,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, logger: Optional[logging.Logger] = None) -> "AlphaVantageClient":
        return cls(
            api_key=settings.api_key,
            base_url=settings.base_url,
            timeout=settings.timeout,
            max_retries=settings.max_retries,
            retry_backoff=settings.retry_backoff,
            logger=logger,
        )

    def _redact(self, text: str) -> str:
        return text.replace(self.api_key, "***") if self.api_key else text

    def _backoff(self, attempt: int) -> float:
        return min(self.retry_backoff * (2 ** attempt), MAX_BACKOFF)

    def _get(self, params: Dict[str, str]) -> requests.Response:
        """GET /query with the retry policy applied."""
        url = f"{self.base_url}/query"
        query = dict(params, apikey=self.api_key)
        attempt = 0

        while True:
            try:
                resp = self.session.get(url, params=query, timeout=self.timeout)
            except (requests.ConnectionError, requests.Timeout) as e:
                reason = self._redact(f"{e.__class__.__name__}: {e}")
                if attempt >= self.max_retries:
                    self.logger.error(f"HTTP request failed: no response received ({reason})")
                    raise UpstreamError(f"API request failed: {reason}") from None
            except requests.RequestException as e:
                reason = self._redact(f"{e.__class__.__name__}: {e}")
                self.logger.error(f"HTTP request failed: {reason}")
                raise UpstreamError(f"API request failed: {reason}") from None
            else:
                if resp.ok:
                    return resp
                reason = f"HTTP {resp.status_code}: {resp.reason}"
                if resp.status_code not in RETRY_STATUSES or attempt >= self.max_retries:
                    self.logger.error(f"{reason} for {params.get('function')} {params.get('symbol')}")
                    raise UpstreamError(f"API request failed: {reason}", status=resp.status_code)

            delay = self._backoff(attempt)
            attempt += 1
            self.logger.warning(
                f"HTTP request retry {attempt}/{self.max_retries} for {params.get('function')} "
                f"{params.get('symbol')} in {delay:.1f}s ({reason})"
            )
            self._sleep(delay)

    def _check_payload(self, data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise DataShapeError("No time series data found in the response")
        if data.get("Error Message"):
            raise UpstreamError(self._redact(str(data["Error Message"])))
        # Rate-limit notices come back with HTTP 200 and do not abort the call
        for notice in ("Note", "Information"):
            if data.get(notice):
                self.logger.warning(f"API Usage {notice}: {data[notice]}")
        return data

    def fetch_time_series(self, symbol: str, interval: str = DAILY, outputsize: str = "compact") -> TimeSeries:
        """Fetch and parse a daily or intraday series for ``symbol``."""
        if interval == DAILY:
            params = {"function": "TIME_SERIES_DAILY", "symbol": symbol, "outputsize": outputsize}
        else:
            params = {"function": "TIME_SERIES_INTRADAY", "symbol": symbol, "interval": interval, "outputsize": outputsize}

        resp = self._get(params)
        try:
            payload = resp.json()
        except ValueError:
            raise DataShapeError("Alpha Vantage returned a response that is not valid JSON") from None

        data = self._check_payload(payload)
        raw_series = data.get(series_key(interval))
        if not raw_series:
            raise DataShapeError("No time series data found in the response")

        series = parse_time_series(raw_series)
        self.logger.debug(f"Fetched {len(series)} points for {symbol} ({interval}, {outputsize})")
        return series
