"""Runtime settings read from the process environment."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigurationError

DEFAULT_BASE_URL = "https://www.alphavantage.co"
MODES = ("stdio", "sse", "ws")


@dataclass(frozen=True)
class Settings:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 30.0
    max_retries: int = 2
    retry_backoff: float = 1.0
    mode: str = "stdio"
    host: str = "0.0.0.0"
    port: int = 8002
    ws_token: Optional[str] = None
    log_level: str = "INFO"
    log_dir: Optional[str] = None


def _number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {raw!r}")
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from ``environ`` (defaults to ``os.environ``).

    Raises ConfigurationError when ALPHAVANTAGE_API_KEY is missing or a
    numeric variable cannot be parsed.
    """
    env = os.environ if environ is None else environ

    api_key = env.get("ALPHAVANTAGE_API_KEY", "").strip()
    if not api_key:
        raise ConfigurationError("ALPHAVANTAGE_API_KEY is required")

    mode = env.get("AV_MCP_MODE", "stdio").strip().lower() or "stdio"
    if mode not in MODES:
        raise ConfigurationError(f"AV_MCP_MODE must be one of {', '.join(MODES)}, got {mode!r}")

    return Settings(
        api_key=api_key,
        base_url=(env.get("ALPHAVANTAGE_BASE_URL", "").strip() or DEFAULT_BASE_URL).rstrip("/"),
        timeout=_number(env, "ALPHAVANTAGE_TIMEOUT", 30.0, float),
        max_retries=_number(env, "ALPHAVANTAGE_MAX_RETRIES", 2, int),
        retry_backoff=_number(env, "ALPHAVANTAGE_RETRY_BACKOFF", 1.0, float),
        mode=mode,
        host=env.get("AV_MCP_HOST", "").strip() or "0.0.0.0",
        port=_number(env, "AV_MCP_PORT", 8002, int),
        ws_token=env.get("AV_MCP_TOKEN", "").strip() or None,
        log_level=(env.get("LOG_LEVEL", "").strip() or "INFO").upper(),
        log_dir=env.get("LOG_DIR", "").strip() or None,
    )
