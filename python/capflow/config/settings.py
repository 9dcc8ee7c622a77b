"""Environment-driven settings for capflow."""

import math
import os
from functools import lru_cache
from typing import List, Optional

from capflow import __version__

from .constants import (
    BINANCE_CAPITAL_FLOW_URL,
    DEFAULT_API_HOST,
    DEFAULT_API_PORT,
    DEFAULT_CAPITAL_FLOW_PERIOD,
    DEFAULT_HISTORY_CAPACITY,
    DEFAULT_INSTRUMENTS,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_REQUEST_TIMEOUT,
)


def _split_csv(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _env_flag(name: str, default: str = "false") -> bool:
    return str(os.getenv(name, default)).lower() in ("1", "true", "yes")


def _env_number(name: str, default, cast, minimum, maximum=None):
    """Read a numeric env var; bad values raise ``ConfigurationError``."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        value = None
    valid = (
        value is not None
        and math.isfinite(value)
        and value >= minimum
        and (maximum is None or value <= maximum)
    )
    if not valid:
        # Deferred: capflow.core imports this module
        from capflow.core.errors import ConfigurationError

        bounds = f">= {minimum}" if maximum is None else f"in [{minimum}, {maximum}]"
        raise ConfigurationError(f"{name} must be a number {bounds}, got {raw!r}")
    return value


class Settings:
    """Application settings read from the environment.

    Values are read once at construction. Polling options stay raw strings
    and are validated by ``PollingConfig``; the request timeout and API port
    are checked here. Either way a bad value surfaces as ``ConfigurationError``.
    """

    def __init__(self):
        # Application
        self.APP_NAME = "capflow"
        self.APP_VERSION = __version__
        self.APP_ENVIRONMENT = os.getenv("APP_ENVIRONMENT", "development")

        # Polling
        self.POLL_INTERVAL_MS = os.getenv(
            "CAPFLOW_POLL_INTERVAL_MS", str(DEFAULT_POLL_INTERVAL_MS)
        )
        self.HISTORY_CAPACITY = os.getenv(
            "CAPFLOW_HISTORY_CAPACITY", str(DEFAULT_HISTORY_CAPACITY)
        )
        instruments = _split_csv(os.getenv("CAPFLOW_INSTRUMENTS"))
        self.INSTRUMENTS: List[str] = instruments or list(DEFAULT_INSTRUMENTS)

        # Data source
        self.CAPITAL_FLOW_URL = os.getenv("CAPFLOW_BASE_URL", BINANCE_CAPITAL_FLOW_URL)
        self.CAPITAL_FLOW_PERIOD = os.getenv(
            "CAPFLOW_PERIOD", DEFAULT_CAPITAL_FLOW_PERIOD
        )
        self.REQUEST_TIMEOUT = _env_number(
            "CAPFLOW_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT, float, minimum=0.001
        )

        # Logging
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_FILE = os.getenv("LOG_FILE") or None

        # API
        self.API_HOST = os.getenv("API_HOST", DEFAULT_API_HOST)
        self.API_PORT = _env_number(
            "API_PORT", DEFAULT_API_PORT, int, minimum=1, maximum=65535
        )
        self.API_DEBUG = _env_flag("API_DEBUG")
        self.CORS_ORIGINS = _split_csv(os.getenv("CORS_ORIGINS", "*")) or ["*"]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
