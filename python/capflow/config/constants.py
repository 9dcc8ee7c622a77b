"""Core constants for capflow."""

from typing import List

# Polling defaults
DEFAULT_POLL_INTERVAL_MS = 3000
DEFAULT_HISTORY_CAPACITY = 20
DEFAULT_INSTRUMENTS: List[str] = ["ETHUSDT", "BTCUSDT"]

# Binance capital-flow endpoint
BINANCE_CAPITAL_FLOW_URL = (
    "https://www.binance.com/bapi/earn/v1/public/indicator/capital-flow/info"
)
DEFAULT_CAPITAL_FLOW_PERIOD = "MINUTE_15"
BINANCE_SUCCESS_CODE = "000000"
DEFAULT_REQUEST_TIMEOUT = 10.0  # seconds

# Payload field marking a bare sample (no envelope)
SAMPLE_TIMESTAMP_FIELD = "updateTimestamp"

# Server
DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8000
