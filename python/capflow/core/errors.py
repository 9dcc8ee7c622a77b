"""Failure taxonomy for the polling engine and its data sources."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class CapflowError(Exception):
    """Base class for all capflow errors."""


class ConfigurationError(CapflowError, ValueError):
    """Invalid engine configuration. Raised at construction, fatal to start."""


class FetchError(CapflowError):
    """A single fetch for one instrument failed. Non-fatal, per cycle."""

    def __init__(self, message: str, instrument_id: Optional[str] = None):
        super().__init__(message)
        self.instrument_id = instrument_id


class TransportFailure(FetchError):
    """Network/connection-level failure, or a non-success status."""

    def __init__(
        self,
        message: str,
        instrument_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, instrument_id=instrument_id)
        self.status_code = status_code


class MalformedPayload(FetchError):
    """A response arrived but failed shape validation."""


@dataclass(frozen=True)
class FetchFailure:
    """Event handed to the engine's ``on_fetch_error`` observer."""

    instrument_id: str
    cycle: int
    error: FetchError
    occurred_at: datetime

    @property
    def kind(self) -> str:
        return type(self.error).__name__
