from .engine import CycleReport, InstrumentStats, PollingEngine
from .errors import (
    CapflowError,
    ConfigurationError,
    FetchError,
    FetchFailure,
    MalformedPayload,
    TransportFailure,
)
from .history import HistoryBuffer
from .publisher import SnapshotPublisher, SubscriptionHandle
from .state import InstrumentState
from .types import HistoryPoint, InstrumentView, PollingConfig, Sample, Snapshot

__all__ = [
    "CapflowError",
    "ConfigurationError",
    "CycleReport",
    "FetchError",
    "FetchFailure",
    "HistoryBuffer",
    "HistoryPoint",
    "InstrumentState",
    "InstrumentStats",
    "InstrumentView",
    "MalformedPayload",
    "PollingConfig",
    "PollingEngine",
    "Sample",
    "Snapshot",
    "SnapshotPublisher",
    "SubscriptionHandle",
    "TransportFailure",
]
