"""API schemas for capflow Server."""

from .common import BaseResponse, InstrumentResponse, SnapshotResponse
from .health import HealthResponse, InstrumentHealth

__all__ = [
    "BaseResponse",
    "InstrumentResponse",
    "SnapshotResponse",
    "HealthResponse",
    "InstrumentHealth",
]
