"""Health check schemas for capflow Server."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class InstrumentHealth(BaseModel):
    """Fetch bookkeeping for one tracked instrument."""

    has_data: bool
    history_size: int
    successes: int
    failures: int
    consecutive_failures: int
    last_error: Optional[str] = None
    last_success_at: Optional[datetime] = None


class HealthResponse(BaseModel):
    """Health check response model."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "version": "0.1.0",
                "environment": "development",
                "engine_running": True,
                "cycles": 12,
                "sequence": 24,
                "poll_interval_ms": 3000,
                "history_capacity": 20,
                "instruments": {},
            }
        }
    )

    status: str
    version: str
    environment: str
    engine_running: bool
    cycles: int
    sequence: int
    poll_interval_ms: int
    history_capacity: int
    degraded: List[str] = Field(
        default_factory=list,
        description="Instruments whose latest fetch failed",
    )
    instruments: Dict[str, InstrumentHealth] = Field(default_factory=dict)
