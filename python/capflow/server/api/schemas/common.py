"""Response envelopes for capflow Server."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class BaseResponse(BaseModel):
    """Envelope shared by every capflow API response."""

    success: bool = True
    message: str
    data: Optional[Dict[str, Any]] = None


class SnapshotResponse(BaseResponse):
    """Latest published snapshot across all tracked instruments."""

    data: Dict[str, Any] = Field(
        ..., description="sequence, publishedAt (epoch ms) and per-instrument views"
    )


class InstrumentResponse(BaseResponse):
    """Latest sample and sliding history of one instrument."""

    data: Dict[str, Any] = Field(
        ..., description="instrumentId, latestSample (or null) and history"
    )
