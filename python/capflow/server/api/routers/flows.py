"""Capital-flow router: snapshot reads and a server-sent event stream."""

import asyncio
import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from loguru import logger

from capflow.core.engine import PollingEngine
from capflow.core.types import Snapshot

from ..deps import get_engine
from ..schemas.common import InstrumentResponse, SnapshotResponse

router = APIRouter()


@router.get("/", response_model=SnapshotResponse)
async def get_snapshot(engine: PollingEngine = Depends(get_engine)):
    """Return the latest published snapshot for all tracked instruments."""
    snapshot = engine.current_snapshot()
    return SnapshotResponse(
        message=f"Snapshot #{snapshot.sequence}",
        data=snapshot.to_dict(),
    )


@router.get("/stream")
async def stream_snapshots(
    limit: Optional[int] = Query(
        None, ge=1, description="Close the stream after this many snapshots"
    ),
    engine: PollingEngine = Depends(get_engine),
):
    """
    Stream published snapshots as Server-Sent Events.

    The first event is the current snapshot; every later publication follows.
    Slow clients only ever receive the most recent snapshot.
    """

    async def generate_stream():
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)

        def on_snapshot(snapshot: Snapshot) -> None:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(snapshot)

        handle = engine.subscribe(on_snapshot)
        logger.debug("SSE subscriber {} connected", handle.subscription_id)
        sent = 0
        try:
            while limit is None or sent < limit:
                snapshot = await queue.get()
                yield f"data: {json.dumps(snapshot.to_dict())}\n\n"
                sent += 1
        finally:
            engine.unsubscribe(handle)
            logger.debug("SSE subscriber {} disconnected", handle.subscription_id)

    return StreamingResponse(
        generate_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


@router.get("/{instrument_id}", response_model=InstrumentResponse)
async def get_instrument(
    instrument_id: str, engine: PollingEngine = Depends(get_engine)
):
    """Return the latest sample and history for one instrument."""
    view = engine.current_snapshot().get(instrument_id)
    if view is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Instrument '{instrument_id}' is not tracked",
        )
    return InstrumentResponse(
        message="ok" if view.has_data else "no data yet",
        data=view.model_dump(mode="json", by_alias=True),
    )
