"""Health check router for capflow Server."""

from fastapi import APIRouter, Depends

from capflow.config.settings import get_settings
from capflow.core.engine import PollingEngine

from ..deps import get_engine
from ..schemas.health import HealthResponse, InstrumentHealth

router = APIRouter()


@router.get("/", response_model=HealthResponse)
async def health_check(engine: PollingEngine = Depends(get_engine)):
    """Health check endpoint."""
    settings = get_settings()
    snapshot = engine.current_snapshot()

    instruments = {}
    degraded = []
    for instrument_id, stats in engine.stats().items():
        view = snapshot.get(instrument_id)
        instruments[instrument_id] = InstrumentHealth(
            has_data=view is not None and view.has_data,
            history_size=len(view.history) if view is not None else 0,
            successes=stats.successes,
            failures=stats.failures,
            consecutive_failures=stats.consecutive_failures,
            last_error=stats.last_error,
            last_success_at=stats.last_success_at,
        )
        if stats.consecutive_failures:
            degraded.append(instrument_id)

    if not engine.is_running:
        status = "stopped"
    elif degraded:
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        version=settings.APP_VERSION,
        environment=settings.APP_ENVIRONMENT,
        engine_running=engine.is_running,
        cycles=engine.cycle_count,
        sequence=snapshot.sequence,
        poll_interval_ms=engine.config.poll_interval_ms,
        history_capacity=engine.config.history_capacity,
        degraded=degraded,
        instruments=instruments,
    )


@router.get("/ready")
async def readiness_check(engine: PollingEngine = Depends(get_engine)):
    """Readiness check endpoint: ready once the engine is polling."""
    return {"status": "ready" if engine.is_running else "starting"}


@router.get("/live")
async def liveness_check():
    """Liveness check endpoint."""
    return {"status": "alive"}
