"""Fixed-rate polling engine.

The engine drives one cycle per tick: one fetch per tracked instrument, all
issued concurrently. Each fetch settles on its own and is merged into that
instrument's state, after which the full snapshot is republished. The merge
and publish step contains no ``await``, so on the event loop it runs as one
uninterruptible unit per instrument.

Overlapping fetches for the same instrument (a slow fetch from cycle N still
pending when cycle N+1 starts) resolve last-completion-wins: whichever fetch
lands last becomes the latest sample and the newest history point.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple, Union

from loguru import logger

from capflow.adapters.sources.interfaces import BaseDataSource
from capflow.config.settings import Settings, get_settings
from capflow.utils.ts import utc_now

from .errors import FetchError, FetchFailure, MalformedPayload, TransportFailure
from .publisher import SnapshotCallback, SnapshotPublisher, SubscriptionHandle
from .state import InstrumentState
from .types import InstrumentView, PollingConfig, Sample, Snapshot

FetchErrorObserver = Callable[[FetchFailure], None]

APPLIED = "applied"
FAILED = "failed"
DISCARDED = "discarded"


def _config_from_settings(settings: Settings) -> PollingConfig:
    return PollingConfig.create(
        poll_interval_ms=settings.POLL_INTERVAL_MS,
        history_capacity=settings.HISTORY_CAPACITY,
        tracked_instruments=settings.INSTRUMENTS,
    )


@dataclass
class CycleReport:
    """Outcome of one poll cycle, per instrument."""

    cycle: int
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, FetchError] = field(default_factory=dict)
    discarded: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.discarded


@dataclass
class InstrumentStats:
    """Fetch bookkeeping kept outside InstrumentState."""

    successes: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    last_error: Optional[str] = None
    last_success_at: Optional[datetime] = None


class PollingEngine:
    """Polls a data source on a fixed rate and publishes merged snapshots."""

    def __init__(
        self,
        data_source: BaseDataSource,
        config: Union[PollingConfig, Mapping[str, Any], None] = None,
        *,
        on_fetch_error: Optional[FetchErrorObserver] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if config is None:
            config = _config_from_settings(get_settings())
        elif not isinstance(config, PollingConfig):
            config = PollingConfig.create(**dict(config))
        self._config = config
        self._data_source = data_source
        self._on_fetch_error = on_fetch_error
        self._clock = clock or utc_now

        self._states: Dict[str, InstrumentState] = {
            instrument_id: InstrumentState(instrument_id, config.history_capacity)
            for instrument_id in config.tracked_instruments
        }
        self._stats: Dict[str, InstrumentStats] = {
            instrument_id: InstrumentStats() for instrument_id in self._states
        }
        # Per-instrument views reused between publications; only the
        # instrument that just settled gets a fresh one.
        self._views: Dict[str, InstrumentView] = {
            instrument_id: state.view() for instrument_id, state in self._states.items()
        }
        self._sequence = 0
        self._publisher = SnapshotPublisher(
            Snapshot.build(self._views.values(), sequence=0)
        )

        self._running = False
        self._generation = 0
        self._cycle_count = 0
        self._timer_task: Optional[asyncio.Task] = None
        self._cycle_tasks: Set[asyncio.Task] = set()
        self._fetch_tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        data_source: Optional[BaseDataSource] = None,
        **kwargs: Any,
    ) -> PollingEngine:
        """Factory creating an engine (and the Binance source) from settings."""
        settings = settings or get_settings()
        config = _config_from_settings(settings)
        if data_source is None:
            from capflow.adapters.sources.binance import BinanceCapitalFlowSource

            data_source = BinanceCapitalFlowSource(
                base_url=settings.CAPITAL_FLOW_URL,
                period=settings.CAPITAL_FLOW_PERIOD,
                timeout=settings.REQUEST_TIMEOUT,
            )
        return cls(data_source, config, **kwargs)

    # ------------------------------------------------------------------
    # Properties

    @property
    def config(self) -> PollingConfig:
        return self._config

    @property
    def data_source(self) -> BaseDataSource:
        return self._data_source

    @property
    def instruments(self) -> Tuple[str, ...]:
        return tuple(self._states)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    def stats(self) -> Dict[str, InstrumentStats]:
        return {instrument_id: replace(s) for instrument_id, s in self._stats.items()}

    # ------------------------------------------------------------------
    # Publisher boundary

    def current_snapshot(self) -> Snapshot:
        return self._publisher.current_snapshot()

    def subscribe(self, callback: SnapshotCallback) -> SubscriptionHandle:
        return self._publisher.subscribe(callback)

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        return self._publisher.unsubscribe(handle)

    # ------------------------------------------------------------------
    # Lifecycle

    async def start(self) -> None:
        """Start the fixed-rate timer. A second call while running is a no-op.

        The engine counts as running from the moment ``start()`` is entered,
        so a concurrent ``start()`` is ignored while the source opens and a
        ``stop()`` issued meanwhile wins: no timer is created afterwards.
        """
        if self._running:
            logger.warning("PollingEngine already running, start() ignored")
            return
        self._running = True
        generation = self._generation
        try:
            await self._data_source.open()
        except BaseException:
            if generation == self._generation:
                self._running = False
            raise
        if generation != self._generation:
            logger.info("PollingEngine stopped while opening its data source")
            return
        self._timer_task = asyncio.create_task(self._run_timer(), name="capflow-timer")
        logger.info(
            "PollingEngine started: instruments={} interval={}ms capacity={}",
            ",".join(self._states),
            self._config.poll_interval_ms,
            self._config.history_capacity,
        )

    async def stop(self) -> None:
        """Cancel the timer and every in-flight fetch. Late results are dropped."""
        if not self._running:
            return
        self._running = False
        self._generation += 1

        current = asyncio.current_task()
        pending = [
            task
            for task in (self._timer_task, *self._cycle_tasks, *self._fetch_tasks)
            if task is not None and task is not current
        ]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._timer_task = None
        logger.info("PollingEngine stopped after {} cycles", self._cycle_count)

    async def close(self) -> None:
        """Stop polling and release the data source."""
        await self.stop()
        await self._data_source.close()

    async def __aenter__(self) -> PollingEngine:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Polling

    async def run_cycle(self) -> CycleReport:
        """Issue one fetch per instrument concurrently and wait for all to settle."""
        self._cycle_count += 1
        cycle = self._cycle_count
        generation = self._generation
        logger.debug("Starting cycle {} for {} instruments", cycle, len(self._states))

        # Create named tasks so we don't depend on result ordering.
        tasks_map: Dict[str, asyncio.Task] = {}
        for instrument_id in self._states:
            task = asyncio.create_task(
                self._poll_instrument(instrument_id, cycle, generation),
                name=f"capflow-fetch:{instrument_id}:{cycle}",
            )
            self._fetch_tasks.add(task)
            task.add_done_callback(self._fetch_tasks.discard)
            tasks_map[instrument_id] = task

        await asyncio.gather(*tasks_map.values(), return_exceptions=True)

        report = CycleReport(cycle=cycle)
        for instrument_id, task in tasks_map.items():
            if task.cancelled():
                report.discarded.append(instrument_id)
                continue
            outcome, error = task.result()
            if outcome == APPLIED:
                report.succeeded.append(instrument_id)
            elif outcome == FAILED:
                report.failed[instrument_id] = error
            else:
                report.discarded.append(instrument_id)
        logger.debug(
            "Cycle {} settled: ok={} failed={} discarded={}",
            cycle,
            len(report.succeeded),
            len(report.failed),
            len(report.discarded),
        )
        return report

    async def _run_timer(self) -> None:
        loop = asyncio.get_running_loop()
        interval = self._config.poll_interval
        next_tick = loop.time()
        while True:
            self._launch_cycle()
            next_tick += interval
            now = loop.time()
            if now > next_tick:
                missed = int((now - next_tick) // interval) + 1
                logger.warning("Polling fell behind, skipping {} tick(s)", missed)
                next_tick += missed * interval
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

    def _launch_cycle(self) -> None:
        # Fixed-rate: the timer never waits for a cycle to settle.
        task = asyncio.create_task(self.run_cycle())
        self._cycle_tasks.add(task)
        task.add_done_callback(self._on_cycle_done)

    def _on_cycle_done(self, task: asyncio.Task) -> None:
        self._cycle_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error("Poll cycle crashed")

    async def _poll_instrument(
        self, instrument_id: str, cycle: int, generation: int
    ) -> Tuple[str, Optional[FetchError]]:
        error: Optional[FetchError] = None
        sample: Optional[Sample] = None
        try:
            result = await self._data_source.fetch_sample(instrument_id)
            if not isinstance(result, Sample):
                raise MalformedPayload(
                    f"Data source returned {type(result).__name__}, expected Sample",
                    instrument_id=instrument_id,
                )
            sample = result
        except FetchError as exc:
            error = exc
        except Exception as exc:
            logger.exception("Unexpected error fetching {}", instrument_id)
            error = TransportFailure(
                f"Unexpected error fetching {instrument_id}: {exc}",
                instrument_id=instrument_id,
            )
            error.__cause__ = exc

        if generation != self._generation:
            logger.debug(
                "Dropping result for {} from cycle {}: engine stopped",
                instrument_id,
                cycle,
            )
            return DISCARDED, error

        # Merge and publish, no suspension point below.
        if error is None:
            self._apply_success(instrument_id, sample)
            return APPLIED, None
        if error.instrument_id is None:
            error.instrument_id = instrument_id
        self._apply_failure(instrument_id, cycle, error)
        return FAILED, error

    def _apply_success(self, instrument_id: str, sample: Sample) -> None:
        state = self._states[instrument_id]
        observed_at = self._clock()
        state.apply(sample, observed_at)
        self._views[instrument_id] = state.view()

        stats = self._stats[instrument_id]
        stats.successes += 1
        stats.consecutive_failures = 0
        stats.last_success_at = observed_at
        self._publish()

    def _apply_failure(self, instrument_id: str, cycle: int, error: FetchError) -> None:
        stats = self._stats[instrument_id]
        stats.failures += 1
        stats.consecutive_failures += 1
        stats.last_error = f"{type(error).__name__}: {error}"
        logger.warning(
            "Fetch failed for {} in cycle {} ({}): {}",
            instrument_id,
            cycle,
            type(error).__name__,
            error,
        )
        self._notify_observer(
            FetchFailure(
                instrument_id=instrument_id,
                cycle=cycle,
                error=error,
                occurred_at=self._clock(),
            )
        )
        self._publish()

    def _notify_observer(self, failure: FetchFailure) -> None:
        if self._on_fetch_error is None:
            return
        try:
            self._on_fetch_error(failure)
        except Exception:
            logger.exception(
                "on_fetch_error observer failed for {}", failure.instrument_id
            )

    def _publish(self) -> None:
        self._sequence += 1
        snapshot = Snapshot.build(
            self._views.values(),
            sequence=self._sequence,
            published_at=self._clock(),
        )
        self._publisher.publish(snapshot)
