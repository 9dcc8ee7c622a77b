"""HTTP surface tests: snapshot reads, SSE stream and health checks."""

import asyncio
import json
import time

import pytest
from fastapi.testclient import TestClient

from capflow.adapters.sources.interfaces import BaseDataSource
from capflow.core.engine import PollingEngine
from capflow.core.errors import TransportFailure
from capflow.core.types import PollingConfig, Sample
from capflow.server.api.app import create_app

TS_MS = 1_700_000_000_000


class StaticSource(BaseDataSource):
    """Returns a fixed total per instrument; unknown instruments fail."""

    def __init__(self, totals):
        self.totals = totals
        self.closed = False

    async def fetch_sample(self, instrument_id):
        if instrument_id not in self.totals:
            raise TransportFailure("connection refused", instrument_id=instrument_id)
        total = self.totals[instrument_id]
        return Sample.from_payload(
            {
                "totalNetInflow": total,
                "bigVolumeNetInflow": 0,
                "buyMakerBigVolume": 0,
                "buyTakerBigVolume": 0,
                "mediumVolumeNetInflow": 0,
                "smallVolumeNetInflow": 0,
                "updateTimestamp": TS_MS,
            }
        )

    async def close(self):
        self.closed = True


def _engine(totals, instruments=("ETHUSDT", "BTCUSDT"), interval_ms=60_000):
    config = PollingConfig.create(
        poll_interval_ms=interval_ms,
        history_capacity=3,
        tracked_instruments=list(instruments),
    )
    return PollingEngine(StaticSource(totals), config)


@pytest.fixture
def polled_engine():
    engine = _engine({"ETHUSDT": 10.0})
    asyncio.run(engine.run_cycle())
    return engine


@pytest.fixture
def client(polled_engine):
    return TestClient(create_app(polled_engine, start_engine=False))


class TestFlowsRouter:
    def test_snapshot_lists_every_instrument(self, client):
        resp = client.get("/api/v1/flows/")

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        data = body["data"]
        assert data["sequence"] == 2
        assert set(data["instruments"]) == {"ETHUSDT", "BTCUSDT"}
        eth = data["instruments"]["ETHUSDT"]
        assert eth["latestSample"]["totalNetInflow"] == 10.0
        assert eth["latestSample"]["updateTimestamp"] == TS_MS
        assert [p["value"] for p in eth["history"]] == [10.0]
        assert data["instruments"]["BTCUSDT"]["latestSample"] is None

    def test_single_instrument(self, client):
        resp = client.get("/api/v1/flows/ETHUSDT")

        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "ok"
        assert body["data"]["instrumentId"] == "ETHUSDT"

    def test_instrument_without_data(self, client):
        body = client.get("/api/v1/flows/BTCUSDT").json()

        assert body["message"] == "no data yet"
        assert body["data"]["history"] == []

    def test_untracked_instrument_is_404(self, client):
        resp = client.get("/api/v1/flows/DOGEUSDT")

        assert resp.status_code == 404
        assert "DOGEUSDT" in resp.json()["detail"]

    def test_stream_sends_current_snapshot_first(self, client, polled_engine):
        with client.stream("GET", "/api/v1/flows/stream?limit=1") as resp:
            assert resp.status_code == 200
            assert resp.headers["content-type"].startswith("text/event-stream")
            events = [
                json.loads(line[len("data: ") :])
                for line in resp.iter_lines()
                if line.startswith("data: ")
            ]

        assert len(events) == 1
        assert events[0]["sequence"] == polled_engine.current_snapshot().sequence
        assert events[0]["instruments"]["ETHUSDT"]["latestSample"] is not None
        assert polled_engine._publisher.subscriber_count == 0

    def test_stream_rejects_non_positive_limit(self, client):
        assert client.get("/api/v1/flows/stream?limit=0").status_code == 422


class TestHealthRouter:
    def test_health_reports_stopped_engine(self, client):
        body = client.get("/health/").json()

        assert body["status"] == "stopped"
        assert body["engine_running"] is False
        assert body["cycles"] == 1
        assert body["poll_interval_ms"] == 60_000
        assert body["history_capacity"] == 3
        assert body["degraded"] == ["BTCUSDT"]
        btc = body["instruments"]["BTCUSDT"]
        assert btc["has_data"] is False
        assert btc["consecutive_failures"] == 1
        assert btc["last_error"].startswith("TransportFailure")
        assert body["instruments"]["ETHUSDT"]["history_size"] == 1

    def test_liveness(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_readiness_before_start(self, client):
        assert client.get("/health/ready").json() == {"status": "starting"}


def test_lifespan_starts_and_closes_engine():
    engine = _engine({"ETHUSDT": 1.0, "BTCUSDT": 2.0})

    with TestClient(create_app(engine)) as client:
        assert client.get("/health/ready").json() == {"status": "ready"}

        deadline = time.monotonic() + 2.0
        body = client.get("/health/").json()
        while body["sequence"] < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
            body = client.get("/health/").json()

        assert body["status"] == "healthy"
        assert body["instruments"]["BTCUSDT"]["has_data"] is True

    assert not engine.is_running
    assert engine.data_source.closed is True


def test_lifespan_reports_degraded_instrument():
    engine = _engine({"ETHUSDT": 1.0})

    with TestClient(create_app(engine)) as client:
        deadline = time.monotonic() + 2.0
        body = client.get("/health/").json()
        while body["sequence"] < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
            body = client.get("/health/").json()

        assert body["status"] == "degraded"
        assert body["degraded"] == ["BTCUSDT"]
