from dataclasses import FrozenInstanceError
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from capflow.core.errors import ConfigurationError, MalformedPayload
from capflow.core.types import (
    HistoryPoint,
    InstrumentView,
    PollingConfig,
    Sample,
    Snapshot,
)

TS_MS = 1_700_000_000_000


@pytest.fixture(name="payload")
def _payload_fixture():
    return {
        "totalNetInflow": 1250.5,
        "bigVolumeNetInflow": -300,
        "buyMakerBigVolume": 42.0,
        "buyTakerBigVolume": 17.25,
        "mediumVolumeNetInflow": 800,
        "smallVolumeNetInflow": -12.5,
        "updateTimestamp": TS_MS,
    }


class TestSample:
    def test_from_payload_maps_all_fields(self, payload):
        sample = Sample.from_payload(payload, instrument_id="ETHUSDT")

        assert sample.total_net_inflow == 1250.5
        assert sample.big_volume_net_inflow == -300.0
        assert sample.buy_maker_big_volume == 42.0
        assert sample.buy_taker_big_volume == 17.25
        assert sample.medium_volume_net_inflow == 800.0
        assert sample.small_volume_net_inflow == -12.5
        assert sample.update_timestamp == datetime.fromtimestamp(
            TS_MS / 1000, tz=timezone.utc
        )

    def test_numeric_strings_and_extra_fields_are_accepted(self, payload):
        payload["totalNetInflow"] = "-99.75"
        payload["symbol"] = "ETHUSDT"

        sample = Sample.from_payload(payload)

        assert sample.total_net_inflow == -99.75

    def test_missing_timestamp_is_malformed(self, payload):
        del payload["updateTimestamp"]

        with pytest.raises(MalformedPayload, match="updateTimestamp") as exc_info:
            Sample.from_payload(payload, instrument_id="BTCUSDT")

        assert exc_info.value.instrument_id == "BTCUSDT"

    @pytest.mark.parametrize("field", ["totalNetInflow", "smallVolumeNetInflow"])
    def test_missing_numeric_field_is_malformed(self, payload, field):
        del payload[field]

        with pytest.raises(MalformedPayload):
            Sample.from_payload(payload)

    @pytest.mark.parametrize(
        "bad_value", ["abc", None, True, float("nan"), float("inf"), [1], {"v": 1}]
    )
    def test_non_real_numbers_are_malformed(self, payload, bad_value):
        payload["bigVolumeNetInflow"] = bad_value

        with pytest.raises(MalformedPayload):
            Sample.from_payload(payload)

    @pytest.mark.parametrize("bad_ts", ["2024-01-01T00:00:00Z", None, False])
    def test_non_epoch_timestamp_is_malformed(self, payload, bad_ts):
        payload["updateTimestamp"] = bad_ts

        with pytest.raises(MalformedPayload):
            Sample.from_payload(payload)

    @pytest.mark.parametrize("body", [None, [], "totalNetInflow", 42])
    def test_non_object_payload_is_malformed(self, body):
        with pytest.raises(MalformedPayload, match="object"):
            Sample.from_payload(body)

    def test_sample_is_frozen(self, payload):
        sample = Sample.from_payload(payload)

        with pytest.raises(ValidationError):
            sample.total_net_inflow = 0.0

    def test_json_dump_uses_feed_names_and_epoch_ms(self, payload):
        dumped = Sample.from_payload(payload).model_dump(mode="json", by_alias=True)

        assert dumped["totalNetInflow"] == 1250.5
        assert dumped["updateTimestamp"] == TS_MS


class TestSnapshot:
    def _view(self, instrument_id: str, *values: float) -> InstrumentView:
        observed = datetime(2024, 1, 1, tzinfo=timezone.utc)
        return InstrumentView(
            instrument_id=instrument_id,
            history=tuple(HistoryPoint(observed_at=observed, value=v) for v in values),
        )

    def test_mapping_behaviour(self):
        snap = Snapshot.build([self._view("ETHUSDT", 1.0), self._view("BTCUSDT")])

        assert len(snap) == 2
        assert "ETHUSDT" in snap
        assert snap.instrument_ids == ("ETHUSDT", "BTCUSDT")
        assert snap["ETHUSDT"].history_values() == (1.0,)
        assert snap.get("SOLUSDT") is None

    def test_snapshot_is_read_only(self):
        source = {"ETHUSDT": self._view("ETHUSDT")}
        snap = Snapshot(instruments=source, sequence=3)

        # Later changes to the source dict do not leak into the snapshot
        source["BTCUSDT"] = self._view("BTCUSDT")
        assert "BTCUSDT" not in snap

        with pytest.raises(TypeError):
            snap.instruments["BTCUSDT"] = self._view("BTCUSDT")
        with pytest.raises(FrozenInstanceError):
            snap.sequence = 4

    def test_to_dict(self):
        published = datetime(2024, 1, 1, tzinfo=timezone.utc)
        snap = Snapshot.build(
            [self._view("ETHUSDT", 10.0, -5.0)], sequence=7, published_at=published
        )

        data = snap.to_dict()

        assert data["sequence"] == 7
        assert data["publishedAt"] == int(published.timestamp() * 1000)
        eth = data["instruments"]["ETHUSDT"]
        assert eth["instrumentId"] == "ETHUSDT"
        assert eth["latestSample"] is None
        assert [p["value"] for p in eth["history"]] == [10.0, -5.0]
        assert isinstance(eth["history"][0]["observedAt"], int)


class TestPollingConfig:
    def test_defaults(self):
        config = PollingConfig.create(tracked_instruments=["ETHUSDT"])

        assert config.poll_interval_ms == 3000
        assert config.poll_interval == 3.0
        assert config.history_capacity == 20

    def test_instruments_are_normalised(self):
        config = PollingConfig.create(tracked_instruments=" ETHUSDT, BTCUSDT,ETHUSDT ,")

        assert config.tracked_instruments == ("ETHUSDT", "BTCUSDT")

    def test_numeric_strings_from_env_are_accepted(self):
        config = PollingConfig.create(
            poll_interval_ms="1500", history_capacity="5", tracked_instruments=["X"]
        )

        assert config.poll_interval_ms == 1500
        assert config.history_capacity == 5

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"poll_interval_ms": 0},
            {"poll_interval_ms": -100},
            {"poll_interval_ms": "fast"},
            {"poll_interval_ms": True},
            {"history_capacity": 0},
            {"history_capacity": -1},
            {"history_capacity": 2.5},
            {"tracked_instruments": []},
            {"tracked_instruments": ""},
            {"tracked_instruments": [" ", ""]},
            {"tracked_instruments": [1, 2]},
        ],
    )
    def test_invalid_values_raise_configuration_error(self, kwargs):
        params = {"tracked_instruments": ["ETHUSDT"], **kwargs}

        with pytest.raises(ConfigurationError):
            PollingConfig.create(**params)

    def test_missing_instruments_raise_configuration_error(self):
        with pytest.raises(ConfigurationError, match="tracked_instruments"):
            PollingConfig.create()

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            PollingConfig.create(tracked_instruments=[])
