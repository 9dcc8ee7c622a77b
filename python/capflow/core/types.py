import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
)

from capflow.config.constants import (
    DEFAULT_HISTORY_CAPACITY,
    DEFAULT_POLL_INTERVAL_MS,
)
from capflow.utils.ts import from_timestamp_ms, to_timestamp_ms

from .errors import ConfigurationError, MalformedPayload


def format_validation_error(exc: ValidationError) -> str:
    """Flatten a pydantic ValidationError into one readable line."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


class Sample(BaseModel):
    """Capital-flow figures for one instrument at one point in time.

    All six numeric fields and the timestamp come from the same payload;
    the model is frozen, so a newer poll supersedes a Sample instead of
    mutating it.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    total_net_inflow: float = Field(
        ..., alias="totalNetInflow", description="Net inflow across all order sizes"
    )
    big_volume_net_inflow: float = Field(
        ..., alias="bigVolumeNetInflow", description="Net inflow of large orders"
    )
    buy_maker_big_volume: float = Field(
        ..., alias="buyMakerBigVolume", description="Large buy orders (limit)"
    )
    buy_taker_big_volume: float = Field(
        ..., alias="buyTakerBigVolume", description="Large buy orders (market)"
    )
    medium_volume_net_inflow: float = Field(
        ..., alias="mediumVolumeNetInflow", description="Net inflow of medium orders"
    )
    small_volume_net_inflow: float = Field(
        ..., alias="smallVolumeNetInflow", description="Net inflow of small orders"
    )
    update_timestamp: datetime = Field(
        ..., alias="updateTimestamp", description="Source update time (UTC)"
    )

    @field_validator(
        "total_net_inflow",
        "big_volume_net_inflow",
        "buy_maker_big_volume",
        "buy_taker_big_volume",
        "medium_volume_net_inflow",
        "small_volume_net_inflow",
        mode="before",
    )
    @classmethod
    def _ensure_real_number(cls, v: Any) -> float:
        """Accept ints, floats and numeric strings; reject bools and non-finite values."""
        if isinstance(v, bool) or not isinstance(v, (int, float, str)):
            raise ValueError(f"expected a real number, got {type(v).__name__}")
        try:
            number = float(v)
        except ValueError:
            raise ValueError(f"expected a real number, got {v!r}")
        if not math.isfinite(number):
            raise ValueError("expected a finite number")
        return number

    @field_validator("update_timestamp", mode="before")
    @classmethod
    def _parse_epoch_ms(cls, v: Any) -> datetime:
        """The feed sends epoch milliseconds; datetimes pass through unchanged."""
        if isinstance(v, datetime):
            return v
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError(f"expected epoch milliseconds, got {type(v).__name__}")
        if not math.isfinite(v):
            raise ValueError("expected a finite timestamp")
        try:
            return from_timestamp_ms(v)
        except (OverflowError, OSError, ValueError):
            raise ValueError(f"timestamp out of range: {v!r}")

    @field_serializer("update_timestamp", when_used="json")
    def _dump_epoch_ms(self, value: datetime) -> int:
        return to_timestamp_ms(value)

    @classmethod
    def from_payload(cls, payload: Any, instrument_id: Optional[str] = None) -> "Sample":
        """Build a Sample from a raw feed object.

        Raises:
            MalformedPayload: the payload is not an object, or any of the six
                numeric fields or the timestamp is missing or invalid.
        """
        if not isinstance(payload, Mapping):
            raise MalformedPayload(
                f"expected an object payload, got {type(payload).__name__}",
                instrument_id=instrument_id,
            )
        try:
            return cls.model_validate(dict(payload))
        except ValidationError as exc:
            raise MalformedPayload(
                f"invalid capital-flow payload: {format_validation_error(exc)}",
                instrument_id=instrument_id,
            ) from exc


class HistoryPoint(BaseModel):
    """One accepted observation in an instrument's sliding window."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    observed_at: datetime = Field(
        ..., alias="observedAt", description="Local time the poll completed"
    )
    value: float = Field(..., description="total_net_inflow of the accepted sample")

    @field_serializer("observed_at", when_used="json")
    def _dump_epoch_ms(self, value: datetime) -> int:
        return to_timestamp_ms(value)


class InstrumentView(BaseModel):
    """Read-only view of one instrument inside a published Snapshot."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    instrument_id: str = Field(..., alias="instrumentId")
    latest_sample: Optional[Sample] = Field(None, alias="latestSample")
    history: Tuple[HistoryPoint, ...] = Field(default_factory=tuple)

    @property
    def has_data(self) -> bool:
        return self.latest_sample is not None

    def history_values(self) -> Tuple[float, ...]:
        return tuple(point.value for point in self.history)


@dataclass(frozen=True, eq=False)
class Snapshot(Mapping):
    """Immutable ``instrument_id -> InstrumentView`` mapping at one publish point.

    ``sequence`` is 0 for the initial (pre-poll) snapshot and increases by
    one with every publication.
    """

    instruments: Mapping = field(default_factory=dict)
    sequence: int = 0
    published_at: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(
            self, "instruments", MappingProxyType(dict(self.instruments))
        )

    @classmethod
    def build(
        cls,
        views: Iterable[InstrumentView],
        sequence: int = 0,
        published_at: Optional[datetime] = None,
    ) -> "Snapshot":
        return cls(
            instruments={view.instrument_id: view for view in views},
            sequence=sequence,
            published_at=published_at,
        )

    def __getitem__(self, instrument_id: str) -> InstrumentView:
        return self.instruments[instrument_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self.instruments)

    def __len__(self) -> int:
        return len(self.instruments)

    @property
    def instrument_ids(self) -> Tuple[str, ...]:
        return tuple(self.instruments)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation using the feed's camelCase names."""
        return {
            "sequence": self.sequence,
            "publishedAt": (
                to_timestamp_ms(self.published_at) if self.published_at else None
            ),
            "instruments": {
                instrument_id: view.model_dump(mode="json", by_alias=True)
                for instrument_id, view in self.instruments.items()
            },
        }


class PollingConfig(BaseModel):
    """Engine configuration. Use ``create`` to get ``ConfigurationError`` on bad input."""

    model_config = ConfigDict(frozen=True)

    poll_interval_ms: int = Field(
        DEFAULT_POLL_INTERVAL_MS, gt=0, description="Fixed-rate poll period"
    )
    history_capacity: int = Field(
        DEFAULT_HISTORY_CAPACITY, ge=1, description="Sliding window size per instrument"
    )
    tracked_instruments: Tuple[str, ...] = Field(
        ..., description="Instrument identifiers, fixed for the engine's lifetime"
    )

    @field_validator("poll_interval_ms", "history_capacity", mode="before")
    @classmethod
    def _reject_bool(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("expected an integer, got bool")
        return v

    @field_validator("tracked_instruments", mode="before")
    @classmethod
    def _normalize_instruments(cls, v: Any) -> Tuple[str, ...]:
        """Accept a comma separated string or any iterable; strip and de-duplicate."""
        if v is None:
            return ()
        if isinstance(v, str):
            v = v.split(",")
        instruments = []
        for item in v:
            if not isinstance(item, str):
                raise ValueError(
                    f"instrument ids must be strings, got {type(item).__name__}"
                )
            item = item.strip()
            if item:
                instruments.append(item)
        return tuple(dict.fromkeys(instruments))

    @field_validator("tracked_instruments")
    @classmethod
    def _require_instruments(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        if not v:
            raise ValueError("at least one instrument must be tracked")
        return v

    @property
    def poll_interval(self) -> float:
        """Poll period in seconds."""
        return self.poll_interval_ms / 1000.0

    @classmethod
    def create(cls, **kwargs: Any) -> "PollingConfig":
        try:
            return cls(**kwargs)
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid polling configuration: {format_validation_error(exc)}"
            ) from exc
