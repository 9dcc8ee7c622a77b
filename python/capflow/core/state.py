from datetime import datetime
from typing import Optional

from .history import HistoryBuffer
from .types import HistoryPoint, InstrumentView, Sample


class InstrumentState:
    """Latest sample plus sliding history for one tracked instrument.

    Owned and mutated by the polling engine only; consumers receive
    ``InstrumentView`` copies.
    """

    def __init__(self, instrument_id: str, history_capacity: int):
        self.instrument_id = instrument_id
        self.latest_sample: Optional[Sample] = None
        self.history = HistoryBuffer(history_capacity)

    def apply(self, sample: Sample, observed_at: datetime) -> HistoryPoint:
        """Replace the latest sample and append its trend point in one step."""
        point = HistoryPoint(observed_at=observed_at, value=sample.total_net_inflow)
        self.latest_sample = sample
        self.history.append(point)
        return point

    def view(self) -> InstrumentView:
        return InstrumentView(
            instrument_id=self.instrument_id,
            latest_sample=self.latest_sample,
            history=self.history.to_sequence(),
        )

    def __repr__(self) -> str:
        return (
            f"InstrumentState(instrument_id={self.instrument_id!r}, "
            f"has_sample={self.latest_sample is not None}, history={len(self.history)})"
        )
